from __future__ import annotations

import logging
from typing import Mapping

from core.errors import unknown_profile
from core.uploads.assets.provider import AssetServiceProvider, split_provider_id
from core.uploads.types import AssetRef, StagedFile

logger = logging.getLogger(__name__)


class AssetService:
    """Routes uploads by profile backend and deletes by provider-id prefix."""

    def __init__(self, providers: Mapping[str, AssetServiceProvider]) -> None:
        self._providers = dict(providers)

    @property
    def backends(self) -> set[str]:
        return set(self._providers)

    async def upload(self, staged: StagedFile) -> AssetRef:
        provider = self._providers.get(staged.profile.backend)
        if provider is None:
            logger.error(
                "No asset backend '%s' configured for profile %s",
                staged.profile.backend,
                staged.profile.name,
            )
            raise unknown_profile(staged.profile.name)
        return await provider.upload(staged)

    async def delete(self, provider_id: str) -> bool:
        try:
            backend, _, _ = split_provider_id(provider_id)
        except ValueError:
            logger.warning("Skipping delete of unrecognised provider id %r", provider_id)
            return False
        provider = self._providers.get(backend)
        if provider is None:
            logger.warning("No asset backend '%s' configured to delete %s", backend, provider_id)
            return False
        return await provider.delete(provider_id)
