from __future__ import annotations

import logging
from typing import Awaitable, Sequence, TypeVar

from fastapi import Request

from core.errors import missing_file
from core.uploads.ingress import IngressResult, MultipartIngress
from core.uploads.manager import UploadManager
from core.uploads.sentinel import CleanupSentinel
from core.uploads.types import AssetRef, StagedFile, StagedFileState, UploadProfile

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UploadPipeline:
    """Drives one request through ingest, upload and release for a single profile."""

    def __init__(self, profile_name: str, *, manager: UploadManager, sentinel: CleanupSentinel) -> None:
        self.profile: UploadProfile = manager.registry.resolve(profile_name)
        self._assets = manager.assets
        self._sentinel = sentinel

    async def ingest(self, request: Request, *, require_file: bool = True) -> IngressResult:
        result = await MultipartIngress(self.profile, self._sentinel).parse(request)
        if require_file and not result.files:
            raise missing_file(self.profile.fields.names[0])
        return result

    async def upload_all(self, staged_files: Sequence[StagedFile]) -> list[AssetRef]:
        """Upload in order; on any failure the assets already stored for this request are deleted."""
        uploaded: list[AssetRef] = []
        try:
            for staged in staged_files:
                asset = await self._assets.upload(staged)
                staged.advance(StagedFileState.UPLOADED)
                uploaded.append(asset)
        except Exception:
            await self.discard(uploaded)
            raise
        return uploaded

    async def upload_one(self, staged: StagedFile) -> AssetRef:
        assets = await self.upload_all([staged])
        return assets[0]

    async def commit(self, assets: Sequence[AssetRef], write: Awaitable[T]) -> T:
        """Await the entity write; if it fails the request's assets are deleted before re-raising."""
        try:
            return await write
        except Exception:
            await self.discard(assets)
            raise

    def finish(self, staged_files: Sequence[StagedFile]) -> None:
        for staged in staged_files:
            staged.advance(StagedFileState.COMMITTED)
            self._sentinel.release(staged)

    async def discard(self, assets: Sequence[AssetRef]) -> None:
        for asset in assets:
            logger.info("Removing %s after a failed %s upload", asset.provider_id, self.profile.name)
            await self._assets.delete(asset.provider_id)
