from __future__ import annotations

import logging
from threading import Lock
from typing import AsyncIterator

from fastapi import Depends

from core.settings import Settings, get_settings
from core.uploads.assets.cloudinary_provider import CloudinaryAssetProvider
from core.uploads.assets.provider import AssetServiceProvider
from core.uploads.assets.s3_provider import S3AssetProvider
from core.uploads.assets.service import AssetService
from core.uploads.policy import DEFAULT_PROFILES, PolicyRegistry
from core.uploads.scratch import ScratchStore
from core.uploads.sentinel import CleanupSentinel

logger = logging.getLogger(__name__)


class UploadManager:
    _instance: "UploadManager | None" = None
    _lock = Lock()

    def __init__(self, *, registry: PolicyRegistry, scratch: ScratchStore, assets: AssetService) -> None:
        self._registry = registry
        self._scratch = scratch
        self._assets = assets

    @classmethod
    def configure(
        cls,
        *,
        registry: PolicyRegistry,
        scratch: ScratchStore,
        assets: AssetService,
    ) -> "UploadManager":
        with cls._lock:
            cls._instance = cls(registry=registry, scratch=scratch, assets=assets)
            return cls._instance

    @classmethod
    def configure_from_settings(cls, settings: Settings | None = None) -> "UploadManager":
        settings = settings or get_settings()
        registry = PolicyRegistry(DEFAULT_PROFILES, disabled=settings.disabled_upload_profiles)

        providers: dict[str, AssetServiceProvider] = {}
        backends = registry.backends()
        if "cloudinary" in backends:
            if not (settings.cloudinary_cloud_name and settings.cloudinary_api_key and settings.cloudinary_api_secret):
                raise RuntimeError("Cloudinary credentials are required for the enabled upload profiles")
            providers["cloudinary"] = CloudinaryAssetProvider(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
                timeout_seconds=settings.asset_service_timeout_seconds,
            )
        if "s3" in backends:
            if not (settings.s3_bucket_name and settings.audio_public_base_url):
                raise RuntimeError("S3_BUCKET_NAME and AUDIO_PUBLIC_BASE_URL are required when audio storage is enabled")
            providers["s3"] = S3AssetProvider(
                bucket_name=settings.s3_bucket_name,
                public_base_url=settings.audio_public_base_url,
                timeout_seconds=settings.asset_service_timeout_seconds,
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
            )

        scratch = ScratchStore(settings.upload_scratch_dir)
        scratch.ensure_root()
        logger.info(
            "Upload pipeline ready: profiles=%s backends=%s scratch=%s",
            ",".join(registry.names()),
            ",".join(sorted(providers)),
            scratch.root,
        )
        return cls.configure(registry=registry, scratch=scratch, assets=AssetService(providers))

    @classmethod
    def get_instance(cls) -> "UploadManager":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @property
    def registry(self) -> PolicyRegistry:
        return self._registry

    @property
    def scratch(self) -> ScratchStore:
        return self._scratch

    @property
    def assets(self) -> AssetService:
        return self._assets


def get_upload_manager() -> UploadManager:
    return UploadManager.get_instance()


async def cleanup_sentinel(
    manager: UploadManager = Depends(get_upload_manager),
) -> AsyncIterator[CleanupSentinel]:
    """One sentinel per request; every staged scratch file is released when the request ends."""
    sentinel = CleanupSentinel(manager.scratch)
    try:
        yield sentinel
    finally:
        sentinel.release_all()
        if not sentinel.balanced:
            logger.warning(
                "Scratch accounting off: %d acquired, %d released",
                sentinel.acquisitions,
                sentinel.releases,
            )
