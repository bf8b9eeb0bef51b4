from __future__ import annotations

import asyncio
import logging
from typing import Any

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from starlette.concurrency import run_in_threadpool

from core.errors import asset_service_unavailable
from core.uploads.assets.provider import AssetServiceProvider, make_provider_id, split_provider_id
from core.uploads.types import (
    AssetRef,
    Eager,
    Format,
    Quality,
    Resize,
    StagedFile,
    UploadProfile,
)

logger = logging.getLogger(__name__)

# Grace on top of the SDK's own socket timeout before the wait is abandoned.
_DEADLINE_GRACE_SECONDS = 2.0


def _resize_options(step: Resize) -> dict[str, Any]:
    return {"width": step.width, "height": step.height, "crop": step.crop, "gravity": step.gravity}


def build_upload_options(profile: UploadProfile, declared_mime: str) -> dict[str, Any]:
    """Translate a profile recipe into uploader options, preserving step order."""
    options: dict[str, Any] = {"folder": profile.bucket, "resource_type": profile.resource_type}
    if not declared_mime.startswith("image/"):
        return options

    transformation: list[dict[str, Any]] = []
    eager: list[dict[str, Any]] = []
    for step in profile.transform:
        if isinstance(step, Resize):
            transformation.append(_resize_options(step))
        elif isinstance(step, Quality):
            transformation.append({"quality": step.value})
        elif isinstance(step, Format):
            transformation.append({"fetch_format": step.value})
        elif isinstance(step, Eager):
            eager.extend(_resize_options(variant.resize) for variant in step.variants)

    if transformation:
        options["transformation"] = transformation
    if eager:
        options["eager"] = eager
        options["eager_async"] = True
    return options


class CloudinaryAssetProvider(AssetServiceProvider):
    backend_name = "cloudinary"

    def __init__(
        self,
        *,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        timeout_seconds: float,
        uploader: Any | None = None,
    ) -> None:
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)
        self._uploader = uploader or cloudinary.uploader
        self._timeout = timeout_seconds

    async def _call(self, func: Any, *args: Any, **kwargs: Any) -> dict[str, Any]:
        kwargs["timeout"] = self._timeout
        return await asyncio.wait_for(
            run_in_threadpool(func, *args, **kwargs),
            timeout=self._timeout + _DEADLINE_GRACE_SECONDS,
        )

    async def upload(self, staged: StagedFile) -> AssetRef:
        options = build_upload_options(staged.profile, staged.declared_mime)
        try:
            result = await self._call(self._uploader.upload, str(staged.temp_path), **options)
        except asyncio.TimeoutError as err:
            raise asset_service_unavailable(f"Asset service did not answer within {self._timeout:g}s") from err
        except (CloudinaryError, OSError) as err:
            raise asset_service_unavailable(str(err) or err.__class__.__name__) from err
        return self._asset_ref(result, staged)

    def _asset_ref(self, result: dict[str, Any], staged: StagedFile) -> AssetRef:
        canonical_url = result.get("secure_url") or result.get("url")
        public_id = result.get("public_id")
        if not canonical_url or not public_id:
            raise asset_service_unavailable("Asset service response is missing the delivery URL")

        # Eager results arrive in request order; async derivations may not be listed yet.
        eager_results = result.get("eager") or []
        variants: dict[str, str] = {}
        for index, variant in enumerate(staged.profile.eager_variants):
            derived = eager_results[index] if index < len(eager_results) else {}
            variants[variant.name] = derived.get("secure_url") or derived.get("url") or canonical_url

        resource_type = result.get("resource_type") or staged.profile.resource_type
        file_format = result.get("format")
        content_type = f"{resource_type}/{file_format}" if file_format else staged.declared_mime
        return AssetRef(
            canonical_url=canonical_url,
            provider_id=make_provider_id(self.backend_name, resource_type, public_id),
            content_type=content_type,
            bytes=int(result.get("bytes") or staged.size_bytes),
            variants=variants,
            width=result.get("width"),
            height=result.get("height"),
        )

    async def delete(self, provider_id: str) -> bool:
        _, resource_type, public_id = split_provider_id(provider_id)
        try:
            result = await self._call(
                self._uploader.destroy,
                public_id,
                resource_type=resource_type,
                invalidate=True,
            )
        except (asyncio.TimeoutError, CloudinaryError, OSError):
            logger.warning("Could not delete asset %s", provider_id, exc_info=True)
            return False
        outcome = (result or {}).get("result")
        if outcome != "ok":
            logger.warning("Asset service reported '%s' deleting %s", outcome, provider_id)
            return False
        return True
