from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from core.errors import asset_service_unavailable
from core.uploads.assets.provider import AssetServiceProvider, make_provider_id, split_provider_id
from core.uploads.types import AssetRef, StagedFile

logger = logging.getLogger(__name__)


class S3AssetProvider(AssetServiceProvider):
    """Object-store backend for profiles without transforms (voice messages)."""

    backend_name = "s3"

    def __init__(
        self,
        *,
        bucket_name: str,
        public_base_url: str,
        timeout_seconds: float,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._bucket = bucket_name
        self._public_base_url = public_base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            config=Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 1},
            ),
        )

    def public_url(self, object_key: str) -> str:
        return f"{self._public_base_url}/{quote(object_key)}"

    async def upload(self, staged: StagedFile) -> AssetRef:
        profile = staged.profile
        object_key = f"{profile.bucket}/{staged.temp_path.name}"
        try:
            await asyncio.wait_for(
                run_in_threadpool(
                    self._client.upload_file,
                    str(staged.temp_path),
                    self._bucket,
                    object_key,
                    ExtraArgs={"ContentType": staged.declared_mime},
                ),
                timeout=self._timeout * 2,
            )
        except asyncio.TimeoutError as err:
            raise asset_service_unavailable(f"Object store did not answer within {self._timeout:g}s") from err
        except (S3UploadFailedError, BotoCoreError, ClientError, OSError) as err:
            raise asset_service_unavailable(str(err) or err.__class__.__name__) from err

        return AssetRef(
            canonical_url=self.public_url(object_key),
            provider_id=make_provider_id(self.backend_name, profile.resource_type, object_key),
            content_type=staged.declared_mime,
            bytes=staged.size_bytes,
        )

    async def delete(self, provider_id: str) -> bool:
        _, _, object_key = split_provider_id(provider_id)
        try:
            await asyncio.wait_for(
                run_in_threadpool(self._client.delete_object, Bucket=self._bucket, Key=object_key),
                timeout=self._timeout * 2,
            )
        except (asyncio.TimeoutError, BotoCoreError, ClientError, OSError):
            logger.warning("Could not delete object %s", provider_id, exc_info=True)
            return False
        return True
