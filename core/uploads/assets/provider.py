from __future__ import annotations

from typing import Protocol

from core.uploads.types import AssetRef, StagedFile


class AssetServiceProvider(Protocol):
    backend_name: str

    async def upload(self, staged: StagedFile) -> AssetRef:
        ...

    async def delete(self, provider_id: str) -> bool:
        ...


def make_provider_id(backend: str, resource_type: str, object_id: str) -> str:
    return f"{backend}:{resource_type}:{object_id}"


def split_provider_id(provider_id: str) -> tuple[str, str, str]:
    backend, sep, rest = provider_id.partition(":")
    resource_type, sep2, object_id = rest.partition(":")
    if not sep or not sep2 or not object_id:
        raise ValueError(f"Malformed provider id: {provider_id!r}")
    return backend, resource_type, object_id
