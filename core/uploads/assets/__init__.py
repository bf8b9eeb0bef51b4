from core.uploads.assets.provider import AssetServiceProvider, make_provider_id, split_provider_id
from core.uploads.assets.service import AssetService

__all__ = [
    "AssetService",
    "AssetServiceProvider",
    "make_provider_id",
    "split_provider_id",
]
