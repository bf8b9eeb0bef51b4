from core.uploads.types import AssetRef, FieldBinding, OwnerPaths, StagedFile, StagedFileState, UploadProfile

__all__ = [
    "AssetRef",
    "FieldBinding",
    "OwnerPaths",
    "StagedFile",
    "StagedFileState",
    "UploadProfile",
]
