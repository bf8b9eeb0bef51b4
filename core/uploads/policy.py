from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from core.errors import unknown_profile
from core.uploads.types import (
    Eager,
    EagerVariant,
    FieldBinding,
    Format,
    OwnerPaths,
    Quality,
    Resize,
    UploadProfile,
)

logger = logging.getLogger(__name__)

MB = 1024 * 1024

IMAGE_MIME = frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"})
DOCUMENT_MIME = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "text/csv",
    }
)
ARCHIVE_MIME = frozenset({"application/zip", "application/x-zip-compressed"})
AUDIO_MIME = frozenset(
    {
        "audio/webm",
        "audio/webm;codecs=opus",
        "audio/mp4",
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/x-wav",
        "audio/ogg",
        "audio/ogg;codecs=opus",
        "audio/ogg;codecs=vorbis",
        "audio/x-m4a",
        "audio/aac",
    }
)

STANDARD_DELIVERY = (Quality(), Format())


def _limit(size: int) -> Resize:
    return Resize(width=size, height=size, crop="limit", gravity="center")


def _thumb(size: int) -> Resize:
    return Resize(width=size, height=size, crop="thumb", gravity="auto")


USER_AVATAR = UploadProfile(
    name="user-avatar",
    allowed_mime=IMAGE_MIME,
    max_bytes=5 * MB,
    max_count=1,
    bucket="user-avatars",
    fields=FieldBinding.single("avatar"),
    owner_paths=OwnerPaths(
        primary="avatar",
        variants=(("thumbnail", "avatarThumbnail"), ("small", "avatarSmall")),
        provider_id="avatarAssetId",
    ),
    activity_type="avatar_update",
    transform=(
        _thumb(300),
        *STANDARD_DELIVERY,
        Eager(variants=(EagerVariant("thumbnail", _thumb(150)), EagerVariant("small", _thumb(50)))),
    ),
)

COMMUNITY_IMAGE = UploadProfile(
    name="community-image",
    allowed_mime=IMAGE_MIME,
    max_bytes=5 * MB,
    max_count=1,
    bucket="community-images",
    fields=FieldBinding.single("image"),
    owner_paths=OwnerPaths(primary="image", provider_id="imageAssetId"),
    activity_type="community_update",
    transform=(_limit(1000), *STANDARD_DELIVERY),
)

COMMUNITY_AVATAR = UploadProfile(
    name="community-avatar",
    allowed_mime=IMAGE_MIME,
    max_bytes=5 * MB,
    max_count=1,
    bucket="community-avatars",
    fields=FieldBinding.single("avatar"),
    owner_paths=OwnerPaths(primary="avatar", provider_id="avatarAssetId"),
    activity_type="community_update",
    transform=(_thumb(300), *STANDARD_DELIVERY),
)

COMMUNITY_HEADER = UploadProfile(
    name="community-header",
    allowed_mime=IMAGE_MIME,
    max_bytes=5 * MB,
    max_count=1,
    bucket="community-headers",
    fields=FieldBinding.single("headerImage"),
    owner_paths=OwnerPaths(primary="headerImage", provider_id="headerImageAssetId"),
    activity_type="community_update",
    transform=(Resize(width=1500, height=500, crop="limit", gravity="center"), *STANDARD_DELIVERY),
)

CHAT_AVATAR = UploadProfile(
    name="chat-avatar",
    allowed_mime=IMAGE_MIME,
    max_bytes=5 * MB,
    max_count=1,
    bucket="group-avatars",
    fields=FieldBinding.single("avatar"),
    owner_paths=OwnerPaths(primary="avatar", provider_id="avatarAssetId"),
    activity_type="chat_update",
    transform=(Resize(width=200, height=200, crop="fill", gravity="auto"), *STANDARD_DELIVERY),
)

POST_IMAGES = UploadProfile(
    name="post-images",
    allowed_mime=IMAGE_MIME,
    max_bytes=10 * MB,
    max_count=10,
    bucket="post-images",
    fields=FieldBinding.array("images"),
    owner_paths=OwnerPaths(
        primary="url",
        variants=(("thumbnail", "thumbnailUrl"), ("medium", "mediumUrl")),
        provider_id="publicId",
    ),
    activity_type="post_create",
    transform=(
        _limit(1200),
        *STANDARD_DELIVERY,
        Eager(variants=(EagerVariant("thumbnail", _thumb(300)), EagerVariant("medium", _limit(600)))),
    ),
)

CHAT_ATTACHMENT = UploadProfile(
    name="chat-attachment",
    allowed_mime=IMAGE_MIME | DOCUMENT_MIME | ARCHIVE_MIME,
    max_bytes=10 * MB,
    max_count=1,
    bucket="chat-files",
    fields=FieldBinding.single("file"),
    owner_paths=OwnerPaths(primary="fileUrl", provider_id="publicId"),
    activity_type="file_shared",
    transform=(_limit(1200), *STANDARD_DELIVERY),
    resource_type="auto",
)

AUDIO_MESSAGE = UploadProfile(
    name="audio-message",
    allowed_mime=AUDIO_MIME,
    max_bytes=10 * MB,
    max_count=1,
    bucket="voice-messages",
    fields=FieldBinding.single("audio"),
    owner_paths=OwnerPaths(primary="fileUrl", provider_id="publicId"),
    activity_type="voice_message",
    backend="s3",
    resource_type="audio",
)

DOCUMENT = UploadProfile(
    name="document",
    allowed_mime=DOCUMENT_MIME,
    max_bytes=10 * MB,
    max_count=1,
    bucket="chat-documents",
    fields=FieldBinding.single("document"),
    owner_paths=OwnerPaths(primary="fileUrl", provider_id="publicId"),
    activity_type="file_shared",
    resource_type="raw",
)

DEFAULT_PROFILES: tuple[UploadProfile, ...] = (
    USER_AVATAR,
    COMMUNITY_IMAGE,
    COMMUNITY_AVATAR,
    COMMUNITY_HEADER,
    CHAT_AVATAR,
    POST_IMAGES,
    CHAT_ATTACHMENT,
    AUDIO_MESSAGE,
    DOCUMENT,
)


class PolicyRegistry:
    """Immutable table of upload profiles, built once at startup."""

    def __init__(self, profiles: Iterable[UploadProfile], *, disabled: Iterable[str] = ()) -> None:
        table: dict[str, UploadProfile] = {}
        for profile in profiles:
            if profile.name in table:
                raise ValueError(f"Upload profile '{profile.name}' is defined twice")
            table[profile.name] = profile
        for name in disabled:
            table.pop(name, None)
        self._profiles: Mapping[str, UploadProfile] = MappingProxyType(table)

    def resolve(self, profile_name: str) -> UploadProfile:
        profile = self._profiles.get(profile_name)
        if profile is None:
            logger.error("Upload profile '%s' is not registered", profile_name)
            raise unknown_profile(profile_name)
        return profile

    def names(self) -> list[str]:
        return sorted(self._profiles)

    def backends(self) -> set[str]:
        return {profile.backend for profile in self._profiles.values()}

    def __contains__(self, profile_name: object) -> bool:
        return profile_name in self._profiles
