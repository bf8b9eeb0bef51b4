from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Union


class StagedFileState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    UPLOADED = "uploaded"
    COMMITTED = "committed"
    RELEASED = "released"


_STATE_ORDER = [
    StagedFileState.RECEIVED,
    StagedFileState.VALIDATED,
    StagedFileState.UPLOADED,
    StagedFileState.COMMITTED,
    StagedFileState.RELEASED,
]


class FieldMode(str, Enum):
    SINGLE = "single"
    ARRAY = "array"
    FIELDS = "fields"


def normalize_mime(mime_type: str | None) -> str:
    if not mime_type:
        return ""
    return ";".join(part.strip() for part in mime_type.strip().lower().split(";"))


@dataclass(frozen=True)
class Resize:
    width: int
    height: int
    crop: Literal["thumb", "limit", "fill"] = "limit"
    gravity: Literal["auto", "center"] = "center"


@dataclass(frozen=True)
class Quality:
    value: Literal["auto"] = "auto"


@dataclass(frozen=True)
class Format:
    value: Literal["auto"] = "auto"


@dataclass(frozen=True)
class EagerVariant:
    name: str
    resize: Resize


@dataclass(frozen=True)
class Eager:
    variants: tuple[EagerVariant, ...]


TransformStep = Union[Resize, Quality, Format, Eager]


@dataclass(frozen=True)
class FieldBinding:
    mode: FieldMode
    names: tuple[str, ...]

    @classmethod
    def single(cls, name: str) -> "FieldBinding":
        return cls(mode=FieldMode.SINGLE, names=(name,))

    @classmethod
    def array(cls, name: str) -> "FieldBinding":
        return cls(mode=FieldMode.ARRAY, names=(name,))

    @classmethod
    def fields(cls, *names: str) -> "FieldBinding":
        return cls(mode=FieldMode.FIELDS, names=tuple(names))

    def accepts(self, field_name: str) -> bool:
        return field_name in self.names


@dataclass(frozen=True)
class OwnerPaths:
    """Where an AssetRef lands on the owning entity.

    ``variants`` pairs an eager variant name with the entity path that receives its URL.
    """

    primary: str | None = None
    variants: tuple[tuple[str, str], ...] = ()
    provider_id: str | None = None

    def all_paths(self) -> tuple[str, ...]:
        paths = [path for _, path in self.variants]
        if self.primary:
            paths.insert(0, self.primary)
        if self.provider_id:
            paths.append(self.provider_id)
        return tuple(paths)


@dataclass(frozen=True)
class UploadProfile:
    name: str
    allowed_mime: frozenset[str]
    max_bytes: int
    max_count: int
    bucket: str
    fields: FieldBinding
    owner_paths: OwnerPaths
    activity_type: str
    transform: tuple[TransformStep, ...] = ()
    backend: Literal["cloudinary", "s3"] = "cloudinary"
    resource_type: Literal["image", "raw", "auto", "audio"] = "image"

    def __post_init__(self) -> None:
        if self.max_bytes <= 0:
            raise ValueError(f"Profile {self.name}: max_bytes must be positive")
        if self.max_count <= 0:
            raise ValueError(f"Profile {self.name}: max_count must be positive")
        if self.fields.mode == FieldMode.SINGLE and self.max_count != 1:
            raise ValueError(f"Profile {self.name}: single-field profiles accept exactly one file")
        object.__setattr__(self, "allowed_mime", frozenset(normalize_mime(m) for m in self.allowed_mime))

    def allows(self, mime_type: str | None) -> bool:
        return normalize_mime(mime_type) in self.allowed_mime

    @property
    def eager_variants(self) -> tuple[EagerVariant, ...]:
        variants: list[EagerVariant] = []
        for step in self.transform:
            if isinstance(step, Eager):
                variants.extend(step.variants)
        return tuple(variants)

    def request_byte_ceiling(self, field_bytes: int = 0) -> int:
        """Largest Content-Length a valid request can declare, given the text-field budget."""
        # Multipart framing overhead per part is generous at 16 KiB.
        return self.max_count * (self.max_bytes + 16 * 1024) + field_bytes + 64 * 1024


@dataclass
class StagedFile:
    temp_path: Path
    field_name: str
    declared_mime: str
    declared_name: str
    profile: UploadProfile
    size_bytes: int = 0
    state: StagedFileState = StagedFileState.RECEIVED

    def advance(self, state: StagedFileState) -> None:
        if self.state == StagedFileState.RELEASED:
            raise RuntimeError(f"Staged file {self.temp_path.name} was already released")
        if state != StagedFileState.RELEASED and _STATE_ORDER.index(state) <= _STATE_ORDER.index(self.state):
            raise RuntimeError(f"Staged file cannot move from {self.state.value} to {state.value}")
        self.state = state

    @property
    def released(self) -> bool:
        return self.state == StagedFileState.RELEASED


@dataclass(frozen=True)
class AssetRef:
    canonical_url: str
    provider_id: str
    content_type: str
    bytes: int
    variants: dict[str, str] = field(default_factory=dict)
    width: int | None = None
    height: int | None = None

    def owner_update(self, paths: OwnerPaths) -> dict[str, Any]:
        update: dict[str, Any] = {}
        if paths.primary:
            update[paths.primary] = self.canonical_url
        for variant_name, path in paths.variants:
            update[path] = self.variants.get(variant_name, self.canonical_url)
        if paths.provider_id:
            update[paths.provider_id] = self.provider_id
        return update
