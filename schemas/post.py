from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from schemas.imports import PostType, Visibility


class PostImagesForm(BaseModel):
    content: str | None = Field(default=None, max_length=5000)
    postType: PostType
    community: str | None = None
    tags: list[str] = Field(default_factory=list)
    visibility: Visibility = Visibility.PUBLIC

    @field_validator("content", "community", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value):
        if value is None:
            return []
        items = value if isinstance(value, list) else [value]
        tags: list[str] = []
        for item in items:
            tags.extend(tag.strip() for tag in str(item).split(",") if tag.strip())
        return tags


class PostImage(BaseModel):
    url: str
    thumbnailUrl: str
    mediumUrl: str
    publicId: str
    fileName: str
    fileSize: int
    originalSize: int
    width: int | None = None
    height: int | None = None
    alt: str
    format: str


class PostCreateCheck(BaseModel):
    """Content or at least one image is required."""

    has_content: bool
    image_count: int

    @model_validator(mode="after")
    def require_content_or_images(self):
        if not self.has_content and self.image_count == 0:
            raise ValueError("Content or images required.")
        return self
