from __future__ import annotations

from typing import Any

from fastapi import Request
from pydantic import ValidationError

from core.errors import validation_failed
from core.uploads.commit import create_entity
from core.uploads.ingress import IngressResult
from core.uploads.types import AssetRef, StagedFile
from schemas.imports import as_object_id
from schemas.post import PostCreateCheck, PostImage, PostImagesForm
from services.upload_service import UploadPipeline


def _validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(part) for part in error["loc"]) or "form", "message": error["msg"]}
        for error in exc.errors()
    ]


def parse_post_form(ingress: IngressResult) -> PostImagesForm:
    try:
        form = PostImagesForm(
            content=ingress.first("content"),
            postType=ingress.first("postType"),
            community=ingress.first("community"),
            tags=ingress.getlist("tags"),
            visibility=ingress.first("visibility") or "public",
        )
        PostCreateCheck(has_content=bool(form.content), image_count=len(ingress.files))
    except ValidationError as exc:
        raise validation_failed("Invalid post data", _validation_details(exc)) from exc
    return form


def _post_image(staged: StagedFile, asset: AssetRef, position: int) -> dict[str, Any]:
    entry = asset.owner_update(staged.profile.owner_paths)
    file_format = asset.content_type.rsplit("/", 1)[-1]
    return PostImage(
        **entry,
        fileName=staged.declared_name,
        fileSize=asset.bytes,
        originalSize=staged.size_bytes,
        width=asset.width,
        height=asset.height,
        alt=f"Post image {position}",
        format=file_format,
    ).model_dump()


async def create_post_with_images(user_id: str, pipeline: UploadPipeline, request: Request) -> dict[str, Any]:
    ingress = await pipeline.ingest(request, require_file=False)
    form = parse_post_form(ingress)

    assets = await pipeline.upload_all(ingress.files)
    images = [
        _post_image(staged, asset, position)
        for position, (staged, asset) in enumerate(zip(ingress.files, assets), start=1)
    ]
    document: dict[str, Any] = {
        "user": as_object_id(user_id),
        "content": form.content or "",
        "postType": form.postType.value,
        "community": as_object_id(form.community),
        "tags": form.tags,
        "visibility": form.visibility.value,
        "images": images,
        "media": [image["url"] for image in images],
        "likes": [],
        "comments": [],
    }
    post = await pipeline.commit(
        assets,
        create_entity(
            "post",
            document,
            pipeline.profile,
            assets,
            actor_id=user_id,
            message=f"Created a post with {len(images)} image(s)",
        ),
    )
    pipeline.finish(ingress.files)
    return {"images": images, "entity": post}
