from __future__ import annotations

from typing import Any, Iterable

from fastapi import Request

from core.errors import auth_permission_denied, owner_not_found
from core.uploads.commit import commit_fields
from repositories.entity_repo import get_entity_by_id
from services.upload_service import UploadPipeline

USER_PUBLIC_FIELDS = (
    "_id",
    "username",
    "firstName",
    "lastName",
    "avatar",
    "avatarThumbnail",
    "avatarSmall",
)


def _project(document: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    return {field: document[field] for field in fields if field in document}


async def replace_owner_asset(
    kind: str,
    owner_id: str,
    pipeline: UploadPipeline,
    request: Request,
    *,
    actor_id: str,
    message: str,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Ingest one file, upload it and swap it onto the owner. Returns (url fields, entity view)."""
    ingress = await pipeline.ingest(request)
    asset = await pipeline.upload_one(ingress.files[0])
    entity = await pipeline.commit(
        [asset],
        commit_fields(kind, owner_id, pipeline.profile, asset, actor_id=actor_id, message=message),
    )
    pipeline.finish(ingress.files)

    paths = pipeline.profile.owner_paths
    url_fields = {path: entity.get(path) for path in paths.all_paths() if path != paths.provider_id}
    return url_fields, entity


async def update_user_avatar(user_id: str, pipeline: UploadPipeline, request: Request) -> dict[str, Any]:
    url_fields, entity = await replace_owner_asset(
        "user",
        user_id,
        pipeline,
        request,
        actor_id=user_id,
        message="Updated profile avatar",
    )
    return {**url_fields, "entity": _project(entity, USER_PUBLIC_FIELDS)}


async def ensure_community_admin(community_id: str, user_id: str, action: str) -> dict[str, Any]:
    community = await get_entity_by_id("community", community_id, {"admin": 1, "name": 1})
    if community is None:
        raise owner_not_found("community", community_id)
    if str(community.get("admin")) != user_id:
        raise auth_permission_denied(action)
    return community


async def update_community_media(
    community_id: str,
    user_id: str,
    pipeline: UploadPipeline,
    request: Request,
    *,
    label: str,
) -> dict[str, Any]:
    community = await ensure_community_admin(community_id, user_id, f"change community {label}")
    url_fields, entity = await replace_owner_asset(
        "community",
        community_id,
        pipeline,
        request,
        actor_id=user_id,
        message=f"Updated {label} of community {community.get('name') or community_id}",
    )
    return {**url_fields, "entity": entity}
