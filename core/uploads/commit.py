from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from core.errors import owner_not_found
from core.queue.manager import QueueManager
from core.uploads.types import AssetRef, UploadProfile
from repositories.activity_repo import create_activity
from repositories.entity_repo import insert_entity, push_entity_item, set_entity_fields
from schemas.activity import ActivityCreate, ActivityMetadata, ActivityOut

logger = logging.getLogger(__name__)

REFERENCE_TYPES = {
    "user": "User",
    "community": "Community",
    "chat": "Chat",
    "post": "Post",
}


async def record_activity(
    *,
    actor_id: str,
    activity_type: str,
    kind: str,
    reference_id: str,
    message: str,
    action: str,
    old_asset: str | None = None,
    new_asset: str | None = None,
    profile_name: str | None = None,
    extra: dict[str, Any] | None = None,
) -> ActivityOut | None:
    """Write the audit record for one commit. Failures are logged, never raised."""
    try:
        payload = ActivityCreate(
            user=actor_id,
            type=activity_type,
            message=message,
            referenceId=reference_id,
            referenceType=REFERENCE_TYPES[kind],
            metadata=ActivityMetadata(
                action=action,
                oldAsset=old_asset or "none",
                newAsset=new_asset,
                profile=profile_name,
                extra=extra,
            ),
        )
        return await create_activity(payload)
    except Exception:
        logger.warning(
            "Activity write failed for %s %s (%s)",
            kind,
            reference_id,
            activity_type,
            exc_info=True,
        )
        return None


def queue_asset_deletion(provider_id: str | None) -> bool:
    if not provider_id:
        return False
    try:
        QueueManager.get_instance().enqueue("delete_asset", {"provider_id": provider_id})
    except Exception:
        logger.warning("Could not queue deletion of asset %s", provider_id, exc_info=True)
        return False
    return True


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def commit_fields(
    kind: str,
    owner_id: str,
    profile: UploadProfile,
    asset: AssetRef,
    *,
    actor_id: str,
    message: str,
    action: str = "update",
) -> dict[str, Any]:
    """Set every owner path of ``profile`` in one write and return the updated view."""
    paths = profile.owner_paths
    update = asset.owner_update(paths)
    update["updatedAt"] = _now()

    before = await set_entity_fields(kind, owner_id, update)
    if before is None:
        raise owner_not_found(kind, owner_id)
    entity = {**before, **update}
    logger.info(
        "Committed %s to %s %s (%s, %d bytes)",
        profile.name,
        kind,
        owner_id,
        asset.provider_id,
        asset.bytes,
    )

    await record_activity(
        actor_id=actor_id,
        activity_type=profile.activity_type,
        profile_name=profile.name,
        kind=kind,
        reference_id=owner_id,
        message=message,
        action=action,
        old_asset=before.get(paths.primary) if paths.primary else None,
        new_asset=asset.canonical_url,
    )

    previous_id = before.get(paths.provider_id) if paths.provider_id else None
    if previous_id and previous_id != asset.provider_id:
        queue_asset_deletion(previous_id)
    return entity


async def append_item(
    kind: str,
    owner_id: str,
    array_path: str,
    item: dict[str, Any],
    profile: UploadProfile,
    asset: AssetRef,
    *,
    actor_id: str,
    message: str,
    extra_set: dict[str, Any] | None = None,
) -> dict[str, Any]:
    entity = await push_entity_item(kind, owner_id, array_path, item, extra_set=extra_set)
    if entity is None:
        raise owner_not_found(kind, owner_id)
    logger.info("Appended %s item to %s %s (%s)", profile.name, kind, owner_id, asset.provider_id)

    await record_activity(
        actor_id=actor_id,
        activity_type=profile.activity_type,
        profile_name=profile.name,
        kind=kind,
        reference_id=owner_id,
        message=message,
        action="create",
        new_asset=asset.canonical_url,
        extra={"itemId": str(item.get("_id"))} if item.get("_id") is not None else None,
    )
    return entity


async def create_entity(
    kind: str,
    document: dict[str, Any],
    profile: UploadProfile,
    assets: Sequence[AssetRef],
    *,
    actor_id: str,
    message: str,
) -> dict[str, Any]:
    document.setdefault("createdAt", _now())
    document.setdefault("updatedAt", document["createdAt"])
    entity = await insert_entity(kind, document)
    entity_id = str(entity["_id"])
    logger.info("Created %s %s with %d %s asset(s)", kind, entity_id, len(assets), profile.name)

    await record_activity(
        actor_id=actor_id,
        activity_type=profile.activity_type,
        profile_name=profile.name,
        kind=kind,
        reference_id=entity_id,
        message=message,
        action="create",
        new_asset=assets[0].canonical_url if assets else None,
        extra={"assetCount": len(assets)},
    )
    return entity
