from __future__ import annotations

from core.database import db
from schemas.activity import ActivityCreate, ActivityOut

_ACTIVITY_INDEXES_READY = False


async def _ensure_activity_indexes() -> None:
    global _ACTIVITY_INDEXES_READY
    if _ACTIVITY_INDEXES_READY:
        return

    await db.activities.create_index([("user", 1), ("createdAt", -1)], name="idx_activity_user_created")
    await db.activities.create_index("referenceId", name="idx_activity_reference_id")
    _ACTIVITY_INDEXES_READY = True


async def create_activity(payload: ActivityCreate) -> ActivityOut:
    await _ensure_activity_indexes()
    document = payload.to_document()
    result = await db.activities.insert_one(document)
    return ActivityOut(**{**document, "_id": result.inserted_id})
