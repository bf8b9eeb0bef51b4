from __future__ import annotations

import logging
from datetime import datetime, timezone

from core.queue.tasks import task
from core.uploads.manager import UploadManager
from repositories.entity_repo import expire_message_file, find_expired_attachments

logger = logging.getLogger(__name__)


@task("delete_asset")
async def delete_asset_task(provider_id: str) -> bool:
    return await UploadManager.get_instance().assets.delete(provider_id)


@task("purge_expired_attachments")
async def purge_expired_attachments_task(limit: int = 500) -> int:
    rows = await find_expired_attachments(datetime.now(timezone.utc), limit=limit)
    assets = UploadManager.get_instance().assets
    purged = 0
    for row in rows:
        if not await expire_message_file(row["chat_id"], row["message_id"]):
            continue
        purged += 1
        if row.get("public_id"):
            await assets.delete(row["public_id"])
    if rows:
        logger.info("Expired %d of %d chat attachments", purged, len(rows))
    return purged
