from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Request

from core.errors import auth_permission_denied, owner_not_found, resource_not_found, validation_failed
from core.uploads.commit import append_item, queue_asset_deletion, record_activity
from repositories.entity_repo import get_entity_by_id, mark_message_file_deleted
from schemas.chat import LAST_MESSAGE_TEXT, ChatFileMessage, FileMessage, VoiceMessage, classify_chat_file
from schemas.imports import ActivityType, ChatFileType, as_object_id
from services.media_service import replace_owner_asset
from services.upload_service import UploadPipeline

logger = logging.getLogger(__name__)


def _parse_duration(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _participant_ids(chat: dict[str, Any]) -> set[str]:
    return {str(participant) for participant in chat.get("participants") or []}


async def ensure_chat_participant(
    chat_id: str,
    user_id: str,
    action: str = "send messages in this chat",
    projection: dict[str, int] | None = None,
) -> dict[str, Any]:
    chat = await get_entity_by_id("chat", chat_id, {"participants": 1, **(projection or {})})
    if chat is None:
        raise owner_not_found("chat", chat_id)
    if user_id not in _participant_ids(chat):
        raise auth_permission_denied(action)
    return chat


async def ensure_group_chat_member(chat_id: str, user_id: str) -> dict[str, Any]:
    chat = await ensure_chat_participant(chat_id, user_id, "change the avatar of this chat", {"type": 1, "title": 1})
    if chat.get("type") != "group":
        raise validation_failed("Only group chats have an avatar", {"chatId": chat_id, "type": chat.get("type")})
    return chat


async def send_file_message(
    chat_id: str,
    user_id: str,
    pipeline: UploadPipeline,
    request: Request,
    *,
    retention_days: int,
) -> dict[str, Any]:
    ingress = await pipeline.ingest(request)
    staged = ingress.files[0]
    asset = await pipeline.upload_one(staged)

    now = datetime.now(timezone.utc)
    file_type = classify_chat_file(staged.declared_mime)
    chat_message = ChatFileMessage(
        sender=user_id,
        content=staged.declared_name,
        type=file_type,
        timestamp=now,
        fileMessage=FileMessage(
            fileUrl=asset.canonical_url,
            fileName=staged.declared_name,
            fileSize=asset.bytes,
            fileType=file_type,
            mimeType=staged.declared_mime,
            publicId=asset.provider_id,
            expiresAt=now + timedelta(days=retention_days),
        ),
    )
    document = chat_message.to_document()
    await pipeline.commit(
        [asset],
        append_item(
            "chat",
            chat_id,
            "messages",
            document,
            pipeline.profile,
            asset,
            actor_id=user_id,
            message=f"Shared {staged.declared_name} in chat",
            extra_set={"lastMessage": LAST_MESSAGE_TEXT[file_type], "updatedAt": now},
        ),
    )
    pipeline.finish(ingress.files)
    return {"fileUrl": asset.canonical_url, "publicId": asset.provider_id, "entity": document}


async def send_voice_message(chat_id: str, user_id: str, pipeline: UploadPipeline, request: Request) -> dict[str, Any]:
    ingress = await pipeline.ingest(request)
    staged = ingress.files[0]
    asset = await pipeline.upload_one(staged)

    duration = ingress.first("duration")
    now = datetime.now(timezone.utc)
    chat_message = ChatFileMessage(
        sender=user_id,
        content="Voice message",
        type=ChatFileType.VOICE,
        timestamp=now,
        voiceMessage=VoiceMessage(
            fileUrl=asset.canonical_url,
            fileSize=asset.bytes,
            mimeType=staged.declared_mime,
            publicId=asset.provider_id,
            duration=_parse_duration(duration),
        ),
    )
    document = chat_message.to_document()
    await pipeline.commit(
        [asset],
        append_item(
            "chat",
            chat_id,
            "messages",
            document,
            pipeline.profile,
            asset,
            actor_id=user_id,
            message="Sent a voice message",
            extra_set={"lastMessage": LAST_MESSAGE_TEXT[ChatFileType.VOICE], "updatedAt": now},
        ),
    )
    pipeline.finish(ingress.files)
    return {"fileUrl": asset.canonical_url, "publicId": asset.provider_id, "entity": document}


async def delete_message_file(chat_id: str, message_id: str, user_id: str) -> dict[str, Any]:
    before = await mark_message_file_deleted(chat_id, message_id, user_id)
    if before is None:
        await _raise_delete_rejection(chat_id, message_id, user_id)

    message = next(
        (item for item in before.get("messages", []) if str(item.get("_id")) == message_id),
        None,
    )
    file_message = (message or {}).get("fileMessage") or {}
    provider_id = file_message.get("publicId")
    queue_asset_deletion(provider_id)

    await record_activity(
        actor_id=user_id,
        activity_type=ActivityType.FILE_DELETED.value,
        kind="chat",
        reference_id=chat_id,
        message=f"Deleted {file_message.get('fileName') or 'a file'} from chat",
        action="delete",
        old_asset=file_message.get("fileUrl"),
        extra={"messageId": message_id},
    )
    return {"deleted": True, "messageId": message_id}


async def _raise_delete_rejection(chat_id: str, message_id: str, user_id: str) -> None:
    message_key = as_object_id(message_id)
    chat = await get_entity_by_id("chat", chat_id, {"messages": {"$elemMatch": {"_id": message_key}}})
    if chat is None:
        raise owner_not_found("chat", chat_id)
    messages = chat.get("messages") or []
    if not messages or not messages[0].get("fileMessage"):
        raise resource_not_found("Message file", message_id)
    if str(messages[0].get("sender")) != user_id:
        raise auth_permission_denied("delete files sent by another user")
    raise resource_not_found("Message file", message_id)


async def update_chat_avatar(chat_id: str, user_id: str, pipeline: UploadPipeline, request: Request) -> dict[str, Any]:
    chat = await ensure_group_chat_member(chat_id, user_id)
    url_fields, entity = await replace_owner_asset(
        "chat",
        chat_id,
        pipeline,
        request,
        actor_id=user_id,
        message=f"Updated avatar of chat {chat.get('title') or chat_id}",
    )
    entity.pop("messages", None)
    return {**url_fields, "entity": entity}
