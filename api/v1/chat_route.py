from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from core.response_envelope import document_created, document_deleted, document_response
from core.settings import get_settings
from core.uploads.manager import UploadManager, cleanup_sentinel, get_upload_manager
from core.uploads.sentinel import CleanupSentinel
from security.auth import verify_any_token
from security.principal import AuthPrincipal
from services.chat_service import (
    delete_message_file,
    ensure_chat_participant,
    send_file_message,
    send_voice_message,
    update_chat_avatar,
)
from services.upload_service import UploadPipeline

router = APIRouter(prefix="/chat", tags=["Chat"])

_FILE_EXAMPLE = {
    "fileUrl": "https://res.cloudinary.com/demo/raw/upload/chat-files/notes.pdf",
    "publicId": "cloudinary:raw:chat-files/notes",
    "entity": {"type": "pdf", "content": "notes.pdf"},
}


@router.post("/message/{chat_id}/file")
@document_created(message="File sent", success_example=_FILE_EXAMPLE)
async def send_chat_file(
    chat_id: str,
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    await ensure_chat_participant(chat_id, principal.user_id)
    pipeline = UploadPipeline("chat-attachment", manager=manager, sentinel=sentinel)
    return await send_file_message(
        chat_id,
        principal.user_id,
        pipeline,
        request,
        retention_days=get_settings().chat_file_retention_days,
    )


@router.post("/message/{chat_id}/document")
@document_created(message="Document sent", success_example=_FILE_EXAMPLE)
async def send_chat_document(
    chat_id: str,
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    await ensure_chat_participant(chat_id, principal.user_id)
    pipeline = UploadPipeline("document", manager=manager, sentinel=sentinel)
    return await send_file_message(
        chat_id,
        principal.user_id,
        pipeline,
        request,
        retention_days=get_settings().chat_file_retention_days,
    )


@router.post("/message/{chat_id}/voice")
@document_created(message="Voice message sent")
async def send_chat_voice(
    chat_id: str,
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    await ensure_chat_participant(chat_id, principal.user_id)
    pipeline = UploadPipeline("audio-message", manager=manager, sentinel=sentinel)
    return await send_voice_message(chat_id, principal.user_id, pipeline, request)


@router.delete("/message/{chat_id}/{message_id}/file")
@document_deleted(message="File deleted")
async def delete_chat_file(
    chat_id: str,
    message_id: str,
    principal: AuthPrincipal = Depends(verify_any_token),
):
    return await delete_message_file(chat_id, message_id, principal.user_id)


@router.patch("/{chat_id}/avatar")
@document_response(
    message="Chat avatar updated",
    success_example={"avatar": "https://res.cloudinary.com/demo/image/upload/group-avatars/c1.jpg", "entity": {}},
    response_codes={
        400: "Upload rejected",
        401: "Unauthorized",
        403: "Only chat participants may change its avatar",
        404: "Chat not found",
        502: "Asset service unavailable",
    },
)
async def update_chat_avatar_route(
    chat_id: str,
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    pipeline = UploadPipeline("chat-avatar", manager=manager, sentinel=sentinel)
    return await update_chat_avatar(chat_id, principal.user_id, pipeline, request)
