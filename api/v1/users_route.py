from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from core.response_envelope import document_response
from core.uploads.manager import UploadManager, cleanup_sentinel, get_upload_manager
from core.uploads.sentinel import CleanupSentinel
from security.auth import verify_any_token
from security.principal import AuthPrincipal
from services.media_service import update_user_avatar
from services.upload_service import UploadPipeline

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("/upload-avatar")
@document_response(
    message="Avatar uploaded successfully",
    success_example={
        "avatar": "https://res.cloudinary.com/demo/image/upload/user-avatars/a1.png",
        "avatarThumbnail": "https://res.cloudinary.com/demo/image/upload/c_thumb,w_150/user-avatars/a1.png",
        "avatarSmall": "https://res.cloudinary.com/demo/image/upload/c_thumb,w_50/user-avatars/a1.png",
        "entity": {"_id": "65f1c0ffee", "username": "ada"},
    },
    response_codes={400: "Upload rejected", 401: "Unauthorized", 404: "User not found", 502: "Asset service unavailable"},
)
async def upload_avatar(
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    pipeline = UploadPipeline("user-avatar", manager=manager, sentinel=sentinel)
    return await update_user_avatar(principal.user_id, pipeline, request)
