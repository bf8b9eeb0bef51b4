from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from core.response_envelope import document_response
from core.uploads.manager import UploadManager, cleanup_sentinel, get_upload_manager
from core.uploads.sentinel import CleanupSentinel
from security.auth import verify_any_token
from security.principal import AuthPrincipal
from services.media_service import update_community_media
from services.upload_service import UploadPipeline

router = APIRouter(prefix="/communities", tags=["Communities"])

_RESPONSE_CODES = {
    400: "Upload rejected",
    401: "Unauthorized",
    403: "Only the community admin may change its media",
    404: "Community not found",
    502: "Asset service unavailable",
}


@router.patch("/{community_id}/image")
@document_response(
    message="Community image updated",
    success_example={"image": "https://res.cloudinary.com/demo/image/upload/community-images/c1.jpg", "entity": {}},
    response_codes=_RESPONSE_CODES,
)
async def update_community_image(
    community_id: str,
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    pipeline = UploadPipeline("community-image", manager=manager, sentinel=sentinel)
    return await update_community_media(community_id, principal.user_id, pipeline, request, label="image")


@router.patch("/{community_id}/avatar")
@document_response(
    message="Community avatar updated",
    success_example={"avatar": "https://res.cloudinary.com/demo/image/upload/community-avatars/c1.jpg", "entity": {}},
    response_codes=_RESPONSE_CODES,
)
async def update_community_avatar(
    community_id: str,
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    pipeline = UploadPipeline("community-avatar", manager=manager, sentinel=sentinel)
    return await update_community_media(community_id, principal.user_id, pipeline, request, label="avatar")


@router.patch("/{community_id}/header-image")
@document_response(
    message="Community header image updated",
    success_example={"headerImage": "https://res.cloudinary.com/demo/image/upload/community-headers/c1.jpg", "entity": {}},
    response_codes=_RESPONSE_CODES,
)
async def update_community_header_image(
    community_id: str,
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    pipeline = UploadPipeline("community-header", manager=manager, sentinel=sentinel)
    return await update_community_media(community_id, principal.user_id, pipeline, request, label="header image")
