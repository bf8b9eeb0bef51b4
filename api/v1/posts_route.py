from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from core.response_envelope import document_created
from core.uploads.manager import UploadManager, cleanup_sentinel, get_upload_manager
from core.uploads.sentinel import CleanupSentinel
from security.auth import verify_any_token
from security.principal import AuthPrincipal
from services.post_service import create_post_with_images
from services.upload_service import UploadPipeline

router = APIRouter(prefix="/posts", tags=["Posts"])


@router.post("/with-images")
@document_created(
    message="Post created",
    success_example={
        "images": [
            {
                "url": "https://res.cloudinary.com/demo/image/upload/post-images/p1.jpg",
                "thumbnailUrl": "https://res.cloudinary.com/demo/image/upload/c_thumb,w_300/post-images/p1.jpg",
                "mediumUrl": "https://res.cloudinary.com/demo/image/upload/c_limit,w_600/post-images/p1.jpg",
                "publicId": "cloudinary:image:post-images/p1",
            }
        ],
        "entity": {"postType": "Share Tips", "visibility": "public"},
    },
)
async def create_post(
    request: Request,
    principal: AuthPrincipal = Depends(verify_any_token),
    manager: UploadManager = Depends(get_upload_manager),
    sentinel: CleanupSentinel = Depends(cleanup_sentinel),
):
    pipeline = UploadPipeline("post-images", manager=manager, sentinel=sentinel)
    return await create_post_with_images(principal.user_id, pipeline, request)
