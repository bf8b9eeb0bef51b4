from __future__ import annotations

import asyncio

import httpx
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from core.errors import asset_service_unavailable

PNG_120KB = b"\x89PNG\r\n\x1a\n" + b"\x00" * (120 * 1024)


def _seed_user(store, **fields) -> str:
    user_id = str(ObjectId())
    store.add(
        "user",
        {"_id": user_id, "username": "ada", "firstName": "Ada", "lastName": "Lovelace", "password": "hash", **fields},
    )
    return user_id


def test_avatar_upload_happy_path(app, store, assets, queue, scratch_files, auth_headers):
    user_id = _seed_user(
        store,
        avatar="https://cdn.test/user-avatars/old",
        avatarAssetId="cloudinary:image:user-avatars/old",
    )
    client = TestClient(app)

    response = client.post(
        "/v1/users/upload-avatar",
        files={"avatar": ("me.png", PNG_120KB, "image/png")},
        headers=auth_headers(user_id),
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "Avatar uploaded successfully"
    assert payload["avatar"] == assets.uploads[0].canonical_url
    assert payload["avatarThumbnail"].endswith("?variant=thumbnail")
    assert payload["avatarSmall"].endswith("?variant=small")
    assert payload["entity"]["_id"] == user_id
    assert "password" not in payload["entity"]
    assert response.headers["X-Request-ID"]

    stored = store.get("user", user_id)
    assert stored["avatar"] == payload["avatar"]
    assert stored["avatarThumbnail"] == payload["avatarThumbnail"]
    assert stored["avatarSmall"] == payload["avatarSmall"]
    assert [activity.type.value for activity in store.activities] == ["avatar_update"]
    assert queue.jobs == [("delete_asset", {"provider_id": "cloudinary:image:user-avatars/old"})]
    assert assets.seen_bytes == [len(PNG_120KB)]
    assert scratch_files() == []


def test_oversize_avatar_is_rejected(app, store, assets, scratch_files, auth_headers):
    user_id = _seed_user(store)
    client = TestClient(app)

    response = client.post(
        "/v1/users/upload-avatar",
        files={"avatar": ("big.jpg", b"\xff" * (6 * 1024 * 1024), "image/jpeg")},
        headers=auth_headers(user_id),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "File too large"
    assert response.json()["details"] == "Maximum file size is 5MB"
    assert assets.uploads == []
    assert "avatar" not in store.get("user", user_id)
    assert scratch_files() == []


def test_disallowed_mime_never_reaches_asset_service(app, store, assets, scratch_files, auth_headers):
    user_id = _seed_user(store)
    client = TestClient(app)

    response = client.post(
        "/v1/users/upload-avatar",
        files={"avatar": ("clip.mp4", b"\x00" * 10240, "video/mp4")},
        headers=auth_headers(user_id),
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid file type. Allowed types: ")
    assert response.json()["code"] == "UPLOAD_MIME_DISALLOWED"
    assert assets.uploads == []
    assert "avatar" not in store.get("user", user_id)
    assert scratch_files() == []


def test_asset_service_outage_returns_bad_gateway(app, store, assets, scratch_files, auth_headers):
    user_id = _seed_user(store)
    assets.error = asset_service_unavailable("connection reset")
    client = TestClient(app)

    response = client.post(
        "/v1/users/upload-avatar",
        files={"avatar": ("me.png", PNG_120KB, "image/png")},
        headers=auth_headers(user_id),
    )

    assert response.status_code == 502
    assert response.json()["code"] == "ASSET_SERVICE_UNAVAILABLE"
    assert "avatar" not in store.get("user", user_id)
    assert store.activities == []
    assert scratch_files() == []


def test_activity_failure_still_returns_success(app, store, scratch_files, auth_headers):
    user_id = _seed_user(store)
    store.fail_activity = True
    client = TestClient(app)

    response = client.post(
        "/v1/users/upload-avatar",
        files={"avatar": ("me.png", PNG_120KB, "image/png")},
        headers=auth_headers(user_id),
    )

    assert response.status_code == 200
    assert store.get("user", user_id)["avatar"] == response.json()["avatar"]
    assert scratch_files() == []


def test_missing_file_is_rejected(app, store, auth_headers):
    user_id = _seed_user(store)
    client = TestClient(app)

    response = client.post(
        "/v1/users/upload-avatar",
        data={"note": "no file here"},
        files={"avatar": ("", b"", "application/octet-stream")},
        headers=auth_headers(user_id),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "No file uploaded"


def test_unknown_user_is_not_found(app, store, assets, scratch_files, auth_headers):
    client = TestClient(app)

    response = client.post(
        "/v1/users/upload-avatar",
        files={"avatar": ("me.png", PNG_120KB, "image/png")},
        headers=auth_headers(str(ObjectId())),
    )

    assert response.status_code == 404
    assert response.json()["code"] == "OWNER_NOT_FOUND"
    assert assets.deletes == [assets.uploads[0].provider_id]
    assert scratch_files() == []


def test_upload_requires_bearer_token(app, scratch_files):
    client = TestClient(app)

    response = client.post("/v1/users/upload-avatar", files={"avatar": ("me.png", PNG_120KB, "image/png")})

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_INVALID_TOKEN"
    assert scratch_files() == []


@pytest.mark.asyncio
async def test_concurrent_uploads_to_one_owner_last_writer_wins(app, store, assets, queue, scratch_files, auth_headers):
    user_id = _seed_user(store)
    transport = httpx.ASGITransport(app=app)

    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        responses = await asyncio.gather(
            *[
                client.post(
                    "/v1/users/upload-avatar",
                    files={"avatar": (f"{name}.png", PNG_120KB, "image/png")},
                    headers=auth_headers(user_id),
                )
                for name in ("first", "second")
            ]
        )

    assert [response.status_code for response in responses] == [200, 200]
    uploaded_urls = {asset.canonical_url for asset in assets.uploads}
    final_avatar = store.get("user", user_id)["avatar"]
    assert final_avatar in uploaded_urls
    assert len(store.activities) == 2

    loser = next(asset for asset in assets.uploads if asset.canonical_url != final_avatar)
    assert queue.jobs == [("delete_asset", {"provider_id": loser.provider_id})]
    assert scratch_files() == []
