from __future__ import annotations

from bson import ObjectId
from fastapi.testclient import TestClient

from core.errors import asset_service_unavailable

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 2048
ELEVEN_MB = b"\xff" * (11 * 1024 * 1024)


def _files(*payloads: bytes) -> list[tuple[str, tuple[str, bytes, str]]]:
    return [("images", (f"photo-{index}.jpg", data, "image/jpeg")) for index, data in enumerate(payloads, start=1)]


def test_post_with_images_is_created(app, store, assets, scratch_files, auth_headers):
    user_id = str(ObjectId())
    community_id = str(ObjectId())
    client = TestClient(app)

    response = client.post(
        "/v1/posts/with-images",
        data={"content": "Study notes", "postType": "Share Tips", "tags": "python, fastapi", "community": community_id},
        files=_files(JPEG, JPEG),
        headers=auth_headers(user_id),
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["message"] == "Post created"
    assert [image["url"] for image in payload["images"]] == [asset.canonical_url for asset in assets.uploads]
    assert payload["images"][0]["thumbnailUrl"].endswith("?variant=thumbnail")
    assert payload["images"][0]["mediumUrl"].endswith("?variant=medium")
    assert payload["images"][1]["alt"] == "Post image 2"

    post = store.get("post", payload["entity"]["_id"])
    assert post["tags"] == ["python", "fastapi"]
    assert post["user"] == ObjectId(user_id)
    assert post["community"] == ObjectId(community_id)
    assert payload["entity"]["user"] == user_id
    assert post["visibility"] == "public"
    assert post["media"] == [image["url"] for image in payload["images"]]
    assert [activity.type.value for activity in store.activities] == ["post_create"]
    assert scratch_files() == []


def test_array_upload_with_one_oversized_file_uploads_nothing(app, store, assets, scratch_files, auth_headers):
    client = TestClient(app)

    response = client.post(
        "/v1/posts/with-images",
        data={"postType": "Learning update"},
        files=_files(JPEG, JPEG, ELEVEN_MB, JPEG),
        headers=auth_headers(str(ObjectId())),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "File too large"
    assert assets.uploads == []
    assert store.collections["post"] == {}
    assert scratch_files() == []


def test_failure_mid_batch_removes_assets_already_uploaded(app, store, assets, scratch_files, auth_headers):
    assets.error = asset_service_unavailable("timeout")
    assets.fail_at = 2
    client = TestClient(app)

    response = client.post(
        "/v1/posts/with-images",
        data={"postType": "Learning update"},
        files=_files(JPEG, JPEG, JPEG),
        headers=auth_headers(str(ObjectId())),
    )

    assert response.status_code == 502
    assert sorted(assets.deletes) == sorted(asset.provider_id for asset in assets.uploads)
    assert len(assets.deletes) == 2
    assert store.collections["post"] == {}
    assert scratch_files() == []


def test_invalid_form_is_rejected_before_any_upload(app, store, assets, scratch_files, auth_headers):
    client = TestClient(app)

    response = client.post(
        "/v1/posts/with-images",
        data={"postType": "Rant"},
        files=_files(JPEG),
        headers=auth_headers(str(ObjectId())),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_FAILED"
    assert response.json()["details"][0]["field"] == "postType"
    assert assets.uploads == []
    assert scratch_files() == []


def test_post_needs_content_or_images(app, store, assets, auth_headers):
    client = TestClient(app)

    response = client.post(
        "/v1/posts/with-images",
        data={"postType": "Ask Question", "content": "   "},
        files=[("images", ("", b"", "application/octet-stream"))],
        headers=auth_headers(str(ObjectId())),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid post data"


def test_text_only_post_is_allowed(app, store, assets, auth_headers):
    client = TestClient(app)

    response = client.post(
        "/v1/posts/with-images",
        data={"postType": "Ask Question", "content": "Anyone up for a study group?"},
        files=[("images", ("", b"", "application/octet-stream"))],
        headers=auth_headers(str(ObjectId())),
    )

    assert response.status_code == 201
    assert response.json()["images"] == []
    assert assets.uploads == []
