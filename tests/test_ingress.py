from __future__ import annotations

import pytest
from starlette.requests import Request

from core.errors import AppException, ErrorCode
from core.uploads.ingress import MultipartIngress
from core.uploads.policy import MB, POST_IMAGES, USER_AVATAR
from core.uploads.sentinel import CleanupSentinel
from core.uploads.types import StagedFileState

BOUNDARY = "----pipeline-test-boundary"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048


def _multipart(parts, *, close: bool = True) -> bytes:
    body = b""
    for name, filename, content_type, data in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        body += f"--{BOUNDARY}\r\nContent-Disposition: {disposition}\r\n".encode()
        if content_type:
            body += f"Content-Type: {content_type}\r\n".encode()
        body += b"\r\n" + data + b"\r\n"
    if close:
        body += f"--{BOUNDARY}--\r\n".encode()
    return body


def _request(
    body: bytes,
    *,
    content_type: str = f"multipart/form-data; boundary={BOUNDARY}",
    chunk_size: int = 4096,
    disconnect_after: int | None = None,
    content_length: int | None = None,
) -> Request:
    chunks = [body[i : i + chunk_size] for i in range(0, len(body), chunk_size)] or [b""]
    messages = [{"type": "http.request", "body": chunk, "more_body": True} for chunk in chunks]
    if disconnect_after is not None:
        messages = messages[:disconnect_after] + [{"type": "http.disconnect"}]
    else:
        messages.append({"type": "http.request", "body": b"", "more_body": False})

    async def receive():
        return messages.pop(0)

    headers = [
        (b"content-type", content_type.encode()),
        (b"content-length", str(content_length if content_length is not None else len(body)).encode()),
    ]
    scope = {"type": "http", "method": "POST", "path": "/", "headers": headers, "query_string": b""}
    return Request(scope, receive)


async def _parse_error(profile, sentinel, request) -> AppException:
    with pytest.raises(AppException) as exc_info:
        await MultipartIngress(profile, sentinel).parse(request)
    sentinel.release_all()
    return exc_info.value


@pytest.mark.asyncio
async def test_single_file_is_staged_and_validated(scratch):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("avatar", "me.png", "image/png", PNG)])

    result = await MultipartIngress(USER_AVATAR, sentinel).parse(_request(body, chunk_size=100))

    staged = result.files[0]
    assert staged.state == StagedFileState.VALIDATED
    assert staged.size_bytes == len(PNG)
    assert staged.temp_path.read_bytes() == PNG
    assert staged.declared_name == "me.png"
    sentinel.release_all()
    assert sentinel.balanced


@pytest.mark.asyncio
async def test_text_fields_are_collected_alongside_files(scratch):
    sentinel = CleanupSentinel(scratch)
    body = _multipart(
        [
            ("content", None, None, "Hello ✓".encode()),
            ("tags", None, None, b"python"),
            ("tags", None, None, b"fastapi"),
            ("images", "one.jpg", "image/jpeg", b"jpeg-bytes"),
        ]
    )

    result = await MultipartIngress(POST_IMAGES, sentinel).parse(_request(body))

    assert result.first("content") == "Hello ✓"
    assert result.getlist("tags") == ["python", "fastapi"]
    assert len(result.files) == 1
    sentinel.release_all()


@pytest.mark.asyncio
async def test_empty_filename_part_is_ignored(scratch):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("avatar", "", "application/octet-stream", b"")])

    result = await MultipartIngress(USER_AVATAR, sentinel).parse(_request(body))

    assert result.files == []
    assert sentinel.acquisitions == 0


@pytest.mark.asyncio
async def test_disallowed_mime_is_rejected_before_staging(scratch, scratch_files):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("avatar", "clip.mp4", "video/mp4", b"\x00" * 10240)])

    error = await _parse_error(USER_AVATAR, sentinel, _request(body))

    assert error.status_code == 400
    assert error.code == ErrorCode.UPLOAD_MIME_DISALLOWED.value
    assert error.detail["message"].startswith("Invalid file type. Allowed types: ")
    assert sentinel.acquisitions == 0
    assert scratch_files() == []


@pytest.mark.asyncio
async def test_oversized_part_is_cut_off_and_released(scratch, scratch_files):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("images", "huge.jpg", "image/jpeg", b"\xff" * (10 * MB + 1))])

    error = await _parse_error(POST_IMAGES, sentinel, _request(body, chunk_size=64 * 1024))

    assert error.code == ErrorCode.UPLOAD_TOO_LARGE.value
    assert error.detail["message"] == "File too large"
    assert error.detail["details"] == "Maximum file size is 10MB"
    assert sentinel.acquisitions == 1
    assert sentinel.balanced
    assert scratch_files() == []


@pytest.mark.asyncio
async def test_declared_length_over_ceiling_is_rejected_before_reading(scratch):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("avatar", "me.png", "image/png", PNG)])

    error = await _parse_error(
        USER_AVATAR,
        sentinel,
        _request(body, content_length=MultipartIngress(USER_AVATAR, sentinel).byte_ceiling + 1),
    )

    assert error.code == ErrorCode.UPLOAD_TOO_LARGE.value
    assert sentinel.acquisitions == 0


@pytest.mark.asyncio
async def test_full_size_file_with_large_text_fields_fits_under_ceiling(scratch):
    sentinel = CleanupSentinel(scratch)
    avatar = PNG + b"\x00" * (USER_AVATAR.max_bytes - len(PNG))
    notes = [(f"note{i}", None, None, b"x" * (60 * 1024)) for i in range(4)]
    body = _multipart([*notes, ("avatar", "me.png", "image/png", avatar)])

    result = await MultipartIngress(USER_AVATAR, sentinel).parse(_request(body, chunk_size=256 * 1024))

    assert len(body) > USER_AVATAR.request_byte_ceiling()
    assert result.files[0].size_bytes == USER_AVATAR.max_bytes
    assert len(result.first("note3")) == 60 * 1024
    sentinel.release_all()
    assert sentinel.balanced


@pytest.mark.asyncio
async def test_too_many_files(scratch, scratch_files):
    sentinel = CleanupSentinel(scratch)
    parts = [("images", f"{i}.jpg", "image/jpeg", b"jpeg") for i in range(POST_IMAGES.max_count + 1)]

    error = await _parse_error(POST_IMAGES, sentinel, _request(_multipart(parts)))

    assert error.code == ErrorCode.UPLOAD_TOO_MANY_FILES.value
    assert error.detail["details"] == "Maximum 10 files allowed"
    assert sentinel.acquisitions == POST_IMAGES.max_count
    assert scratch_files() == []


@pytest.mark.asyncio
async def test_second_file_on_single_field_profile_counts_as_too_many(scratch):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("avatar", "a.png", "image/png", PNG), ("avatar", "b.png", "image/png", PNG)])

    error = await _parse_error(USER_AVATAR, sentinel, _request(body))

    assert error.code == ErrorCode.UPLOAD_TOO_MANY_FILES.value


@pytest.mark.asyncio
async def test_file_on_undeclared_field(scratch):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("photo", "me.png", "image/png", PNG)])

    error = await _parse_error(USER_AVATAR, sentinel, _request(body))

    assert error.code == ErrorCode.UPLOAD_UNEXPECTED_FIELD.value
    assert error.detail["message"] == "Unexpected file field"


@pytest.mark.asyncio
async def test_missing_boundary_is_malformed(scratch):
    sentinel = CleanupSentinel(scratch)

    error = await _parse_error(USER_AVATAR, sentinel, _request(b"", content_type="multipart/form-data"))

    assert error.code == ErrorCode.UPLOAD_MALFORMED.value
    assert error.detail["message"] == "File upload error"


@pytest.mark.asyncio
async def test_non_multipart_body_is_malformed(scratch):
    sentinel = CleanupSentinel(scratch)

    error = await _parse_error(USER_AVATAR, sentinel, _request(b"{}", content_type="application/json"))

    assert error.code == ErrorCode.UPLOAD_MALFORMED.value


@pytest.mark.asyncio
async def test_truncated_body_is_malformed_and_released(scratch, scratch_files):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("avatar", "me.png", "image/png", PNG)], close=False)[:-100]

    error = await _parse_error(USER_AVATAR, sentinel, _request(body))

    assert error.code == ErrorCode.UPLOAD_MALFORMED.value
    assert error.detail["details"] == "Unexpected end of multipart body"
    assert scratch_files() == []


@pytest.mark.asyncio
async def test_client_disconnect_mid_upload_releases_partial_file(scratch, scratch_files):
    sentinel = CleanupSentinel(scratch)
    body = _multipart([("avatar", "me.png", "image/png", b"\x01" * 200_000)])

    error = await _parse_error(USER_AVATAR, sentinel, _request(body, chunk_size=16 * 1024, disconnect_after=3))

    assert error.code == ErrorCode.UPLOAD_MALFORMED.value
    assert "disconnected" in error.detail["details"]
    assert sentinel.acquisitions == 1
    assert sentinel.balanced
    assert scratch_files() == []
