from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Any

import python_multipart
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect, Request

from core.errors import (
    disallowed_mime,
    malformed_upload,
    too_large,
    too_many_files,
    unexpected_field,
)
from core.uploads.sentinel import CleanupSentinel
from core.uploads.types import StagedFile, StagedFileState, UploadProfile, normalize_mime

logger = logging.getLogger(__name__)


class _Event(Enum):
    PART_BEGIN = 1
    PART_DATA = 2
    PART_END = 3
    HEADER_FIELD = 4
    HEADER_VALUE = 5
    HEADER_END = 6
    HEADERS_FINISHED = 7
    END = 8


@dataclass
class IngressResult:
    files: list[StagedFile] = field(default_factory=list)
    fields: dict[str, list[str]] = field(default_factory=dict)

    def first(self, name: str, default: str | None = None) -> str | None:
        values = self.fields.get(name)
        return values[0] if values else default

    def getlist(self, name: str) -> list[str]:
        return list(self.fields.get(name, []))


@dataclass
class _Part:
    name: str
    staged: StagedFile | None = None
    handle: IO[bytes] | None = None
    text: bytearray = field(default_factory=bytearray)
    skip: bool = False


def _decode(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def _client_file_name(raw_name: str) -> str:
    return raw_name.replace("\\", "/").rsplit("/", 1)[-1]


class MultipartIngress:
    """Streams one multipart body into scratch files under a single profile.

    Every violation is raised on first sight; files already staged stay
    registered with the sentinel and are released when the request ends.
    """

    max_field_bytes = 64 * 1024
    max_fields = 50

    def __init__(self, profile: UploadProfile, sentinel: CleanupSentinel) -> None:
        self._profile = profile
        self._sentinel = sentinel
        self._events: list[tuple[_Event, bytes]] = []
        self._result = IngressResult()
        self._part: _Part | None = None
        self._header_field = b""
        self._header_value = b""
        self._headers: dict[bytes, bytes] = {}
        self._field_count = 0
        self._ended = False

    @property
    def byte_ceiling(self) -> int:
        return self._profile.request_byte_ceiling(self.max_fields * self.max_field_bytes)

    def _on_part_begin(self) -> None:
        self._events.append((_Event.PART_BEGIN, b""))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_Event.PART_DATA, data[start:end]))

    def _on_part_end(self) -> None:
        self._events.append((_Event.PART_END, b""))

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_Event.HEADER_FIELD, data[start:end]))

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_Event.HEADER_VALUE, data[start:end]))

    def _on_header_end(self) -> None:
        self._events.append((_Event.HEADER_END, b""))

    def _on_headers_finished(self) -> None:
        self._events.append((_Event.HEADERS_FINISHED, b""))

    def _on_end(self) -> None:
        self._events.append((_Event.END, b""))

    def _build_parser(self, request: Request) -> Any:
        content_type, params = parse_options_header(request.headers.get("content-type", ""))
        if content_type != b"multipart/form-data":
            raise malformed_upload("Expected a multipart/form-data request body")
        boundary = params.get(b"boundary")
        if not boundary:
            raise malformed_upload("Missing multipart boundary")

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > self.byte_ceiling:
                raise too_large(self._profile.max_bytes)

        callbacks = {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_end": self._on_end,
        }
        return python_multipart.MultipartParser(boundary, callbacks)

    async def parse(self, request: Request) -> IngressResult:
        parser = self._build_parser(request)
        try:
            async for chunk in request.stream():
                if chunk:
                    parser.write(chunk)
                await self._drain()
            parser.finalize()
            await self._drain()
        except ClientDisconnect as err:
            raise malformed_upload("Client disconnected before the upload completed") from err
        except MultipartParseError as err:
            raise malformed_upload(str(err) or "Invalid multipart framing") from err
        finally:
            self._close_open_handle()

        if not self._ended:
            raise malformed_upload("Unexpected end of multipart body")

        for staged in self._result.files:
            staged.advance(StagedFileState.VALIDATED)
        return self._result

    async def _drain(self) -> None:
        events, self._events = self._events, []
        for event, data in events:
            if event is _Event.PART_BEGIN:
                self._headers = {}
            elif event is _Event.HEADER_FIELD:
                self._header_field += data
            elif event is _Event.HEADER_VALUE:
                self._header_value += data
            elif event is _Event.HEADER_END:
                self._headers[self._header_field.lower()] = self._header_value
                self._header_field = b""
                self._header_value = b""
            elif event is _Event.HEADERS_FINISHED:
                await self._begin_part()
            elif event is _Event.PART_DATA:
                await self._write(data)
            elif event is _Event.PART_END:
                await self._end_part()
            elif event is _Event.END:
                self._ended = True

    async def _begin_part(self) -> None:
        disposition = self._headers.get(b"content-disposition")
        if disposition is None:
            raise malformed_upload("Missing Content-Disposition header")
        _, options = parse_options_header(disposition)
        raw_name = options.get(b"name")
        if raw_name is None:
            raise malformed_upload("Missing form field name")
        name = _decode(raw_name)

        if b"filename" not in options:
            self._field_count += 1
            if self._field_count > self.max_fields:
                raise malformed_upload(f"Too many form fields. Maximum is {self.max_fields}")
            self._part = _Part(name=name)
            return

        file_name = _client_file_name(_decode(options[b"filename"]))
        if not file_name:
            # Browsers send an empty filename for an untouched file input.
            self._part = _Part(name=name, skip=True)
            return

        profile = self._profile
        if not profile.fields.accepts(name):
            raise unexpected_field(name)

        declared_mime = normalize_mime(_decode(self._headers.get(b"content-type", b"")))
        if not profile.allows(declared_mime):
            raise disallowed_mime(declared_mime or "<missing>", profile.allowed_mime)

        if len(self._result.files) >= profile.max_count:
            raise too_many_files(profile.max_count)

        staged = self._sentinel.stage(
            field_name=name,
            declared_mime=declared_mime,
            declared_name=file_name,
            profile=profile,
        )
        self._result.files.append(staged)
        handle = await run_in_threadpool(open, staged.temp_path, "wb")
        self._part = _Part(name=name, staged=staged, handle=handle)

    async def _write(self, data: bytes) -> None:
        part = self._part
        if part is None or part.skip or not data:
            return

        if part.staged is None:
            if len(part.text) + len(data) > self.max_field_bytes:
                raise malformed_upload(f"Form field '{part.name}' is too large")
            part.text.extend(data)
            return

        if part.staged.size_bytes + len(data) > self._profile.max_bytes:
            raise too_large(self._profile.max_bytes)
        await run_in_threadpool(part.handle.write, data)
        part.staged.size_bytes += len(data)

    async def _end_part(self) -> None:
        part, self._part = self._part, None
        if part is None or part.skip:
            return

        if part.staged is None:
            try:
                value = bytes(part.text).decode("utf-8")
            except UnicodeDecodeError as err:
                raise malformed_upload(f"Form field '{part.name}' is not valid UTF-8") from err
            self._result.fields.setdefault(part.name, []).append(value)
            return

        handle, part.handle = part.handle, None
        await run_in_threadpool(handle.close)
        logger.debug(
            "Staged %s (%s, %d bytes) for profile %s",
            part.staged.temp_path.name,
            part.staged.declared_mime,
            part.staged.size_bytes,
            self._profile.name,
        )

    def _close_open_handle(self) -> None:
        part = self._part
        if part is not None and part.handle is not None:
            part.handle.close()
            part.handle = None
