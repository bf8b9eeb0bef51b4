from __future__ import annotations

import asyncio
import copy
import itertools
import os
import time
from typing import Any

# Settings are read once at import time by core.database and main.
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("CLOUDINARY_CLOUD_NAME", "demo")
os.environ.setdefault("CLOUDINARY_API_KEY", "key")
os.environ.setdefault("CLOUDINARY_API_SECRET", "secret")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("UPLOAD_RATE_LIMIT", "1000/minute")

import jwt
import pytest
from bson import ObjectId

from core.queue.manager import QueueManager
from core.queue.types import QueueJobResult
from core.uploads.assets.provider import make_provider_id
from core.uploads.assets.service import AssetService
from core.uploads.manager import UploadManager
from core.uploads.policy import DEFAULT_PROFILES, PolicyRegistry
from core.uploads.scratch import ScratchStore
from core.uploads.types import AssetRef, StagedFile
from schemas.imports import as_object_id


class FakeAssetProvider:
    """Records uploads and deletes; optionally fails on the n-th upload."""

    def __init__(self, backend_name: str = "cloudinary", *, with_variants: bool = True) -> None:
        self.backend_name = backend_name
        self.with_variants = with_variants
        self.uploads: list[AssetRef] = []
        self.seen_bytes: list[int] = []
        self.deletes: list[str] = []
        self.error: Exception | None = None
        self.fail_at: int | None = None
        self._ids = itertools.count(1)

    async def upload(self, staged: StagedFile) -> AssetRef:
        await asyncio.sleep(0)
        if self.error is not None and (self.fail_at is None or self.fail_at == len(self.uploads)):
            raise self.error
        self.seen_bytes.append(len(staged.temp_path.read_bytes()))

        object_id = f"{staged.profile.bucket}/asset-{next(self._ids)}"
        url = f"https://cdn.test/{object_id}"
        variants = {}
        if self.with_variants:
            variants = {variant.name: f"{url}?variant={variant.name}" for variant in staged.profile.eager_variants}
        asset = AssetRef(
            canonical_url=url,
            provider_id=make_provider_id(self.backend_name, staged.profile.resource_type, object_id),
            content_type=staged.declared_mime,
            bytes=staged.size_bytes,
            variants=variants,
        )
        self.uploads.append(asset)
        return asset

    async def delete(self, provider_id: str) -> bool:
        self.deletes.append(provider_id)
        return True


class FakeQueueProvider:
    backend_name = "fake"

    def __init__(self) -> None:
        self.jobs: list[tuple[str, dict[str, Any]]] = []

    def enqueue(self, task_key, payload):
        self.jobs.append((str(task_key), payload))
        return QueueJobResult(task_id=f"job-{len(self.jobs)}", backend=self.backend_name, task_key=str(task_key))


class InMemoryStore:
    """Stands in for the repository functions the pipeline calls."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict]] = {"user": {}, "community": {}, "chat": {}, "post": {}}
        self.activities: list[Any] = []
        self.fail_activity = False

    def add(self, kind: str, document: dict) -> dict:
        self.collections[kind][str(document["_id"])] = copy.deepcopy(document)
        return document

    def get(self, kind: str, entity_id: Any) -> dict | None:
        return self.collections[kind].get(str(entity_id))

    async def get_entity_by_id(self, kind, entity_id, projection=None):
        document = self.get(kind, entity_id)
        if document is None:
            return None
        document = copy.deepcopy(document)
        match = (projection or {}).get("messages")
        if isinstance(match, dict) and "$elemMatch" in match:
            wanted = str(match["$elemMatch"]["_id"])
            document["messages"] = [m for m in document.get("messages", []) if str(m["_id"]) == wanted][:1]
        return document

    async def set_entity_fields(self, kind, entity_id, update_dict):
        document = self.get(kind, entity_id)
        if document is None:
            return None
        before = copy.deepcopy(document)
        document.update(copy.deepcopy(update_dict))
        return before

    async def push_entity_item(self, kind, entity_id, array_path, item, *, extra_set=None):
        document = self.get(kind, entity_id)
        if document is None:
            return None
        document.setdefault(array_path, []).append(copy.deepcopy(item))
        document.update(copy.deepcopy(extra_set or {}))
        return copy.deepcopy(document)

    async def insert_entity(self, kind, document):
        stored = {**copy.deepcopy(document), "_id": ObjectId()}
        self.add(kind, stored)
        return copy.deepcopy(stored)

    async def mark_message_file_deleted(self, chat_id, message_id, sender_id):
        chat = self.get("chat", chat_id)
        if chat is None:
            return None
        for message in chat.get("messages", []):
            file_message = message.get("fileMessage")
            if (
                str(message["_id"]) == message_id
                and message.get("sender") == as_object_id(sender_id)
                and file_message
                and not file_message.get("isDeleted")
            ):
                before = copy.deepcopy(chat)
                file_message["isDeleted"] = True
                file_message["fileUrl"] = None
                return before
        return None

    async def create_activity(self, payload):
        if self.fail_activity:
            raise RuntimeError("activity collection unavailable")
        self.activities.append(payload)
        return payload


@pytest.fixture
def scratch(tmp_path) -> ScratchStore:
    store = ScratchStore(tmp_path / "uploads")
    store.ensure_root()
    return store


@pytest.fixture
def assets() -> FakeAssetProvider:
    return FakeAssetProvider("cloudinary")


@pytest.fixture
def audio_assets() -> FakeAssetProvider:
    return FakeAssetProvider("s3")


@pytest.fixture
def queue() -> FakeQueueProvider:
    provider = FakeQueueProvider()
    QueueManager.configure(provider)
    return provider


@pytest.fixture
def store(monkeypatch) -> InMemoryStore:
    from core.uploads import commit
    from services import chat_service, media_service

    fake = InMemoryStore()
    monkeypatch.setattr(commit, "set_entity_fields", fake.set_entity_fields)
    monkeypatch.setattr(commit, "push_entity_item", fake.push_entity_item)
    monkeypatch.setattr(commit, "insert_entity", fake.insert_entity)
    monkeypatch.setattr(commit, "create_activity", fake.create_activity)
    monkeypatch.setattr(media_service, "get_entity_by_id", fake.get_entity_by_id)
    monkeypatch.setattr(chat_service, "get_entity_by_id", fake.get_entity_by_id)
    monkeypatch.setattr(chat_service, "mark_message_file_deleted", fake.mark_message_file_deleted)
    return fake


@pytest.fixture
def upload_manager(scratch, assets, audio_assets, queue) -> UploadManager:
    return UploadManager.configure(
        registry=PolicyRegistry(DEFAULT_PROFILES),
        scratch=scratch,
        assets=AssetService({"cloudinary": assets, "s3": audio_assets}),
    )


@pytest.fixture
def app(upload_manager, store):
    from main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def auth_headers():
    def _headers(user_id: str, role: str = "user") -> dict[str, str]:
        token = jwt.encode(
            {"id": user_id, "role": role, "iat": int(time.time())},
            os.environ["JWT_SECRET"],
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def scratch_files(scratch):
    def _list() -> list[str]:
        return sorted(path.name for path in scratch.root.iterdir())

    return _list
