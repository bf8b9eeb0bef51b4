from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from pymongo import ReturnDocument
from pymongo.errors import OperationFailure, PyMongoError

from core.database import db
from core.errors import concurrent_modification, store_unavailable
from schemas.imports import as_object_id

WRITE_CONFLICT = 112

COLLECTIONS: dict[str, str] = {
    "user": "users",
    "community": "communities",
    "chat": "chats",
    "post": "posts",
}


def _collection(kind: str):
    try:
        return db[COLLECTIONS[kind]]
    except KeyError as err:
        raise ValueError(f"Unknown entity kind '{kind}'") from err


def _id_filter(entity_id: str) -> dict:
    return {"_id": as_object_id(entity_id)}


@contextmanager
def store_errors(kind: str, entity_id: str | None = None) -> Iterator[None]:
    """Translate driver failures into client-facing store errors."""
    try:
        yield
    except OperationFailure as err:
        if err.code == WRITE_CONFLICT:
            raise concurrent_modification(kind, entity_id or "") from err
        raise store_unavailable(str(err)) from err
    except PyMongoError as err:
        raise store_unavailable(str(err) or err.__class__.__name__) from err


async def get_entity_by_id(kind: str, entity_id: str, projection: dict | None = None) -> dict | None:
    with store_errors(kind, entity_id):
        return await _collection(kind).find_one(_id_filter(entity_id), projection)


async def set_entity_fields(kind: str, entity_id: str, update_dict: dict[str, Any]) -> dict | None:
    """Apply ``update_dict`` in one ``$set`` and return the document as it was before."""
    with store_errors(kind, entity_id):
        return await _collection(kind).find_one_and_update(
            _id_filter(entity_id),
            {"$set": update_dict},
            return_document=ReturnDocument.BEFORE,
        )


async def push_entity_item(
    kind: str,
    entity_id: str,
    array_path: str,
    item: dict[str, Any],
    *,
    extra_set: dict[str, Any] | None = None,
) -> dict | None:
    update: dict[str, Any] = {"$push": {array_path: item}}
    if extra_set:
        update["$set"] = extra_set
    with store_errors(kind, entity_id):
        return await _collection(kind).find_one_and_update(
            _id_filter(entity_id),
            update,
            return_document=ReturnDocument.AFTER,
        )


async def insert_entity(kind: str, document: dict[str, Any]) -> dict:
    with store_errors(kind):
        result = await _collection(kind).insert_one(document)
    return {**document, "_id": result.inserted_id}


async def mark_message_file_deleted(chat_id: str, message_id: str, sender_id: str) -> dict | None:
    """Flag one undeleted attachment of ``sender_id`` as deleted; returns the chat before the write."""
    message_filter: dict[str, Any] = {
        "_id": as_object_id(message_id),
        "sender": as_object_id(sender_id),
        "fileMessage.isDeleted": False,
    }
    with store_errors("chat", chat_id):
        return await _collection("chat").find_one_and_update(
            {**_id_filter(chat_id), "messages": {"$elemMatch": message_filter}},
            {
                "$set": {
                    "messages.$.fileMessage.isDeleted": True,
                    "messages.$.fileMessage.fileUrl": None,
                }
            },
            return_document=ReturnDocument.BEFORE,
        )


async def find_expired_attachments(now: datetime, limit: int = 500) -> list[dict]:
    """Return ``{chat_id, message_id, public_id}`` rows for attachments past their expiry."""
    pipeline = [
        {"$match": {"messages.fileMessage.expiresAt": {"$lte": now}, "messages.fileMessage.isDeleted": False}},
        {"$unwind": "$messages"},
        {"$match": {"messages.fileMessage.expiresAt": {"$lte": now}, "messages.fileMessage.isDeleted": False}},
        {
            "$project": {
                "_id": 0,
                "chat_id": "$_id",
                "message_id": "$messages._id",
                "public_id": "$messages.fileMessage.publicId",
            }
        },
        {"$limit": limit},
    ]
    rows: list[dict] = []
    with store_errors("chat"):
        cursor = await _collection("chat").aggregate(pipeline)
        async for row in cursor:
            rows.append(row)
    return rows


async def expire_message_file(chat_id: Any, message_id: Any) -> bool:
    with store_errors("chat", str(chat_id)):
        result = await _collection("chat").update_one(
            {
                "_id": chat_id,
                "messages": {"$elemMatch": {"_id": message_id, "fileMessage.isDeleted": False}},
            },
            {"$set": {"messages.$.fileMessage.isDeleted": True, "messages.$.fileMessage.fileUrl": None}},
        )
    return result.modified_count == 1
