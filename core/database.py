from __future__ import annotations

from pymongo import AsyncMongoClient

from core.settings import get_settings

settings = get_settings()

# timeoutMS is the default deadline for every store operation issued through this client.
client: AsyncMongoClient = AsyncMongoClient(
    settings.mongo_url,
    serverSelectionTimeoutMS=min(settings.mongo_timeout_ms, 5000),
    timeoutMS=settings.mongo_timeout_ms,
)
db = client[settings.db_name]
