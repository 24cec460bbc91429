from __future__ import annotations
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING

from ..config import Settings, get_settings
from ..errors import store_errors

logger = logging.getLogger(__name__)

COLLECTION_FILES_NAME = "file_center"
COLLECTION_FILES_CHUNKS_NAME = "file_center_chunks"
COLLECTION_SETTINGS_NAME = "file_center_settings"

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect(settings: Optional[Settings] = None) -> AsyncIOMotorDatabase:
    """
    Idempotently connect and verify the connection with a ping.
    """
    global _client, _db
    if _client is not None and _db is not None:
        return _db

    settings = settings or get_settings()
    client = AsyncIOMotorClient(
        settings.mongodb_uri,
        serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
        tz_aware=True,
    )
    db = client[settings.mongodb_db]

    # verify connection (raises if not available)
    async with store_errors("connect"):
        await db.command("ping")

    _client, _db = client, db
    logger.info("connected to MongoDB database %s", settings.mongodb_db)
    return db


async def disconnect() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    files = db[COLLECTION_FILES_NAME]
    chunks = db[COLLECTION_FILES_CHUNKS_NAME]

    async with store_errors("ensure_indexes"):
        await files.create_index([("create_time", ASCENDING)])
        # no TTL: an expired item must be removed together with its chunks
        await files.create_index([("expire_at", ASCENDING)])
        await files.create_index([("consumed_at", ASCENDING)], sparse=True)
        # dedup key; temporary items never carry content_hash
        await files.create_index(
            [("content_hash", ASCENDING)],
            unique=True,
            partialFilterExpression={"content_hash": {"$exists": True}},
        )
        await chunks.create_index([("file_id", ASCENDING), ("n", ASCENDING)], unique=True)
