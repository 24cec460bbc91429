from __future__ import annotations
from typing import Any, Optional
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..db.mongo import COLLECTION_SETTINGS_NAME
from ..errors import store_errors

SETTING_FILE_SIZE_THRESHOLD = "file_size_threshold"
SETTING_CREATE_TIME = "create_time"
SETTING_VERSION = "version"


async def get_setting(db: AsyncIOMotorDatabase, key: str) -> Optional[Any]:
    """Fetch a setting value by key."""
    async with store_errors(f"get setting {key}"):
        doc = await db[COLLECTION_SETTINGS_NAME].find_one({"_id": key})
    if not doc:
        return None
    return doc.get("value")


async def set_setting(db: AsyncIOMotorDatabase, key: str, value: Any) -> None:
    """Upsert a setting value by key."""
    async with store_errors(f"set setting {key}"):
        await db[COLLECTION_SETTINGS_NAME].update_one(
            {"_id": key},
            {
                "$set": {
                    "value": value,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            upsert=True,
        )


async def setdefault_setting(db: AsyncIOMotorDatabase, key: str, value: Any) -> Any:
    """Store `value` only if the key is absent; return whatever is stored."""
    async with store_errors(f"init setting {key}"):
        await db[COLLECTION_SETTINGS_NAME].update_one(
            {"_id": key},
            {"$setOnInsert": {"value": value, "updated_at": datetime.now(timezone.utc)}},
            upsert=True,
        )
    return await get_setting(db, key)
