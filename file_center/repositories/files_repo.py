from __future__ import annotations
"""
files_repo.py

File item documents in the 'file_center' collection

Perennial items are plain documents keyed by `_id` and deduplicated by the
unique `content_hash` index. Temporary items carry `expire_at` and are
consumed by a single conditional update, so two concurrent readers can
never both receive the payload.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.mongo import COLLECTION_FILES_NAME
from ..errors import DuplicateContent, store_errors
from ..models import StorageShape
from ..services.chunked_store import ChunkedStore

logger = logging.getLogger(__name__)

_DELETE_PROJECTION = {"_id": 1, "file_size": 1, "storage_shape": 1}

# how long a handed-over stream may take to drain before its item is reclaimed
DRAIN_GRACE = timedelta(minutes=10)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _readable_temporary(now: datetime) -> Dict[str, Any]:
    return {
        "temporary": True,
        "consumed_at": {"$exists": False},
        "expire_at": {"$gt": now},
    }


def _expired_unconsumed(now: datetime) -> Dict[str, Any]:
    return {
        "temporary": True,
        "consumed_at": {"$exists": False},
        "expire_at": {"$lte": now},
    }


class FileRepository:
    def __init__(self, db: AsyncIOMotorDatabase, chunked_store: ChunkedStore):
        self.files = db[COLLECTION_FILES_NAME]
        self.chunked_store = chunked_store

    async def find_by_hash(self, content_hash: str) -> Optional[ObjectId]:
        async with store_errors("find_by_hash"):
            doc = await self.files.find_one({"content_hash": content_hash}, {"_id": 1})
        return doc["_id"] if doc else None

    async def insert(self, doc: Dict[str, Any]) -> ObjectId:
        async with store_errors("insert file item"):
            try:
                res = await self.files.insert_one(doc)
            except DuplicateKeyError:
                if "content_hash" not in doc:
                    raise
                raise DuplicateContent(doc["content_hash"]) from None
        logger.info(
            "stored file item %s (%s bytes, %s%s)",
            res.inserted_id,
            doc.get("file_size"),
            doc.get("storage_shape"),
            ", temporary" if doc.get("temporary") else "",
        )
        return res.inserted_id

    async def load(self, oid: ObjectId) -> Optional[Dict[str, Any]]:
        """
        Return the document if it is retrievable. A temporary item is
        consumed by this call: the returned document already carries
        `consumed_at`, and no later load will return it.
        """
        now = _now_utc()
        async with store_errors("load file item"):
            doc = await self.files.find_one({"_id": oid, "temporary": {"$ne": True}})
            if doc is not None:
                return doc
            doc = await self.files.find_one_and_update(
                {"_id": oid, **_readable_temporary(now)},
                {"$set": {"consumed_at": now}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            await self._reclaim_if_expired(oid, now)
        return doc

    async def exists(self, oid: ObjectId) -> bool:
        """Like load, without consuming anything."""
        now = _now_utc()
        query = {
            "_id": oid,
            "$or": [{"temporary": {"$ne": True}}, _readable_temporary(now)],
        }
        async with store_errors("check file item"):
            return await self.files.count_documents(query, limit=1) > 0

    async def delete(self, oid: ObjectId) -> Optional[int]:
        """
        Remove the item, then its chunks. Returns the size of the removed
        file, or None when there was nothing to remove.
        """
        async with store_errors("delete file item"):
            doc = await self.files.find_one_and_delete({"_id": oid}, projection=_DELETE_PROJECTION)
        if doc is None:
            return None
        await self._delete_payload(doc)
        logger.info("deleted file item %s", oid)
        return int(doc.get("file_size", 0))

    async def finish_consumed(self, oid: ObjectId) -> None:
        """Reclaim a temporary item whose payload has been handed over."""
        async with store_errors("reclaim consumed item"):
            doc = await self.files.find_one_and_delete(
                {"_id": oid, "temporary": True, "consumed_at": {"$exists": True}},
                projection=_DELETE_PROJECTION,
            )
        if doc is not None:
            await self._delete_payload(doc)
            logger.debug("reclaimed consumed temporary item %s", oid)

    async def _reclaim_if_expired(self, oid: ObjectId, now: datetime) -> None:
        async with store_errors("reclaim expired item"):
            doc = await self.files.find_one_and_delete(
                {"_id": oid, **_expired_unconsumed(now)},
                projection=_DELETE_PROJECTION,
            )
        if doc is not None:
            await self._delete_payload(doc)
            logger.debug("reclaimed expired temporary item %s", oid)

    async def reclaim_temporary(self) -> int:
        """
        Delete expired temporary items nobody fetched, and fetched ones whose
        stream was not drained within DRAIN_GRACE, together with their chunks.
        An item handed over more recently is left to `finish_consumed`.
        """
        now = _now_utc()
        query = {
            "$or": [
                _expired_unconsumed(now),
                {"temporary": True, "consumed_at": {"$lte": now - DRAIN_GRACE}},
            ]
        }
        async with store_errors("reclaim temporary items"):
            expired = await self.files.find(query, _DELETE_PROJECTION).to_list(length=None)
            if not expired:
                return 0
            await self.files.delete_many({"_id": {"$in": [d["_id"] for d in expired]}})
        for doc in expired:
            await self._delete_payload(doc)
        logger.info("reclaimed %d expired temporary items", len(expired))
        return len(expired)

    async def clear_garbage(self, grace: timedelta = timedelta(minutes=10)) -> Dict[str, int]:
        """
        Remove what no caller can reach any more:
          - expired temporary items,
          - chunked items whose chunks are missing or incomplete,
          - chunks whose parent item does not exist.
        Orphaned chunks are only removed once no chunk of that parent was
        written within `grace`; a put writes its chunks before the item.
        """
        result = {"expired": await self.reclaim_temporary(), "broken": 0, "orphaned_chunks": 0}
        chunks = self.chunked_store

        async with store_errors("scan chunked items"):
            chunked: List[Dict[str, Any]] = await self.files.find(
                {"storage_shape": StorageShape.CHUNKED.value},
                {"_id": 1, "chunk_count": 1},
            ).to_list(length=None)
        for doc in chunked:
            if await chunks.count(doc["_id"]) != int(doc.get("chunk_count", 0)):
                logger.warning("removing file item %s with missing chunks", doc["_id"])
                await self.delete(doc["_id"])
                result["broken"] += 1

        cutoff = _now_utc() - grace
        parents = list(await chunks.parent_ids())
        if parents:
            async with store_errors("scan chunk parents"):
                alive = set(await self.files.distinct("_id", {"_id": {"$in": parents}}))
            for parent in parents:
                if parent in alive:
                    continue
                # an upload still in progress keeps writing chunks
                last_write = await chunks.last_write_time(parent)
                if last_write is not None and last_write <= cutoff:
                    result["orphaned_chunks"] += await chunks.delete(parent)

        logger.info("garbage cleared: %s", result)
        return result

    async def _delete_payload(self, doc: Dict[str, Any]) -> None:
        if doc.get("storage_shape") == StorageShape.CHUNKED.value:
            await self.chunked_store.delete(doc["_id"])

    async def drop(self) -> None:
        async with store_errors("drop file items"):
            await self.files.drop()
            await self.chunked_store.chunks.drop()
