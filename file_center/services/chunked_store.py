from __future__ import annotations
"""
chunked_store.py

Payload layout for file items.

Payloads up to the file size threshold stay inline in the file item
document. Larger ones go to the chunks collection as
{file_id, n, data} documents of at most `chunk_size` bytes, written and
read strictly in increasing `n`.
"""

import logging
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional, Union

from bson import Binary, ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..db.mongo import COLLECTION_FILES_CHUNKS_NAME
from ..errors import Inconsistent, PayloadTooLarge, store_errors
from ..models import StorageShape, WriteResult
from .hashing import ContentHasher
from .sources import ByteSource

logger = logging.getLogger(__name__)

# `n` is stored as a 32-bit int
MAX_CHUNKS = 2**31 - 1


class ChunkedStore:
    def __init__(self, db: AsyncIOMotorDatabase, chunk_size: int, max_file_size: Optional[int] = None):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunks = db[COLLECTION_FILES_CHUNKS_NAME]
        self.chunk_size = chunk_size
        hard_limit = chunk_size * MAX_CHUNKS
        self.max_file_size = min(max_file_size, hard_limit) if max_file_size else hard_limit

    def _check_size(self, size: int) -> None:
        if size > self.max_file_size:
            raise PayloadTooLarge(size, self.max_file_size)

    async def write(
        self,
        source: ByteSource,
        file_id: ObjectId,
        threshold: int,
        hasher: Optional[ContentHasher] = None,
    ) -> WriteResult:
        """
        Store the bytes of `source`, deciding the shape from at most
        `threshold + 1` buffered bytes. Chunks already written are removed
        again if anything fails half way.
        """
        if source.size is not None:
            self._check_size(source.size)

        buf = bytearray()
        pieces = source.iter_chunks()
        over_threshold = False
        async for piece in pieces:
            if hasher is not None:
                hasher.update(piece)
            buf.extend(piece)
            self._check_size(len(buf))
            if len(buf) > threshold:
                over_threshold = True
                break

        if not over_threshold:
            return WriteResult(
                shape=StorageShape.INLINE,
                size=len(buf),
                inline_data=bytes(buf),
                content_hash=hasher.hexdigest() if hasher is not None else None,
            )

        n = 0
        size = 0
        try:
            while len(buf) >= self.chunk_size:
                await self._put_chunk(file_id, n, bytes(buf[:self.chunk_size]))
                del buf[:self.chunk_size]
                size += self.chunk_size
                n += 1
            async for piece in pieces:
                if hasher is not None:
                    hasher.update(piece)
                buf.extend(piece)
                self._check_size(size + len(buf))
                while len(buf) >= self.chunk_size:
                    await self._put_chunk(file_id, n, bytes(buf[:self.chunk_size]))
                    del buf[:self.chunk_size]
                    size += self.chunk_size
                    n += 1
            if buf:
                await self._put_chunk(file_id, n, bytes(buf))
                size += len(buf)
                n += 1
        except Exception:
            await self.discard(file_id)
            raise

        logger.debug("stored %d bytes in %d chunks for %s", size, n, file_id)
        return WriteResult(
            shape=StorageShape.CHUNKED,
            size=size,
            chunk_size=self.chunk_size,
            chunk_count=n,
            content_hash=hasher.hexdigest() if hasher is not None else None,
        )

    async def _put_chunk(self, file_id: ObjectId, n: int, data: bytes) -> None:
        async with store_errors("write chunk"):
            await self.chunks.insert_one({"file_id": file_id, "n": n, "data": Binary(data)})

    def read(self, doc: Dict[str, Any]) -> Union[bytes, AsyncIterator[bytes]]:
        """
        Inline items give back their buffer; chunked items a lazy stream
        that fetches one chunk per step.
        """
        size = int(doc["file_size"])
        if doc.get("storage_shape") == StorageShape.CHUNKED.value:
            return self._stream(doc["_id"], size, int(doc.get("chunk_count", 0)))

        data = bytes(doc.get("file_data") or b"")
        if len(data) != size:
            raise Inconsistent(f"{doc['_id']}: inline payload is {len(data)} bytes, expected {size}")
        return data

    async def _stream(self, file_id: ObjectId, size: int, chunk_count: int) -> AsyncIterator[bytes]:
        received = 0
        for n in range(chunk_count):
            async with store_errors("read chunk"):
                chunk = await self.chunks.find_one({"file_id": file_id, "n": n})
            if chunk is None:
                logger.warning("chunk %d of %s is missing", n, file_id)
                raise Inconsistent(f"{file_id}: chunk {n} of {chunk_count} is missing")
            data = bytes(chunk["data"])
            received += len(data)
            if received > size:
                raise Inconsistent(f"{file_id}: chunks exceed the recorded size of {size} bytes")
            yield data
        if received != size:
            logger.warning("chunks of %s hold %d bytes, expected %d", file_id, received, size)
            raise Inconsistent(f"{file_id}: chunks hold {received} bytes, expected {size}")

    async def delete(self, file_id: ObjectId) -> int:
        async with store_errors("delete chunks"):
            res = await self.chunks.delete_many({"file_id": file_id})
        return res.deleted_count

    async def discard(self, file_id: ObjectId) -> None:
        """Best-effort removal of chunks nobody will reference."""
        try:
            await self.delete(file_id)
        except Exception:
            logger.warning("could not discard chunks of %s; clear_garbage will", file_id, exc_info=True)

    async def count(self, file_id: ObjectId) -> int:
        async with store_errors("count chunks"):
            return await self.chunks.count_documents({"file_id": file_id})

    async def last_write_time(self, file_id: ObjectId) -> Optional[datetime]:
        """When the highest-numbered chunk of `file_id` was written (its _id time)."""
        async with store_errors("find last chunk"):
            cursor = self.chunks.find({"file_id": file_id}, {"_id": 1, "n": 1}).sort("n", -1)
            last = await cursor.to_list(length=1)
        return last[0]["_id"].generation_time if last else None

    async def parent_ids(self) -> set:
        async with store_errors("list chunk parents"):
            return set(await self.chunks.distinct("file_id"))
