from __future__ import annotations
"""
file_center.py

Store perennial and temporary files in MongoDB.

Perennial files are deduplicated by the SHA-256 of their content and stay
until deleted. Temporary files are never deduplicated and can be fetched
exactly once within `temporary_file_lifetime` of their creation.

    center = await FileCenter.from_settings()
    file_id = await center.put(b"hello", file_name="hello.txt")
    token = center.encrypt_id(file_id)          # safe to hand out
    item = await center.get(center.decrypt_id_token(token))
    data = await item.data.read_all()
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, Optional, Union

from bson import Binary, ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config import (
    DEFAULT_FILE_SIZE_THRESHOLD,
    DEFAULT_MIME_TYPE,
    DEFAULT_TEMPORARY_FILE_LIFETIME,
    MAX_FILE_SIZE_THRESHOLD,
    Settings,
    get_settings,
)
from ..db import mongo
from ..db.mongo import COLLECTION_SETTINGS_NAME
from ..errors import (
    DatabaseTooNew,
    DuplicateContent,
    FileSizeThresholdError,
    NotFound,
    StoreUnavailable,
    VersionError,
    store_errors,
)
from ..models import FileData, FileItem, StorageShape, WriteResult
from ..repositories import settings_repo
from ..repositories.files_repo import FileRepository
from ..security.id_token import IdTokenCodec
from .chunked_store import ChunkedStore
from .hashing import ContentHasher, hash_source
from .sources import ByteSource

logger = logging.getLogger(__name__)

# Used for updating the database.
VERSION = 1

_INSERT_ATTEMPTS = 3

FileId = Union[ObjectId, str]


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _to_oid(file_id: FileId) -> Optional[ObjectId]:
    if isinstance(file_id, ObjectId):
        return file_id
    try:
        return ObjectId(file_id)
    except Exception:
        return None


class FileCenter:
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        codec_key: str,
        file_size_threshold: int = DEFAULT_FILE_SIZE_THRESHOLD,
        temporary_file_lifetime: float = DEFAULT_TEMPORARY_FILE_LIFETIME,
        chunk_size: Optional[int] = None,
        max_file_size: Optional[int] = None,
    ):
        if not 0 < file_size_threshold <= MAX_FILE_SIZE_THRESHOLD:
            raise FileSizeThresholdError(
                f"the file size threshold must be between 1 and {MAX_FILE_SIZE_THRESHOLD}"
            )
        self.db = db
        self.file_size_threshold = file_size_threshold
        self.temporary_file_lifetime = timedelta(seconds=temporary_file_lifetime)
        self.codec = IdTokenCodec(codec_key)
        self.chunked_store = ChunkedStore(db, chunk_size or file_size_threshold, max_file_size)
        self.repo = FileRepository(db, self.chunked_store)
        self.create_time: Optional[datetime] = None
        self.version: Optional[int] = None

    @classmethod
    async def create(cls, db: AsyncIOMotorDatabase, codec_key: str, **options: Any) -> "FileCenter":
        center = cls(db, codec_key, **options)
        await center.initialize()
        return center

    @classmethod
    async def from_settings(
        cls,
        settings: Optional[Settings] = None,
        db: Optional[AsyncIOMotorDatabase] = None,
    ) -> "FileCenter":
        settings = settings or get_settings()
        if db is None:
            db = await mongo.connect(settings)
        return await cls.create(
            db,
            settings.codec_key,
            file_size_threshold=settings.file_size_threshold,
            temporary_file_lifetime=settings.temporary_file_lifetime,
            chunk_size=settings.effective_chunk_size,
            max_file_size=settings.max_file_size,
        )

    async def initialize(self) -> None:
        """Check the stored schema version, record settings, build indexes."""
        version = await settings_repo.setdefault_setting(self.db, settings_repo.SETTING_VERSION, VERSION)
        if not isinstance(version, int) or version <= 0:
            raise VersionError(f"the stored version {version!r} is incorrect")
        if version > VERSION:
            raise DatabaseTooNew(supported_latest=VERSION, current=version)
        self.version = version

        self.create_time = await settings_repo.setdefault_setting(
            self.db, settings_repo.SETTING_CREATE_TIME, _now_utc()
        )
        await settings_repo.set_setting(
            self.db, settings_repo.SETTING_FILE_SIZE_THRESHOLD, self.file_size_threshold
        )
        await mongo.ensure_indexes(self.db)
        logger.info(
            "file center ready (threshold=%d bytes, temporary lifetime=%s)",
            self.file_size_threshold,
            self.temporary_file_lifetime,
        )

    def get_file_size_threshold(self) -> int:
        return self.file_size_threshold

    # ---- put ----

    async def put(
        self,
        source: Any,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
        temporary: bool = False,
    ) -> ObjectId:
        """
        Store a file given as a path, a bytes-like buffer, a file object or
        an (async) iterable of byte chunks, and return its id.

        Perennial content already stored returns the existing id untouched.
        """
        src = ByteSource.of(source)
        if file_name is None:
            file_name = src.default_file_name()
        if mime_type is None:
            mime_type = src.default_mime_type() or DEFAULT_MIME_TYPE

        if temporary:
            return await self._put_temporary(src, file_name, mime_type)
        return await self._put_perennial(src, file_name, mime_type)

    async def _put_perennial(self, src: ByteSource, file_name: str, mime_type: str) -> ObjectId:
        hasher: Optional[ContentHasher] = None
        content_hash: Optional[str] = None
        if src.rereadable:
            # hash first so a duplicate never touches the chunks collection
            content_hash = await hash_source(src)
            existing = await self.repo.find_by_hash(content_hash)
            if existing is not None:
                logger.debug("content %s already stored as %s", content_hash, existing)
                return existing
        else:
            hasher = ContentHasher()

        file_id = ObjectId()
        written = await self.chunked_store.write(src, file_id, self.file_size_threshold, hasher)
        if hasher is not None:
            content_hash = written.content_hash
        doc = self._document(file_id, written, file_name, mime_type, _now_utc())
        doc["content_hash"] = content_hash

        try:
            stored_id = await self._insert_perennial(doc, check_first=hasher is not None)
        except Exception:
            await self._discard(file_id, written)
            raise
        if stored_id != file_id:
            await self._discard(file_id, written)
        return stored_id

    async def _insert_perennial(self, doc: Dict[str, Any], check_first: bool) -> ObjectId:
        """Insert `doc`, or return the id of the item already holding its content."""
        content_hash = doc["content_hash"]
        if check_first:
            existing = await self.repo.find_by_hash(content_hash)
            if existing is not None:
                return existing
        for _ in range(_INSERT_ATTEMPTS):
            try:
                return await self.repo.insert(doc)
            except DuplicateContent:
                winner = await self.repo.find_by_hash(content_hash)
                if winner is not None:
                    logger.warning("concurrent put of %s; keeping %s", content_hash, winner)
                    return winner
        raise StoreUnavailable(f"could not settle the owner of content {content_hash}")

    async def _put_temporary(self, src: ByteSource, file_name: str, mime_type: str) -> ObjectId:
        await self.repo.reclaim_temporary()

        file_id = ObjectId()
        written = await self.chunked_store.write(src, file_id, self.file_size_threshold)
        now = _now_utc()
        doc = self._document(file_id, written, file_name, mime_type, now)
        doc["temporary"] = True
        doc["expire_at"] = now + self.temporary_file_lifetime
        try:
            return await self.repo.insert(doc)
        except Exception:
            await self._discard(file_id, written)
            raise

    def _document(
        self,
        file_id: ObjectId,
        written: WriteResult,
        file_name: str,
        mime_type: str,
        now: datetime,
    ) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "_id": file_id,
            "file_name": file_name,
            "mime_type": mime_type,
            "file_size": written.size,
            "temporary": False,
            "create_time": now,
            "storage_shape": written.shape.value,
        }
        if written.shape is StorageShape.INLINE:
            doc["file_data"] = Binary(written.inline_data)
        else:
            doc["chunk_size"] = written.chunk_size
            doc["chunk_count"] = written.chunk_count
        return doc

    async def _discard(self, file_id: ObjectId, written: WriteResult) -> None:
        if written.shape is StorageShape.CHUNKED:
            await self.chunked_store.discard(file_id)

    # ---- get ----

    async def get(self, file_id: FileId) -> Optional[FileItem]:
        """
        Fetch a file. Returns None for unknown ids and for temporary files
        that expired or were already fetched; the cases look the same.
        A chunked temporary file is reclaimed once its stream is drained.
        """
        oid = _to_oid(file_id)
        if oid is None:
            return None
        doc = await self.repo.load(oid)
        if doc is None:
            return None

        payload = self.chunked_store.read(doc)
        if doc.get("temporary"):
            if isinstance(payload, bytes):
                await self.repo.finish_consumed(oid)
            else:
                payload = self._reclaim_when_drained(oid, payload)
        return self._file_item(doc, payload)

    async def require(self, file_id: FileId) -> FileItem:
        item = await self.get(file_id)
        if item is None:
            raise NotFound(str(file_id))
        return item

    async def get_by_token(self, token: str) -> Optional[FileItem]:
        return await self.get(self.decrypt_id_token(token))

    async def _reclaim_when_drained(self, oid: ObjectId, stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        async for chunk in stream:
            yield chunk
        await self.repo.finish_consumed(oid)

    @staticmethod
    def _file_item(doc: Dict[str, Any], payload: Any) -> FileItem:
        return FileItem(
            id=doc["_id"],
            create_time=doc["create_time"],
            expire_at=doc.get("expire_at"),
            mime_type=doc.get("mime_type") or DEFAULT_MIME_TYPE,
            file_size=int(doc["file_size"]),
            file_name=doc.get("file_name") or "",
            storage_shape=StorageShape(doc.get("storage_shape", StorageShape.INLINE.value)),
            data=FileData(payload),
        )

    async def exists(self, file_id: FileId) -> bool:
        oid = _to_oid(file_id)
        if oid is None:
            return False
        return await self.repo.exists(oid)

    # ---- delete / maintenance ----

    async def delete(self, file_id: FileId) -> Optional[int]:
        """Remove a file and its chunks; returns its size, or None if absent."""
        oid = _to_oid(file_id)
        if oid is None:
            return None
        return await self.repo.delete(oid)

    async def clear_garbage(self, grace: timedelta = timedelta(minutes=10)) -> Dict[str, int]:
        return await self.repo.clear_garbage(grace)

    async def drop_file_center(self) -> None:
        await self.repo.drop()
        async with store_errors("drop settings"):
            await self.db[COLLECTION_SETTINGS_NAME].drop()

    async def drop_database(self) -> None:
        async with store_errors("drop database"):
            await self.db.client.drop_database(self.db.name)

    # ---- id tokens ----

    def encrypt_id(self, file_id: ObjectId) -> str:
        return self.codec.encrypt(file_id)

    def encrypt_id_to_buffer(self, file_id: ObjectId, buffer: str) -> str:
        return self.codec.encrypt_to_buffer(file_id, buffer)

    def decrypt_id_token(self, token: str) -> ObjectId:
        return self.codec.decrypt(token)
