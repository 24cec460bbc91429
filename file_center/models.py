from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Optional, Union

from bson import ObjectId


class StorageShape(str, Enum):
    INLINE = "inline"
    CHUNKED = "chunked"


class FileData:
    """
    Payload of a retrieved file: either the inline buffer or a lazy,
    single-pass stream of chunk buffers. Iterate it with ``async for`` or
    collect it with ``read_all()``.
    """

    def __init__(self, payload: Union[bytes, AsyncIterator[bytes]]):
        self._payload = payload
        self._consumed = False

    @property
    def is_buffer(self) -> bool:
        return isinstance(self._payload, (bytes, bytearray))

    @property
    def is_stream(self) -> bool:
        return not self.is_buffer

    @property
    def buffer(self) -> bytes:
        if not self.is_buffer:
            raise TypeError("chunked file data is a stream; use read_all() or async for")
        return bytes(self._payload)

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("file data stream has already been consumed")
        self._consumed = True
        if self.is_buffer:
            return _single(bytes(self._payload))
        return self._payload

    async def read_all(self) -> bytes:
        if self.is_buffer:
            return bytes(self._payload)
        out = bytearray()
        async for chunk in self:
            out.extend(chunk)
        return bytes(out)

    async def aclose(self) -> None:
        """Release a stream that will not be drained."""
        aclose = getattr(self._payload, "aclose", None)
        if aclose is not None:
            await aclose()

    def __repr__(self) -> str:
        return "FileData.Buffer" if self.is_buffer else "FileData.Stream"


async def _single(data: bytes) -> AsyncIterator[bytes]:
    yield data


@dataclass
class FileItem:
    id: ObjectId
    create_time: datetime
    mime_type: str
    file_size: int
    file_name: str
    storage_shape: StorageShape
    data: FileData = field(repr=False)
    expire_at: Optional[datetime] = None

    @property
    def is_temporary(self) -> bool:
        return self.expire_at is not None


@dataclass
class WriteResult:
    """Outcome of ChunkedStore.write for one payload."""

    shape: StorageShape
    size: int
    inline_data: Optional[bytes] = None
    chunk_size: Optional[int] = None
    chunk_count: int = 0
    content_hash: Optional[str] = None
