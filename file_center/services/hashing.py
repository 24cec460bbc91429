from __future__ import annotations
from hashlib import sha256 as _sha256
from typing import AsyncIterable, Iterable, Union

from .sources import ByteSource

HASH_CHUNK = 1024 * 64  # 64 KiB


class ContentHasher:
    """
    Incremental SHA-256 over file bytes. Feeding the same bytes in any
    split produces the same digest as hashing the whole buffer once.
    """

    def __init__(self) -> None:
        self._h = _sha256()
        self.size = 0

    def update(self, data: Union[bytes, bytearray, memoryview]) -> None:
        self._h.update(data)
        self.size += len(data)

    def hexdigest(self) -> str:
        return self._h.hexdigest()


def hash_bytes(data: Union[bytes, bytearray, memoryview]) -> str:
    h = ContentHasher()
    h.update(data)
    return h.hexdigest()


def hash_chunks(chunks: Iterable[bytes]) -> str:
    h = ContentHasher()
    for chunk in chunks:
        h.update(chunk)
    return h.hexdigest()


async def hash_async_chunks(chunks: AsyncIterable[bytes]) -> str:
    h = ContentHasher()
    async for chunk in chunks:
        h.update(chunk)
    return h.hexdigest()


async def hash_source(source: ByteSource) -> str:
    """Hash a re-readable source without consuming it."""
    if not source.rereadable:
        raise ValueError("a one-shot stream can only be hashed while it is being stored")
    return await hash_async_chunks(source.iter_chunks(HASH_CHUNK))
