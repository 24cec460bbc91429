from __future__ import annotations
"""
sources.py

One ingestion path for everything `put` accepts.

A ByteSource wraps a path, an in-memory buffer, a file object (sync or
async `read`), or an (async) iterable of byte chunks, and exposes them all
as an async iterator of byte chunks.
"""

import asyncio
import inspect
import os
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from ..utils import guess_mime_from_path

READ_CHUNK = 1024 * 64  # 64 KiB


class ByteSource:
    def __init__(self, kind: str, obj: Any, size: Optional[int] = None):
        self.kind = kind
        self._obj = obj
        self.size = size
        self._used = False

    @classmethod
    def of(cls, source: Any) -> "ByteSource":
        if isinstance(source, ByteSource):
            return source
        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
            return cls("buffer", data, len(data))
        if isinstance(source, (str, os.PathLike)):
            path = Path(source)
            return cls("path", path, path.stat().st_size)
        read = getattr(source, "read", None)
        if read is not None:
            kind = "async_reader" if inspect.iscoroutinefunction(read) else "reader"
            return cls(kind, source)
        if hasattr(source, "__aiter__"):
            return cls("async_iterable", source)
        if hasattr(source, "__iter__"):
            return cls("iterable", source)
        raise TypeError(f"unsupported file source: {type(source).__name__}")

    @property
    def rereadable(self) -> bool:
        return self.kind in ("buffer", "path")

    def default_file_name(self) -> str:
        if self.kind == "path":
            return self._obj.name
        name = getattr(self._obj, "filename", None) or getattr(self._obj, "name", None)
        if isinstance(name, str):
            return os.path.basename(name)
        return ""

    def default_mime_type(self) -> Optional[str]:
        if self.kind == "path":
            return guess_mime_from_path(self._obj)
        content_type = getattr(self._obj, "content_type", None)
        return content_type or None

    def iter_chunks(self, chunk_size: int = READ_CHUNK) -> AsyncIterator[bytes]:
        if not self.rereadable:
            if self._used:
                raise RuntimeError("stream source has already been consumed")
            self._used = True
        return getattr(self, f"_iter_{self.kind}")(chunk_size)

    async def _iter_buffer(self, chunk_size: int) -> AsyncIterator[bytes]:
        data: bytes = self._obj
        for start in range(0, len(data), chunk_size):
            yield data[start:start + chunk_size]

    async def _iter_path(self, chunk_size: int) -> AsyncIterator[bytes]:
        f = await asyncio.to_thread(self._obj.open, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(f.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            f.close()

    async def _iter_reader(self, chunk_size: int) -> AsyncIterator[bytes]:
        while True:
            chunk = await asyncio.to_thread(self._obj.read, chunk_size)
            if not chunk:
                break
            yield bytes(chunk)

    async def _iter_async_reader(self, chunk_size: int) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._obj.read(chunk_size)
            if not chunk:
                break
            yield bytes(chunk)

    async def _iter_async_iterable(self, chunk_size: int) -> AsyncIterator[bytes]:
        async for chunk in self._obj:
            if chunk:
                yield bytes(chunk)

    async def _iter_iterable(self, chunk_size: int) -> AsyncIterator[bytes]:
        for chunk in self._obj:
            if chunk:
                yield bytes(chunk)
