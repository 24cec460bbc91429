import io
import tempfile
from pathlib import Path
from unittest import IsolatedAsyncioTestCase

from file_center.services.sources import ByteSource


async def _collect(src, size=4):
    out = []
    async for chunk in src.iter_chunks(size):
        out.append(chunk)
    return out


class _AsyncReader:
    def __init__(self, data, filename="upload.txt", content_type="text/plain"):
        self._buf = io.BytesIO(data)
        self.filename = filename
        self.content_type = content_type

    async def read(self, size=-1):
        return self._buf.read(size)


async def _agen(pieces):
    for p in pieces:
        yield p


class ByteSourceTests(IsolatedAsyncioTestCase):
    async def test_buffer(self):
        src = ByteSource.of(b"0123456789")
        self.assertEqual(src.kind, "buffer")
        self.assertEqual(src.size, 10)
        self.assertTrue(src.rereadable)
        self.assertEqual(await _collect(src), [b"0123", b"4567", b"89"])
        # re-readable
        self.assertEqual(b"".join(await _collect(src)), b"0123456789")
        self.assertEqual(src.default_file_name(), "")
        self.assertIsNone(src.default_mime_type())

    async def test_path(self):
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "note.txt"
            p.write_bytes(b"hello world")
            src = ByteSource.of(str(p))
            self.assertEqual(src.kind, "path")
            self.assertEqual(src.size, 11)
            self.assertEqual(src.default_file_name(), "note.txt")
            self.assertEqual(src.default_mime_type(), "text/plain")
            self.assertEqual(b"".join(await _collect(src)), b"hello world")

    async def test_sync_reader(self):
        f = io.BytesIO(b"abcdefghij")
        src = ByteSource.of(f)
        self.assertEqual(src.kind, "reader")
        self.assertFalse(src.rereadable)
        self.assertIsNone(src.size)
        self.assertEqual(await _collect(src, 3), [b"abc", b"def", b"ghi", b"j"])

    async def test_async_reader_uses_upload_metadata(self):
        src = ByteSource.of(_AsyncReader(b"payload"))
        self.assertEqual(src.kind, "async_reader")
        self.assertEqual(src.default_file_name(), "upload.txt")
        self.assertEqual(src.default_mime_type(), "text/plain")
        self.assertEqual(b"".join(await _collect(src)), b"payload")

    async def test_iterables_skip_empty_pieces(self):
        self.assertEqual(await _collect(ByteSource.of([b"a", b"", b"bc"])), [b"a", b"bc"])
        self.assertEqual(await _collect(ByteSource.of(_agen([b"x", b"", b"yz"]))), [b"x", b"yz"])

    async def test_one_shot_stream_cannot_be_read_twice(self):
        src = ByteSource.of(io.BytesIO(b"once"))
        await _collect(src)
        with self.assertRaises(RuntimeError):
            src.iter_chunks()

    async def test_unsupported(self):
        with self.assertRaises(TypeError):
            ByteSource.of(12345)
