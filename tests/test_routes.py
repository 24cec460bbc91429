import asyncio
from unittest import TestCase
from unittest.mock import patch

from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from file_center import FileCenter
from file_center.main import create_app
from tests.fakes import FakeDatabase


class FileRoutesTests(TestCase):
    def setUp(self):
        self.db = FakeDatabase()
        self.center = asyncio.run(
            FileCenter.create(self.db, "route-secret", file_size_threshold=16)
        )
        self.client = TestClient(create_app(file_center=self.center))
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def upload(self, data, name="notes.txt", content_type="text/plain", temporary=False):
        return self.client.post(
            "/files",
            files={"file": (name, data, content_type)},
            data={"temporary": "true" if temporary else "false"},
        )

    def test_healthz(self):
        self.assertEqual(self.client.get("/healthz").json(), {"ok": True})

    def test_upload_and_download_inline(self):
        r = self.upload(b"short note")
        self.assertEqual(r.status_code, 201)
        body = r.json()
        self.assertEqual(body["file_name"], "notes.txt")
        self.assertFalse(body["temporary"])
        self.assertEqual(len(body["id"]), 38)

        r = self.client.get(f"/files/{body['id']}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.content, b"short note")
        self.assertTrue(r.headers["content-type"].startswith("text/plain"))
        self.assertTrue(r.headers["content-disposition"].startswith("inline;"))
        self.assertIn("immutable", r.headers["cache-control"])

    def test_download_chunked_as_attachment(self):
        data = bytes(range(256)) * 4
        token = self.upload(data, name="blob.bin", content_type="application/octet-stream").json()["id"]
        r = self.client.get(f"/files/{token}", params={"download": 1})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.content, data)
        self.assertEqual(r.headers["content-length"], str(len(data)))
        self.assertTrue(r.headers["content-disposition"].startswith("attachment;"))

    def test_same_content_same_token(self):
        a = self.upload(b"same bytes", name="a.txt").json()["id"]
        b = self.upload(b"same bytes", name="b.txt").json()["id"]
        self.assertEqual(a, b)

    def test_temporary_is_served_once(self):
        token = self.upload(b"one time only", temporary=True).json()["id"]
        first = self.client.get(f"/files/{token}")
        self.assertEqual(first.content, b"one time only")
        self.assertEqual(first.headers["cache-control"], "no-store")
        self.assertEqual(self.client.get(f"/files/{token}").status_code, 404)

    def test_delete(self):
        token = self.upload(b"to be removed").json()["id"]
        r = self.client.delete(f"/files/{token}")
        self.assertEqual(r.json(), {"ok": True, "file_size": 13})
        self.assertEqual(self.client.get(f"/files/{token}").status_code, 404)
        self.assertEqual(self.client.delete(f"/files/{token}").status_code, 404)

    def test_invalid_token_looks_like_missing_file(self):
        self.assertEqual(self.client.get("/files/not-a-token").status_code, 404)
        self.assertEqual(self.client.delete("/files/" + "A" * 38).status_code, 404)

    def test_payload_too_large(self):
        small = asyncio.run(
            FileCenter.create(FakeDatabase(), "route-secret", file_size_threshold=4, max_file_size=8)
        )
        with TestClient(create_app(file_center=small)) as client:
            r = client.post("/files", files={"file": ("big.bin", b"x" * 9, "application/octet-stream")})
        self.assertEqual(r.status_code, 413)

    def test_store_unavailable(self):
        token = self.upload(b"some file").json()["id"]

        async def boom(*args, **kwargs):
            raise ServerSelectionTimeoutError("no servers")

        with patch.object(self.db["file_center"], "find_one", boom):
            r = self.client.get(f"/files/{token}")
        self.assertEqual(r.status_code, 503)
        self.assertEqual(r.json()["detail"], "store unavailable")
