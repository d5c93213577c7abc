"""Integration tests for bucket handlers.

These tests exercise the full request path via httpx AsyncClient against
a real LocalStorageBackend rooted in a per-test temporary directory.
"""

import xml.etree.ElementTree as ET

from dirstore.xml_utils import S3_NAMESPACE

NS = {"s3": S3_NAMESPACE}


def _bucket_names(body: str) -> list[str]:
    root = ET.fromstring(body)
    return [b.find("s3:Name", NS).text for b in root.findall("s3:Buckets/s3:Bucket", NS)]


def _error_code(body: str) -> str:
    return ET.fromstring(body).find("s3:Code", NS).text


class TestListBuckets:
    """Tests for GET / (ListBuckets)."""

    async def test_list_buckets_empty(self, client):
        """ListBuckets on an empty root returns 200 with no buckets."""
        resp = await client.get("/")
        assert resp.status_code == 200
        assert "application/xml" in resp.headers.get("content-type", "")
        assert "ListAllMyBucketsResult" in resp.text
        assert _bucket_names(resp.text) == []

    async def test_list_buckets_has_owner(self, client):
        resp = await client.get("/")
        root = ET.fromstring(resp.text)
        assert root.find("s3:Owner/s3:ID", NS).text == "dirstore"
        assert root.find("s3:Owner/s3:DisplayName", NS).text == "dirstore"

    async def test_make_then_list(self, client):
        """Creating a bucket makes it appear exactly once."""
        await client.put("/photos")
        resp = await client.get("/")
        assert _bucket_names(resp.text) == ["photos"]

    async def test_list_sorted(self, client):
        for name in ["zeta", "alpha", "mid"]:
            await client.put(f"/{name}")
        resp = await client.get("/")
        assert _bucket_names(resp.text) == ["alpha", "mid", "zeta"]


class TestCreateBucket:
    """Tests for PUT /{bucket} (CreateBucket)."""

    async def test_create_bucket(self, client, storage):
        resp = await client.put("/photos")
        assert resp.status_code == 200
        assert resp.headers["location"] == "/photos"
        assert (storage.root / "photos").is_dir()

    async def test_create_existing_bucket_is_ok(self, client):
        """Creating a bucket twice is idempotent."""
        assert (await client.put("/photos")).status_code == 200
        assert (await client.put("/photos")).status_code == 200
        resp = await client.get("/")
        assert _bucket_names(resp.text) == ["photos"]

    async def test_create_with_trailing_slash(self, client):
        """PUT /{bucket}/ is a bucket-level request."""
        resp = await client.put("/photos/")
        assert resp.status_code == 200
        resp = await client.get("/")
        assert _bucket_names(resp.text) == ["photos"]

    async def test_invalid_bucket_name(self, client):
        resp = await client.put("/" + "x" * 256)
        assert resp.status_code == 400
        assert _error_code(resp.text) == "InvalidBucketName"


class TestDeleteBucket:
    """Tests for DELETE /{bucket} (DeleteBucket)."""

    async def test_delete_empty_bucket(self, client):
        await client.put("/photos")
        resp = await client.delete("/photos")
        assert resp.status_code == 204
        resp = await client.get("/")
        assert _bucket_names(resp.text) == []

    async def test_delete_missing_bucket(self, client):
        resp = await client.delete("/missing")
        assert resp.status_code == 404
        root = ET.fromstring(resp.text)
        assert root.find("s3:Code", NS).text == "NoSuchBucket"
        assert root.find("s3:BucketName", NS).text == "missing"
        assert root.find("s3:Resource", NS).text == "/missing"

    async def test_delete_non_empty_bucket(self, client):
        """A bucket holding an object cannot be deleted and stays intact."""
        await client.put("/photos/2024/cat.jpg", content=b"meow")

        resp = await client.delete("/photos")
        assert resp.status_code == 409
        assert _error_code(resp.text) == "BucketNotEmpty"

        resp = await client.get("/photos/2024/cat.jpg")
        assert resp.status_code == 200
        assert resp.content == b"meow"

    async def test_delete_after_objects_removed(self, client):
        await client.put("/photos/a/b/c.txt", content=b"x")
        await client.delete("/photos/a/b/c.txt")
        resp = await client.delete("/photos")
        assert resp.status_code == 204

    async def test_delete_with_trailing_slash(self, client):
        await client.put("/photos")
        resp = await client.delete("/photos/")
        assert resp.status_code == 204
