"""Tests for S3 XML rendering helpers."""

import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

from dirstore.storage.models import BucketInfo, ListPage, ObjectInfo
from dirstore.xml_utils import (
    S3_NAMESPACE,
    format_iso8601,
    quote_etag,
    render_error,
    render_list_buckets,
    render_list_objects_v2,
    xml_response,
)

NS = {"s3": S3_NAMESPACE}
WHEN = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)


class TestFormatIso8601:
    def test_millisecond_precision(self):
        assert format_iso8601(WHEN) == "2024-01-02T03:04:05.678Z"

    def test_converts_to_utc(self):
        local = WHEN.astimezone(timezone(timedelta(hours=2)))
        assert format_iso8601(local) == "2024-01-02T03:04:05.678Z"


class TestRenderError:
    """Tests for render_error()."""

    def test_basic_error(self):
        body = render_error("NoSuchKey", "The specified key does not exist.")
        root = ET.fromstring(body)
        assert root.tag == f"{{{S3_NAMESPACE}}}Error"
        assert root.find("s3:Code", NS).text == "NoSuchKey"
        assert root.find("s3:Message", NS).text == "The specified key does not exist."
        assert root.find("s3:Resource", NS) is None

    def test_with_resource_request_id_and_extras(self):
        body = render_error(
            "NoSuchBucket",
            "The specified bucket does not exist.",
            resource="/photos",
            request_id="ABCDEF0123456789",
            extra_fields={"BucketName": "photos"},
        )
        root = ET.fromstring(body)
        assert root.find("s3:Resource", NS).text == "/photos"
        assert root.find("s3:RequestId", NS).text == "ABCDEF0123456789"
        assert root.find("s3:BucketName", NS).text == "photos"

    def test_escapes_special_characters(self):
        body = render_error("InvalidArgument", "a < b & c > d")
        assert "a &lt; b &amp; c &gt; d" in body
        assert ET.fromstring(body).find("s3:Message", NS).text == "a < b & c > d"


class TestXmlResponse:
    def test_content_type_and_status(self):
        resp = xml_response("<x/>", status=404)
        assert resp.status_code == 404
        assert resp.media_type == "application/xml"
        assert resp.body == b"<x/>"


class TestRenderListBuckets:
    def test_buckets_in_order(self):
        body = render_list_buckets(
            "dirstore",
            "dirstore",
            [BucketInfo("alpha", WHEN), BucketInfo("beta", WHEN)],
        )
        root = ET.fromstring(body)
        assert root.tag == f"{{{S3_NAMESPACE}}}ListAllMyBucketsResult"
        assert root.find("s3:Owner/s3:ID", NS).text == "dirstore"
        names = [b.find("s3:Name", NS).text for b in root.findall("s3:Buckets/s3:Bucket", NS)]
        assert names == ["alpha", "beta"]
        created = root.find("s3:Buckets/s3:Bucket/s3:CreationDate", NS).text
        assert created == "2024-01-02T03:04:05.678Z"

    def test_empty(self):
        root = ET.fromstring(render_list_buckets("o", "o", []))
        assert root.findall("s3:Buckets/s3:Bucket", NS) == []


class TestRenderListObjectsV2:
    """Tests for render_list_objects_v2()."""

    def _page(self, **kwargs):
        defaults = {
            "contents": [ObjectInfo("a/b.txt", 5, "d41d8cd98f00b204e9800998ecf8427e", WHEN)],
            "common_prefixes": ["a/c/"],
        }
        defaults.update(kwargs)
        return ListPage(**defaults)

    def test_contents_and_prefixes(self):
        body = render_list_objects_v2("b", "a/", "/", 1000, self._page())
        root = ET.fromstring(body)
        assert root.tag == f"{{{S3_NAMESPACE}}}ListBucketResult"
        assert root.find("s3:Name", NS).text == "b"
        assert root.find("s3:Prefix", NS).text == "a/"
        assert root.find("s3:Delimiter", NS).text == "/"
        assert root.find("s3:MaxKeys", NS).text == "1000"
        assert root.find("s3:KeyCount", NS).text == "2"
        assert root.find("s3:IsTruncated", NS).text == "false"

        contents = root.findall("s3:Contents", NS)
        assert len(contents) == 1
        assert contents[0].find("s3:Key", NS).text == "a/b.txt"
        assert contents[0].find("s3:ETag", NS).text == '"d41d8cd98f00b204e9800998ecf8427e"'
        assert contents[0].find("s3:Size", NS).text == "5"
        assert contents[0].find("s3:StorageClass", NS).text == "STANDARD"
        assert contents[0].find("s3:LastModified", NS).text == "2024-01-02T03:04:05.678Z"

        prefixes = [p.find("s3:Prefix", NS).text for p in root.findall("s3:CommonPrefixes", NS)]
        assert prefixes == ["a/c/"]

    def test_optional_elements_omitted(self):
        body = render_list_objects_v2("b", "", "", 1000, self._page(common_prefixes=[]))
        root = ET.fromstring(body)
        assert root.find("s3:Delimiter", NS) is None
        assert root.find("s3:StartAfter", NS) is None
        assert root.find("s3:ContinuationToken", NS) is None
        assert root.find("s3:NextContinuationToken", NS) is None

    def test_truncated_page(self):
        page = self._page(common_prefixes=[], is_truncated=True, next_continuation_token="a/b.txt")
        body = render_list_objects_v2(
            "b", "", "", 1, page, continuation_token="0", start_after="0"
        )
        root = ET.fromstring(body)
        assert root.find("s3:IsTruncated", NS).text == "true"
        assert root.find("s3:NextContinuationToken", NS).text == "a/b.txt"
        assert root.find("s3:ContinuationToken", NS).text == "0"
        assert root.find("s3:StartAfter", NS).text == "0"

    def test_escapes_keys(self):
        page = self._page(contents=[ObjectInfo("a&b<c>.txt", 0, "x", WHEN)], common_prefixes=[])
        root = ET.fromstring(render_list_objects_v2("b", "", "", 1000, page))
        assert root.find("s3:Contents/s3:Key", NS).text == "a&b<c>.txt"


def test_quote_etag():
    assert quote_etag("abc") == '"abc"'
