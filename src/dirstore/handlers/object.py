"""Object-level S3 request handlers for DirStore.

Implements the object operations:
    - PutObject (PUT /{bucket}/{key})
    - GetObject (GET /{bucket}/{key}) with single-range support
    - HeadObject (HEAD /{bucket}/{key})
    - DeleteObject (DELETE /{bucket}/{key})
    - ListObjectsV2 (GET /{bucket}?list-type=2)
"""

import email.utils
import logging
import mimetypes

from fastapi import FastAPI, Request, Response
from fastapi.responses import StreamingResponse

from dirstore.errors import InvalidArgument, NotImplementedS3Error
from dirstore.ranges import parse_range_header
from dirstore.storage.models import ObjectInfo
from dirstore.validation import validate_bucket_name, validate_max_keys, validate_object_key
from dirstore.xml_utils import quote_etag, render_list_objects_v2, xml_response

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _http_date(info: ObjectInfo) -> str:
    """Format the object's modification time as an RFC 1123 HTTP date."""
    return email.utils.format_datetime(info.last_modified, usegmt=True)


def _guess_content_type(key: str) -> str:
    """Guess a Content-Type from the key's file extension."""
    content_type, _ = mimetypes.guess_type(key, strict=False)
    return content_type or DEFAULT_CONTENT_TYPE


def _declared_length(request: Request) -> int | None:
    """Return the request's Content-Length, or None when it is absent."""
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise InvalidArgument(f"Invalid Content-Length: {raw}")
    if value < 0:
        raise InvalidArgument(f"Invalid Content-Length: {raw}")
    return value


class ObjectHandler:
    """Handles S3 object operations.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        """Initialize the object handler.

        Args:
            app: The FastAPI application instance.
        """
        self.app = app

    @property
    def storage(self):
        """Shortcut to the storage backend on app.state."""
        return self.app.state.storage

    async def put_object(self, request: Request, bucket: str, key: str) -> Response:
        """Upload an object to a bucket.

        Implements: PUT /{bucket}/{key}

        The bucket is created on demand. The body is streamed to disk and
        hashed in the same pass; the write becomes visible atomically.

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            200 OK with ETag and Last-Modified headers.
        """
        request.state.s3_operation = "PutObject"
        validate_bucket_name(bucket)
        validate_object_key(key)
        declared_length = _declared_length(request)

        try:
            await self.storage.make_bucket(bucket)
        except OSError:
            logger.warning("Could not ensure bucket %s exists", bucket, exc_info=True)

        info = await self.storage.put_object(
            bucket, key, request.stream(), declared_length=declared_length
        )
        logger.info("Stored object %s/%s (%d bytes)", bucket, key, info.size)

        return Response(
            status_code=200,
            headers={
                "ETag": quote_etag(info.etag),
                "Last-Modified": _http_date(info),
            },
        )

    async def get_object(self, request: Request, bucket: str, key: str) -> Response:
        """Retrieve an object from a bucket.

        Implements: GET /{bucket}/{key}

        A single ``Range: bytes=...`` header yields 206 Partial Content.
        The ETag always describes the full object.

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            StreamingResponse with the object body and metadata headers.
        """
        request.state.s3_operation = "GetObject"
        byte_range = parse_range_header(request.headers.get("range"))

        read = await self.storage.get_object(bucket, key, byte_range=byte_range)
        headers = self._build_object_headers(key, read.info)
        headers["Content-Length"] = str(read.length)

        status = 200
        if byte_range is not None:
            status = 206
            headers["Content-Range"] = byte_range.content_range(read.info.size)

        return StreamingResponse(
            content=read.body,
            status_code=status,
            headers=headers,
        )

    async def head_object(self, request: Request, bucket: str, key: str) -> Response:
        """Retrieve object metadata without the body.

        Implements: HEAD /{bucket}/{key}

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            200 OK with metadata headers and no body.
        """
        request.state.s3_operation = "HeadObject"
        info = await self.storage.head_object(bucket, key)
        headers = self._build_object_headers(key, info)
        headers["Content-Length"] = str(info.size)

        return Response(status_code=200, headers=headers)

    async def delete_object(self, request: Request, bucket: str, key: str) -> Response:
        """Delete a single object from a bucket.

        Implements: DELETE /{bucket}/{key}

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            204 No Content on success.
        """
        request.state.s3_operation = "DeleteObject"
        await self.storage.delete_object(bucket, key)
        logger.info("Deleted object %s/%s", bucket, key)

        return Response(status_code=204)

    async def list_objects(self, request: Request, bucket: str) -> Response:
        """List objects in a bucket using the v2 API.

        Implements: GET /{bucket}?list-type=2

        Only the v2 listing style is served: a request that carries any query
        string without ``list-type=2`` is answered with NotImplemented. A bare
        ``GET /{bucket}`` is treated as a v2 listing with defaults.

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.

        Returns:
            XML response with ListBucketResult.
        """
        request.state.s3_operation = "ListObjectsV2"
        params = request.query_params
        if request.url.query and params.get("list-type") != "2":
            raise NotImplementedS3Error()

        prefix = params.get("prefix", "")
        delimiter = params.get("delimiter", "")
        start_after = params.get("start-after", "")
        continuation_token = params.get("continuation-token", "")
        max_keys = validate_max_keys(params.get("max-keys", "1000"))

        page = await self.storage.list_objects_v2(
            bucket,
            prefix=prefix,
            delimiter=delimiter,
            start_after=start_after,
            continuation_token=continuation_token,
            max_keys=max_keys,
        )
        logger.debug(
            "Listed %s prefix=%r delimiter=%r: %d keys, truncated=%s",
            bucket, prefix, delimiter, page.key_count, page.is_truncated,
        )

        body = render_list_objects_v2(
            name=bucket,
            prefix=prefix,
            delimiter=delimiter,
            max_keys=max_keys,
            page=page,
            continuation_token=continuation_token,
            start_after=start_after,
        )
        return xml_response(body, status=200)

    def _build_object_headers(self, key: str, info: ObjectInfo) -> dict[str, str]:
        """Build S3-compatible response headers for an object.

        Content-Length is left to the caller since it depends on the range.
        """
        return {
            "ETag": quote_etag(info.etag),
            "Last-Modified": _http_date(info),
            "Content-Type": _guess_content_type(key),
            "Accept-Ranges": "bytes",
        }
