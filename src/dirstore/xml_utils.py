"""S3 XML response rendering helpers for DirStore."""

from datetime import datetime, timezone
from xml.sax.saxutils import escape as _sax_escape

from fastapi.responses import Response

from dirstore.storage.models import BucketInfo, ListPage

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"


def _escape_xml(value: str) -> str:
    """Escape special XML characters in a string value.

    Args:
        value: The raw string to escape.

    Returns:
        The XML-safe escaped string.
    """
    return _sax_escape(str(value))


def format_iso8601(dt: datetime) -> str:
    """Format a datetime the way S3 XML bodies do: ``2024-01-01T00:00:00.000Z``."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def render_error(
    code: str,
    message: str,
    resource: str = "",
    request_id: str = "",
    extra_fields: dict[str, str] | None = None,
) -> str:
    """Render an S3 XML error response body.

    Args:
        code: The S3 error code (e.g. "NoSuchBucket").
        message: Human-readable error message.
        resource: The resource that triggered the error.
        request_id: An opaque request identifier.
        extra_fields: Additional XML elements to include.

    Returns:
        An XML string for the Error envelope.
    """
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<Error xmlns="{S3_NAMESPACE}">',
        f"<Code>{_escape_xml(code)}</Code>",
        f"<Message>{_escape_xml(message)}</Message>",
    ]
    if resource:
        parts.append(f"<Resource>{_escape_xml(resource)}</Resource>")
    if request_id:
        parts.append(f"<RequestId>{_escape_xml(request_id)}</RequestId>")
    if extra_fields:
        for key, value in extra_fields.items():
            parts.append(f"<{key}>{_escape_xml(value)}</{key}>")
    parts.append("</Error>")
    return "\n".join(parts)


def xml_response(body: str, status: int = 200) -> Response:
    """Wrap an XML body string in a FastAPI Response with correct content type.

    Args:
        body: The XML body string.
        status: HTTP status code.

    Returns:
        A FastAPI Response with media_type application/xml.
    """
    return Response(
        content=body,
        status_code=status,
        media_type="application/xml",
    )


def render_list_buckets(
    owner_id: str,
    owner_display_name: str,
    buckets: list[BucketInfo],
) -> str:
    """Render an S3 ListAllMyBuckets XML response.

    Args:
        owner_id: The canonical user ID of the bucket owner.
        owner_display_name: Display name of the owner.
        buckets: The buckets to list, already sorted.

    Returns:
        An XML string for ListAllMyBucketsResult.
    """
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<ListAllMyBucketsResult xmlns="{S3_NAMESPACE}">',
        "<Owner>",
        f"<ID>{_escape_xml(owner_id)}</ID>",
        f"<DisplayName>{_escape_xml(owner_display_name)}</DisplayName>",
        "</Owner>",
        "<Buckets>",
    ]

    for b in buckets:
        parts.append("<Bucket>")
        parts.append(f"<Name>{_escape_xml(b.name)}</Name>")
        parts.append(f"<CreationDate>{format_iso8601(b.creation_date)}</CreationDate>")
        parts.append("</Bucket>")

    parts.append("</Buckets>")
    parts.append("</ListAllMyBucketsResult>")
    return "\n".join(parts)


def render_list_objects_v2(
    name: str,
    prefix: str,
    delimiter: str,
    max_keys: int,
    page: ListPage,
    continuation_token: str = "",
    start_after: str = "",
) -> str:
    """Render an S3 ListObjectsV2 XML response.

    Args:
        name: Bucket name.
        prefix: Key prefix filter.
        delimiter: Grouping delimiter.
        max_keys: Maximum keys requested.
        page: The listing page returned by the storage backend.
        continuation_token: The token used for this request.
        start_after: The start-after value used for this request.

    Returns:
        An XML string for ListBucketResult.
    """
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<ListBucketResult xmlns="{S3_NAMESPACE}">',
        f"<Name>{_escape_xml(name)}</Name>",
        f"<Prefix>{_escape_xml(prefix)}</Prefix>",
    ]

    if delimiter:
        parts.append(f"<Delimiter>{_escape_xml(delimiter)}</Delimiter>")

    parts.append(f"<MaxKeys>{max_keys}</MaxKeys>")

    if start_after:
        parts.append(f"<StartAfter>{_escape_xml(start_after)}</StartAfter>")

    if continuation_token:
        parts.append(f"<ContinuationToken>{_escape_xml(continuation_token)}</ContinuationToken>")

    parts.append(f"<KeyCount>{page.key_count}</KeyCount>")
    parts.append(f"<IsTruncated>{str(page.is_truncated).lower()}</IsTruncated>")

    if page.is_truncated and page.next_continuation_token:
        parts.append(
            f"<NextContinuationToken>{_escape_xml(page.next_continuation_token)}</NextContinuationToken>"
        )

    for obj in page.contents:
        parts.append("<Contents>")
        parts.append(f"<Key>{_escape_xml(obj.key)}</Key>")
        parts.append(f"<LastModified>{format_iso8601(obj.last_modified)}</LastModified>")
        parts.append(f"<ETag>{_escape_xml(quote_etag(obj.etag))}</ETag>")
        parts.append(f"<Size>{obj.size}</Size>")
        parts.append("<StorageClass>STANDARD</StorageClass>")
        parts.append("</Contents>")

    for cp in page.common_prefixes:
        parts.append("<CommonPrefixes>")
        parts.append(f"<Prefix>{_escape_xml(cp)}</Prefix>")
        parts.append("</CommonPrefixes>")

    parts.append("</ListBucketResult>")
    return "\n".join(parts)


def quote_etag(md5_hex: str) -> str:
    """S3 ETags are always double-quoted on the wire."""
    return f'"{md5_hex}"'
