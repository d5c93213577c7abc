"""Data model types returned by DirStore storage backends.

These dataclasses describe buckets and objects as the storage engine sees
them (derived from directory entries and file stat results) and the result
containers returned by read and list operations.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class BucketInfo:
    """A bucket directory under the storage root.

    Attributes:
        name: The bucket name (the directory name).
        creation_date: The directory's modification time, in UTC.
    """

    name: str
    creation_date: datetime


@dataclass
class ObjectInfo:
    """Metadata for a stored object.

    Attributes:
        key: The object key.
        size: Size in bytes of the full stored content.
        etag: Unquoted hex MD5 of the full stored content.
        last_modified: The file's modification time, in UTC.
    """

    key: str
    size: int
    etag: str
    last_modified: datetime


@dataclass
class ObjectRead:
    """An opened object ready to be streamed.

    ``info`` always describes the whole object; ``start`` and ``length``
    describe the window that ``body`` yields.

    Attributes:
        info: Size, ETag and modification time of the full object.
        start: Byte offset of the first byte yielded.
        length: Number of bytes ``body`` yields.
        body: Async iterator of byte chunks.
    """

    info: ObjectInfo
    start: int
    length: int
    body: AsyncIterator[bytes]


@dataclass
class ListPage:
    """One page of a ListObjectsV2 listing.

    Attributes:
        contents: Objects included directly in the page.
        common_prefixes: Grouped key prefixes (when a delimiter was given).
        is_truncated: Whether more keys follow this page.
        next_continuation_token: Last key of the page, when truncated.
    """

    contents: list[ObjectInfo] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    is_truncated: bool = False
    next_continuation_token: str | None = None

    @property
    def key_count(self) -> int:
        return len(self.contents) + len(self.common_prefixes)
