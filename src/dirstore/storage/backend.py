"""Abstract storage backend protocol for DirStore."""

from collections.abc import AsyncIterable
from typing import Protocol

from dirstore.ranges import ByteRange
from dirstore.storage.models import BucketInfo, ListPage, ObjectInfo, ObjectRead


class StorageBackend(Protocol):
    """Protocol defining the object storage backend interface.

    Backends map the bucket/key/range abstraction onto some storage medium.
    Failures they recognize are raised as ``StorageError`` with an
    ``ErrorKind``; anything else propagates unchanged.
    """

    async def init(self) -> None:
        """Initialize the storage backend (create directories, recover, etc.)."""
        ...

    async def close(self) -> None:
        """Release resources held by the storage backend."""
        ...

    async def list_buckets(self) -> list[BucketInfo]:
        """Return all buckets, sorted by name."""
        ...

    async def make_bucket(self, bucket: str) -> None:
        """Create a bucket if it does not already exist.

        Args:
            bucket: The bucket name.
        """
        ...

    async def bucket_exists(self, bucket: str) -> bool:
        """Check whether a bucket exists.

        Args:
            bucket: The bucket name.

        Returns:
            True if the bucket exists.
        """
        ...

    async def delete_bucket(self, bucket: str) -> None:
        """Delete an empty bucket.

        Args:
            bucket: The bucket name.
        """
        ...

    async def put_object(
        self,
        bucket: str,
        key: str,
        stream: AsyncIterable[bytes],
        declared_length: int | None = None,
    ) -> ObjectInfo:
        """Store an object atomically, creating the bucket if needed.

        Args:
            bucket: The bucket name.
            key: The object key.
            stream: The object content as an async stream of chunks.
            declared_length: The size the client announced, if any.

        Returns:
            Size, hex MD5 and modification time of the stored object.
        """
        ...

    async def get_object(
        self, bucket: str, key: str, byte_range: ByteRange | None = None
    ) -> ObjectRead:
        """Open an object for reading, optionally restricted to a range.

        Args:
            bucket: The bucket name.
            key: The object key.
            byte_range: The requested range, or None for the whole object.

        Returns:
            Full-object metadata plus a stream over the requested window.
        """
        ...

    async def head_object(self, bucket: str, key: str) -> ObjectInfo:
        """Return an object's metadata without its content.

        Args:
            bucket: The bucket name.
            key: The object key.
        """
        ...

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object.

        Args:
            bucket: The bucket name.
            key: The object key.
        """
        ...

    async def list_objects_v2(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "",
        start_after: str = "",
        continuation_token: str = "",
        max_keys: int = 1000,
    ) -> ListPage:
        """List one page of objects in a bucket.

        Args:
            bucket: The bucket name.
            prefix: Only keys starting with this prefix are listed.
            delimiter: Groups keys into common prefixes when non-empty.
            start_after: Only keys strictly after this key are listed.
            continuation_token: Cursor returned by the previous page.
            max_keys: Maximum number of keys in the page.

        Returns:
            The page of results.
        """
        ...
