"""Local filesystem storage backend for DirStore.

Implements the StorageBackend protocol on top of a directory tree. Buckets
are directories directly under ``{root}``; objects are stored at
``{root}/{bucket}/{key}`` with every ``/`` in the key becoming a directory.

Crash-only design:
    - Atomic writes via temp-fsync-rename; the rename is the only
      atomicity boundary, so readers see either the old or the new content.
    - Content hashes are never stored; they are recomputed from the file.
    - Startup removes orphan temp files left by interrupted writes.

Blocking filesystem calls run in worker threads via ``asyncio.to_thread``.
Nothing here takes a lock: concurrent writers to the same key race at the
rename and the last one wins.
"""

import asyncio
import bisect
import hashlib
import logging
import os
import uuid
from collections.abc import AsyncIterable, AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from dirstore.errors import ErrorKind, StorageError
from dirstore.ranges import ByteRange
from dirstore.storage.models import BucketInfo, ListPage, ObjectInfo, ObjectRead
from dirstore.validation import is_scratch_name

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

# Attempts at creating a scratch file while a concurrent delete prunes its
# parent directory
_SCRATCH_ATTEMPTS = 5

_RESERVED_SEGMENTS = {"", ".", ".."}


def _utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _md5_of_handle(fh: BinaryIO) -> str:
    """Hash an open file from its first byte to its last."""
    fh.seek(0)
    md5 = hashlib.md5()
    while True:
        chunk = fh.read(_CHUNK_SIZE)
        if not chunk:
            break
        md5.update(chunk)
    return md5.hexdigest()


def _contains_file(root: Path) -> bool:
    """Depth-first walk that stops at the first non-directory entry."""
    for _dirpath, _dirnames, filenames in os.walk(root):
        if filenames:
            return True
    return False


class _HashingWriter:
    """Fans every chunk out to a file and an MD5 accumulator in one pass."""

    def __init__(self, path: Path) -> None:
        self._fh = open(path, "wb")
        self._md5 = hashlib.md5()
        self.size = 0

    def write(self, chunk: bytes) -> None:
        self._fh.write(chunk)
        self._md5.update(chunk)
        self.size += len(chunk)

    def finish(self) -> os.stat_result:
        """Flush and fsync the file, close it, and return its stat result."""
        self._fh.flush()
        os.fsync(self._fh.fileno())
        st = os.fstat(self._fh.fileno())
        self._fh.close()
        return st

    def close(self) -> None:
        self._fh.close()

    def hexdigest(self) -> str:
        return self._md5.hexdigest()


def _create_scratch(path: Path) -> tuple[Path, _HashingWriter]:
    """Create the parent directories of ``path`` and open a scratch file there.

    A concurrent delete of a sibling key may prune the freshly created
    parents before the scratch file is opened; the directories are then
    created again.
    """
    attempt = 1
    while True:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f"{path.name}.tmp.{uuid.uuid4().hex[:8]}")
        try:
            return tmp, _HashingWriter(tmp)
        except FileNotFoundError:
            if attempt >= _SCRATCH_ATTEMPTS:
                raise
            attempt += 1
            logger.debug("Parent directory of %s was pruned, creating it again", path)


class LocalStorageBackend:
    """Storage backend that persists objects on the local filesystem.

    Attributes:
        root: The root directory holding one subdirectory per bucket.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the local storage backend.

        Args:
            root: Root directory path for object storage.
        """
        self.root = Path(root)

    # -- Path mapping -----------------------------------------------------------

    def _bucket_path(self, bucket: str) -> Path:
        """Return the directory for a bucket.

        Raises:
            StorageError: INVALID_NAME if the name is not a single path segment.
        """
        if bucket in _RESERVED_SEGMENTS or "/" in bucket or os.sep in bucket or "\x00" in bucket:
            raise StorageError(ErrorKind.INVALID_NAME, bucket=bucket, detail="Invalid bucket name")
        return self.root / bucket

    def _object_path(self, bucket: str, key: str) -> Path:
        """Return the filesystem path for a stored object.

        Raises:
            StorageError: INVALID_NAME if a key segment would escape the bucket
                or collapse onto another key, or the key names a scratch file.
        """
        segments = key.split("/")
        for segment in segments:
            if segment in _RESERVED_SEGMENTS or os.sep in segment or "\x00" in segment:
                raise StorageError(
                    ErrorKind.INVALID_NAME, bucket=bucket, key=key, detail=f"Invalid object key: {key}"
                )
        if is_scratch_name(segments[-1]):
            raise StorageError(
                ErrorKind.INVALID_NAME,
                bucket=bucket,
                key=key,
                detail=f"Object key uses a reserved suffix: {key}",
            )
        return self._bucket_path(bucket).joinpath(*segments)

    def _require_bucket(self, bucket: str) -> Path:
        path = self._bucket_path(bucket)
        if not path.is_dir():
            raise StorageError(ErrorKind.NO_SUCH_BUCKET, bucket=bucket)
        return path

    # -- Lifecycle --------------------------------------------------------------

    async def init(self) -> None:
        """Create the root directory and clean up orphan temp files.

        Crash-only design: every startup is a recovery.
        """
        await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(self._clean_temp_files)
        logger.info("Local storage backend initialized at %s", self.root)

    def _clean_temp_files(self) -> None:
        """Remove orphan temp files left by interrupted atomic writes."""
        count = 0
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for fname in filenames:
                if is_scratch_name(fname):
                    try:
                        os.unlink(os.path.join(dirpath, fname))
                        count += 1
                    except OSError:
                        logger.warning("Could not remove orphan temp file %s/%s", dirpath, fname)
        if count > 0:
            logger.info("Cleaned %d orphan temp files on startup", count)

    async def close(self) -> None:
        """No-op for local filesystem backend."""
        pass

    # -- Buckets ----------------------------------------------------------------

    async def list_buckets(self) -> list[BucketInfo]:
        """Return every bucket directory under the root, sorted by name.

        Raises:
            OSError: If the root directory cannot be read.
        """
        return await asyncio.to_thread(self._list_buckets)

    def _list_buckets(self) -> list[BucketInfo]:
        buckets: list[BucketInfo] = []
        with os.scandir(self.root) as it:
            for entry in it:
                if not entry.is_dir():
                    continue
                try:
                    st = entry.stat()
                except FileNotFoundError:
                    # Deleted between scandir and stat
                    continue
                buckets.append(BucketInfo(name=entry.name, creation_date=_utc(st.st_mtime)))
        buckets.sort(key=lambda b: b.name)
        return buckets

    async def make_bucket(self, bucket: str) -> None:
        """Create the bucket directory (and any parents). Idempotent."""
        path = self._bucket_path(bucket)
        await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)

    async def bucket_exists(self, bucket: str) -> bool:
        return await asyncio.to_thread(self._bucket_path(bucket).is_dir)

    async def delete_bucket(self, bucket: str) -> None:
        """Delete a bucket that holds no files.

        Empty subdirectories left behind by earlier deletes are removed along
        with the bucket directory.

        Raises:
            StorageError: NO_SUCH_BUCKET if the bucket is missing,
                BUCKET_NOT_EMPTY if any file exists in its subtree.
        """
        await asyncio.to_thread(self._delete_bucket, bucket)

    def _delete_bucket(self, bucket: str) -> None:
        path = self._require_bucket(bucket)
        if _contains_file(path):
            raise StorageError(ErrorKind.BUCKET_NOT_EMPTY, bucket=bucket)

        for dirpath, _dirnames, _filenames in os.walk(path, topdown=False):
            try:
                os.rmdir(dirpath)
            except FileNotFoundError:
                continue
            except OSError:
                # A writer got in between the emptiness check and the removal
                if _contains_file(path):
                    raise StorageError(ErrorKind.BUCKET_NOT_EMPTY, bucket=bucket) from None
                raise

    # -- Objects ----------------------------------------------------------------

    async def put_object(
        self,
        bucket: str,
        key: str,
        stream: AsyncIterable[bytes],
        declared_length: int | None = None,
    ) -> ObjectInfo:
        """Write an object atomically, creating the bucket if needed.

        The content is streamed into ``<final path>.tmp.<hex>`` while being
        hashed, fsync'd, then renamed over the final path. On any failure
        before the rename the temp file is removed.

        Args:
            bucket: The bucket name.
            key: The object key.
            stream: The object content as async byte chunks.
            declared_length: Expected byte count, checked after the copy.

        Returns:
            Metadata of the newly written object.

        Raises:
            StorageError: INCOMPLETE_BODY if the byte count does not match
                ``declared_length``.
        """
        path = self._object_path(bucket, key)
        tmp, writer = await asyncio.to_thread(_create_scratch, path)
        try:
            async for chunk in stream:
                if chunk:
                    await asyncio.to_thread(writer.write, chunk)
            if declared_length is not None and writer.size != declared_length:
                raise StorageError(
                    ErrorKind.INCOMPLETE_BODY,
                    bucket=bucket,
                    key=key,
                    detail=f"expected {declared_length} bytes, received {writer.size}",
                )
            st = await asyncio.to_thread(writer.finish)
            await asyncio.to_thread(os.replace, tmp, path)
        except BaseException:
            writer.close()
            tmp.unlink(missing_ok=True)
            raise

        return ObjectInfo(
            key=key,
            size=writer.size,
            etag=writer.hexdigest(),
            last_modified=_utc(st.st_mtime),
        )

    def _open_object(self, bucket: str, key: str) -> BinaryIO:
        self._require_bucket(bucket)
        path = self._object_path(bucket, key)
        try:
            return open(path, "rb")
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            raise StorageError(ErrorKind.NO_SUCH_KEY, bucket=bucket, key=key) from None

    def _describe(self, fh: BinaryIO, key: str) -> ObjectInfo:
        st = os.fstat(fh.fileno())
        return ObjectInfo(
            key=key,
            size=st.st_size,
            etag=_md5_of_handle(fh),
            last_modified=_utc(st.st_mtime),
        )

    def _open_and_describe(self, bucket: str, key: str) -> tuple[BinaryIO, ObjectInfo]:
        fh = self._open_object(bucket, key)
        try:
            return fh, self._describe(fh, key)
        except BaseException:
            fh.close()
            raise

    async def get_object(
        self, bucket: str, key: str, byte_range: ByteRange | None = None
    ) -> ObjectRead:
        """Open an object for streaming.

        The ETag is computed over the whole file from the same open handle
        that is streamed, so hash and body always belong to one version even
        if the key is overwritten meanwhile.

        Raises:
            StorageError: NO_SUCH_BUCKET, NO_SUCH_KEY, or RANGE_NOT_SATISFIABLE
                when the resolved start offset lies outside the object.
        """
        fh, info = await asyncio.to_thread(self._open_and_describe, bucket, key)

        if byte_range is None:
            start, length = 0, info.size
        else:
            start, length = byte_range.window(info.size)
            if start < 0 or start >= info.size:
                fh.close()
                raise StorageError(ErrorKind.RANGE_NOT_SATISFIABLE, bucket=bucket, key=key)

        return ObjectRead(info=info, start=start, length=length, body=_iter_file(fh, start, length))

    async def head_object(self, bucket: str, key: str) -> ObjectInfo:
        """Return size, ETag and modification time of an object.

        The ETag is recomputed by reading the whole file.
        """
        return await asyncio.to_thread(self._head_object, bucket, key)

    def _head_object(self, bucket: str, key: str) -> ObjectInfo:
        with self._open_object(bucket, key) as fh:
            return self._describe(fh, key)

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object and prune empty parent directories.

        Raises:
            StorageError: NO_SUCH_BUCKET or NO_SUCH_KEY.
        """
        await asyncio.to_thread(self._delete_object, bucket, key)

    def _delete_object(self, bucket: str, key: str) -> None:
        bucket_dir = self._require_bucket(bucket)
        path = self._object_path(bucket, key)

        try:
            path.unlink()
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            raise StorageError(ErrorKind.NO_SUCH_KEY, bucket=bucket, key=key) from None

        # Clean up empty parent directories (up to bucket dir)
        parent = path.parent
        while parent != bucket_dir:
            try:
                parent.rmdir()  # Only removes empty dirs
            except OSError:
                break
            parent = parent.parent

    async def list_objects_v2(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str = "",
        start_after: str = "",
        continuation_token: str = "",
        max_keys: int = 1000,
    ) -> ListPage:
        """List one page of a bucket, S3 ListObjectsV2 style.

        Walks the whole bucket directory, keeps keys starting with ``prefix``
        and sorts them. The page starts after ``continuation_token`` and then
        after ``start_after``, and holds at most ``max_keys`` entries. With a
        delimiter, entries whose remainder after the prefix contains it are
        folded into common prefixes.

        Raises:
            StorageError: NO_SUCH_BUCKET if the bucket is missing.
        """
        return await asyncio.to_thread(
            self._list_objects_v2,
            bucket,
            prefix,
            delimiter,
            start_after,
            continuation_token,
            max_keys,
        )

    def _list_objects_v2(
        self,
        bucket: str,
        prefix: str,
        delimiter: str,
        start_after: str,
        continuation_token: str,
        max_keys: int,
    ) -> ListPage:
        bucket_dir = self._require_bucket(bucket)

        entries: dict[str, str] = {}
        for dirpath, _dirnames, filenames in os.walk(bucket_dir):
            rel_dir = os.path.relpath(dirpath, bucket_dir)
            for fname in filenames:
                if is_scratch_name(fname):
                    continue
                rel = fname if rel_dir == "." else os.path.join(rel_dir, fname)
                key = rel.replace(os.sep, "/")
                if prefix and not key.startswith(prefix):
                    continue
                entries[key] = os.path.join(dirpath, fname)

        keys = sorted(entries)

        start = 0
        if continuation_token:
            start = bisect.bisect_right(keys, continuation_token)
        if start_after:
            start = max(start, bisect.bisect_right(keys, start_after))
        end = min(start + max_keys, len(keys))

        page = ListPage()
        seen: set[str] = set()
        for key in keys[start:end]:
            if delimiter:
                rest = key[len(prefix):]
                idx = rest.find(delimiter)
                if idx >= 0:
                    common = prefix + rest[: idx + len(delimiter)]
                    if common not in seen:
                        seen.add(common)
                        page.common_prefixes.append(common)
                    continue
            info = self._stat_listed(entries[key], key)
            if info is not None:
                page.contents.append(info)

        if end < len(keys):
            page.is_truncated = True
            if end > start:
                page.next_continuation_token = keys[end - 1]

        return page

    def _stat_listed(self, path: str, key: str) -> ObjectInfo | None:
        try:
            with open(path, "rb") as fh:
                return self._describe(fh, key)
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            logger.debug("Object %s vanished during listing", key)
            return None


async def _iter_file(fh: BinaryIO, start: int, length: int) -> AsyncIterator[bytes]:
    """Yield up to ``length`` bytes from ``fh`` starting at ``start``, then close it."""
    try:
        await asyncio.to_thread(fh.seek, start)
        remaining = length
        while remaining > 0:
            chunk = await asyncio.to_thread(fh.read, min(_CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    finally:
        fh.close()
