"""Input validation helpers for DirStore.

Buckets and keys are mapped straight onto paths below the storage root, so
the rules here are about keeping that mapping a bijection that never leaves
the root. They are deliberately looser than AWS bucket naming rules.

Each function raises an appropriate ``S3Error`` subclass on invalid input.
"""

import re

from dirstore.errors import InvalidArgument, InvalidBucketName, KeyTooLongError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_MAX_BUCKET_LEN = 255
_MAX_KEY_BYTES = 1024
_MAX_MAX_KEYS = 1000

_RESERVED_SEGMENTS = {".", ".."}

# In-flight writes live beside their target as "<name>.tmp.<8 hex chars>".
# No key may end in such a name.
SCRATCH_NAME_RE = re.compile(r"\.tmp\.[0-9a-f]{8}$")


def is_scratch_name(name: str) -> bool:
    """Return True if a file name has the in-flight write suffix."""
    return SCRATCH_NAME_RE.search(name) is not None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_bucket_name(name: str) -> None:
    """Validate a bucket name.

    A bucket is a single directory under the root: it must be a non-empty
    path segment without separators, NUL bytes, or dot-only names.

    Args:
        name: The candidate bucket name.

    Raises:
        InvalidBucketName: If the name cannot be used as a bucket directory.
    """
    if not name or len(name) > _MAX_BUCKET_LEN:
        raise InvalidBucketName(name)

    if name in _RESERVED_SEGMENTS:
        raise InvalidBucketName(name)

    if "/" in name or "\\" in name or "\x00" in name:
        raise InvalidBucketName(name)


def validate_object_key(key: str) -> None:
    """Validate an object key.

    Args:
        key: The object key string.

    Raises:
        KeyTooLongError: If the key exceeds 1024 bytes when UTF-8 encoded.
        InvalidArgument: If a segment of the key is empty, ``.``, ``..``, or
            contains a NUL byte, or if the last segment ends like a scratch
            file (``.tmp.`` followed by 8 lowercase hex characters).
    """
    if len(key.encode("utf-8")) > _MAX_KEY_BYTES:
        raise KeyTooLongError()

    if "\x00" in key:
        raise InvalidArgument("Object key must not contain NUL bytes")

    segments = key.split("/")
    for segment in segments:
        if not segment or segment in _RESERVED_SEGMENTS:
            raise InvalidArgument(f"Invalid object key: {key}")

    if is_scratch_name(segments[-1]):
        raise InvalidArgument(f"Object key uses a reserved suffix: {key}")


def validate_max_keys(value: str) -> int:
    """Validate and parse the ``max-keys`` query parameter.

    Values above 1000 are capped rather than rejected.

    Args:
        value: The raw string value from the query string.

    Returns:
        An integer in the range [0, 1000].

    Raises:
        InvalidArgument: If the value is not an integer or is negative.
    """
    try:
        n = int(value)
    except (ValueError, TypeError):
        raise InvalidArgument("Argument max-keys must be a non-negative integer")

    if n < 0:
        raise InvalidArgument("Argument max-keys must be a non-negative integer")

    return min(n, _MAX_MAX_KEYS)
