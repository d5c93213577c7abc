"""HTTP ``Range`` header parsing for DirStore.

Only single byte ranges are supported. Three shapes are recognized:

    - ``bytes=N-M``  explicit, inclusive on both ends
    - ``bytes=N-``   open-ended, from N to end of object
    - ``bytes=-N``   suffix, the last N bytes

The parser does not need the object size. A ``ByteRange`` is resolved into
an absolute window later, once the size of the stored file is known.
"""

import re
from dataclasses import dataclass
from enum import Enum

from dirstore.errors import InvalidRange

_RANGE_RE = re.compile(r"^(\d*)-(\d*)$")


class RangeKind(Enum):
    SUFFIX = "suffix"
    OPEN = "open"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class ByteRange:
    """A parsed single byte range.

    Attributes:
        kind: Which of the three range shapes this is.
        start: First byte offset (unused for suffix ranges).
        end: Last byte offset, inclusive (explicit ranges only).
        suffix_length: Number of trailing bytes (suffix ranges only).
    """

    kind: RangeKind
    start: int = 0
    end: int | None = None
    suffix_length: int = 0

    def bounds(self, size: int) -> tuple[int, int]:
        """Return the inclusive ``(start, end)`` offsets for an object size.

        Suffix lengths larger than the object are clamped to the object, and
        explicit ends past the last byte are clamped to it.
        """
        if self.kind is RangeKind.SUFFIX:
            length = min(self.suffix_length, size)
            return size - length, size - 1
        if self.kind is RangeKind.OPEN:
            return self.start, size - 1
        return self.start, min(self.end, size - 1)

    def window(self, size: int) -> tuple[int, int]:
        """Resolve this range into a ``(start, length)`` window.

        No bounds checking happens here; callers reject windows whose start
        is negative or not below ``size``.

        Args:
            size: The total size of the object in bytes.

        Returns:
            The absolute offset and number of bytes to serve.
        """
        start, end = self.bounds(size)
        return start, end - start + 1

    def content_range(self, size: int) -> str:
        """Render the ``Content-Range`` header value for this range."""
        start, end = self.bounds(size)
        return f"bytes {start}-{end}/{size}"


def parse_range_header(header: str | None) -> ByteRange | None:
    """Parse an HTTP Range header value.

    Args:
        header: The raw header value, e.g. ``"bytes=0-4"``. May be empty.

    Returns:
        The parsed range, or None when no range was requested.

    Raises:
        InvalidRange: If the header is present but malformed, names a unit
            other than bytes, lists more than one range, or has inverted bounds.
    """
    if not header:
        return None

    if not header.startswith("bytes="):
        raise InvalidRange()

    spec = header[len("bytes="):]
    if "," in spec:
        raise InvalidRange()

    m = _RANGE_RE.match(spec.strip())
    if not m:
        raise InvalidRange()

    start_str, end_str = m.group(1), m.group(2)

    if not start_str:
        # "bytes=-" and "bytes=-0" both end up here
        if not end_str or int(end_str) <= 0:
            raise InvalidRange()
        return ByteRange(RangeKind.SUFFIX, suffix_length=int(end_str))

    start = int(start_str)
    if not end_str:
        return ByteRange(RangeKind.OPEN, start=start)

    end = int(end_str)
    if end < start:
        raise InvalidRange()
    return ByteRange(RangeKind.EXPLICIT, start=start, end=end)
