"""Error definitions for DirStore.

Two layers of errors live here:

* ``StorageError`` carries one member of the closed ``ErrorKind`` enum. The
  storage engine raises only these for conditions it recognizes.
* ``S3Error`` and its subclasses describe wire-level errors (code, message,
  HTTP status). Handlers raise them directly, and ``to_s3_error`` converts a
  ``StorageError`` into one at the protocol boundary.
"""

from enum import Enum


class ErrorKind(Enum):
    """Conditions the storage engine reports to its callers."""

    NO_SUCH_BUCKET = "no such bucket"
    BUCKET_NOT_EMPTY = "bucket not empty"
    NO_SUCH_KEY = "no such key"
    RANGE_NOT_SATISFIABLE = "range not satisfiable"
    INVALID_NAME = "invalid name"
    INCOMPLETE_BODY = "incomplete body"


class StorageError(Exception):
    """A recognized storage-engine failure.

    Attributes:
        kind: Which condition occurred.
        bucket: The bucket involved, if any.
        key: The object key involved, if any.
    """

    def __init__(self, kind: ErrorKind, bucket: str = "", key: str = "", detail: str = "") -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.bucket = bucket
        self.key = key
        self.detail = detail


class S3Error(Exception):
    """An S3-compatible error with code, message, and HTTP status.

    Attributes:
        code: The S3 error code string (e.g. "NoSuchBucket").
        message: Human-readable error description.
        http_status: The HTTP status code to return.
        extra_fields: Additional key-value pairs to include in the XML error response.
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 400,
        extra_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the S3 error.

        Args:
            code: S3 error code.
            message: Error description.
            http_status: HTTP status code (default 400).
            extra_fields: Optional extra XML fields.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra_fields = extra_fields or {}


# -- Pre-defined errors -------------------------------------------------------


class NoSuchBucket(S3Error):
    """The specified bucket does not exist."""

    def __init__(self, bucket: str = "") -> None:
        super().__init__(
            code="NoSuchBucket",
            message="The specified bucket does not exist.",
            http_status=404,
            extra_fields={"BucketName": bucket} if bucket else {},
        )


class NoSuchKey(S3Error):
    """The specified key does not exist."""

    def __init__(self, key: str = "") -> None:
        super().__init__(
            code="NoSuchKey",
            message="The specified key does not exist.",
            http_status=404,
            extra_fields={"Key": key} if key else {},
        )


class BucketNotEmpty(S3Error):
    """The bucket is not empty and cannot be deleted."""

    def __init__(self, bucket: str = "") -> None:
        super().__init__(
            code="BucketNotEmpty",
            message="The bucket you tried to delete is not empty.",
            http_status=409,
            extra_fields={"BucketName": bucket} if bucket else {},
        )


class InvalidArgument(S3Error):
    """An invalid argument was provided."""

    def __init__(self, message: str = "Invalid Argument") -> None:
        super().__init__(code="InvalidArgument", message=message, http_status=400)


class InvalidBucketName(S3Error):
    """The specified bucket name is not valid."""

    def __init__(self, bucket: str = "") -> None:
        super().__init__(
            code="InvalidBucketName",
            message="The specified bucket is not valid.",
            http_status=400,
            extra_fields={"BucketName": bucket} if bucket else {},
        )


class KeyTooLongError(S3Error):
    """The specified key is too long."""

    def __init__(self, message: str = "Your key is too long.") -> None:
        super().__init__(code="KeyTooLongError", message=message, http_status=400)


class IncompleteBody(S3Error):
    """Fewer or more bytes arrived than the Content-Length announced."""

    def __init__(
        self,
        message: str = "You did not provide the number of bytes specified by the Content-Length HTTP header.",
    ) -> None:
        super().__init__(code="IncompleteBody", message=message, http_status=400)


class InternalError(S3Error):
    """An internal server error occurred."""

    def __init__(self, message: str = "We encountered an internal error. Please try again.") -> None:
        super().__init__(code="InternalError", message=message, http_status=500)


class InvalidRange(S3Error):
    """The requested range is not satisfiable."""

    def __init__(self, message: str = "The requested range is not satisfiable.") -> None:
        super().__init__(code="InvalidRange", message=message, http_status=416)


class MethodNotAllowed(S3Error):
    """The specified method is not allowed against this resource."""

    def __init__(
        self, message: str = "The specified method is not allowed against this resource."
    ) -> None:
        super().__init__(code="MethodNotAllowed", message=message, http_status=405)


class NotImplementedS3Error(S3Error):
    """The requested functionality is not implemented."""

    def __init__(
        self, message: str = "A header you provided implies functionality that is not implemented."
    ) -> None:
        super().__init__(code="NotImplemented", message=message, http_status=501)


# -- Boundary translation ------------------------------------------------------


def to_s3_error(exc: StorageError) -> S3Error:
    """Translate a storage-engine failure into its wire-level error.

    Args:
        exc: The storage error raised by the engine.

    Returns:
        The matching ``S3Error`` instance.
    """
    kind = exc.kind
    if kind is ErrorKind.NO_SUCH_BUCKET:
        return NoSuchBucket(exc.bucket)
    if kind is ErrorKind.BUCKET_NOT_EMPTY:
        return BucketNotEmpty(exc.bucket)
    if kind is ErrorKind.NO_SUCH_KEY:
        return NoSuchKey(exc.key)
    if kind is ErrorKind.RANGE_NOT_SATISFIABLE:
        return InvalidRange()
    if kind is ErrorKind.INVALID_NAME:
        return InvalidArgument(exc.detail or "Invalid bucket name or object key")
    if kind is ErrorKind.INCOMPLETE_BODY:
        return IncompleteBody()
    raise AssertionError(f"unhandled storage error kind: {kind!r}")
