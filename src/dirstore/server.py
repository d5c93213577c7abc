"""FastAPI application factory and route setup for DirStore."""

import base64
import email.utils
import logging
import secrets
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError

from dirstore.config import DirStoreConfig
from dirstore.errors import (
    InternalError,
    InvalidArgument,
    MethodNotAllowed,
    S3Error,
    StorageError,
    to_s3_error,
)
from dirstore.handlers.bucket import BucketHandler
from dirstore.handlers.object import ObjectHandler
from dirstore.storage.backend import StorageBackend
from dirstore.storage.local import LocalStorageBackend
from dirstore.xml_utils import render_error, xml_response

logger = logging.getLogger(__name__)

# Methods routed to the 405 fallback when no S3 route matches.
_ALL_METHODS = ["GET", "HEAD", "PUT", "POST", "DELETE", "PATCH", "OPTIONS"]

# ---------------------------------------------------------------------------
# Prometheus instrumentator singleton
# ---------------------------------------------------------------------------

_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_group_status_codes=False,
            excluded_handlers=["/metrics"],
        )
    return _instrumentator


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: DirStoreConfig) -> FastAPI:
    """Create and configure the DirStore FastAPI application.

    Middleware and exception handlers ensure common headers are applied to
    ALL responses (including error responses), and storage and S3 errors
    are rendered as S3 error XML.

    The lifespan context manager initializes the storage backend on startup
    (which also removes scratch files left by an earlier crash) and closes it
    on shutdown.

    Args:
        config: The loaded DirStore configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        storage = _create_storage_backend(config)
        await storage.init()
        app.state.storage = storage

        yield

        await storage.close()
        logger.info("Storage backend closed")

    app = FastAPI(
        title="DirStore S3 API",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config

    _register_exception_handlers(app)
    _register_middleware(app, config)

    # /metrics must be registered before the /{bucket} catch-all.
    if config.observability.metrics:
        import dirstore.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="dirstore").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app)

    return app


def _create_storage_backend(config: DirStoreConfig) -> StorageBackend:
    """Build the storage backend rooted at the configured directory."""
    return LocalStorageBackend(config.storage.root_dir)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(request: Request, exc: S3Error) -> Response:
    """Render an S3Error as XML; HEAD responses carry no body."""
    if request.method == "HEAD":
        return Response(status_code=exc.http_status)

    body = render_error(
        code=exc.code,
        message=exc.message,
        resource=request.url.path,
        request_id=getattr(request.state, "request_id", ""),
        extra_fields=exc.extra_fields,
    )
    return xml_response(body, status=exc.http_status)


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(S3Error)
    async def s3_error_handler(request: Request, exc: S3Error) -> Response:
        return _error_response(request, exc)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> Response:
        """Translate a storage engine failure into its S3 wire error."""
        return _error_response(request, to_s3_error(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        """Map FastAPI validation errors to an S3 ``InvalidArgument`` error."""
        messages = []
        for err in exc.errors():
            loc = " -> ".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", "Invalid value")
            messages.append(f"{loc}: {msg}" if loc else msg)
        combined = "; ".join(messages) or "Invalid request parameters"

        return _error_response(request, InvalidArgument(combined))

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Last resort for failures outside the request middleware."""
        logger.exception("Unhandled exception in request handler")
        return _error_response(request, InternalError())


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _content_length(headers) -> int:
    raw = headers.get("content-length")
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError:
        return 0


def _register_middleware(app: FastAPI, config: DirStoreConfig) -> None:
    """Register the common-headers middleware on the FastAPI app."""

    metrics_enabled = config.observability.metrics

    @app.middleware("http")
    async def common_headers_middleware(request: Request, call_next) -> Response:
        """Add common S3 response headers to every response.

        Generates x-amz-request-id (16-char uppercase hex), x-amz-id-2 (base64),
        Date (RFC 1123), and Server header. Stores request_id on request.state
        so exception handlers can use it. Unexpected exceptions from the
        handler become an InternalError response here.

        When metrics are enabled, also counts the S3 operation the handler
        recorded on request.state and the request/response byte totals.
        """
        request_id = secrets.token_hex(8).upper()
        request.state.request_id = request_id
        start = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            # Rendered here rather than by the app-level handler so the
            # 500 still gets the headers below.
            logger.exception("Unhandled exception in request handler")
            response = _error_response(request, InternalError())

        duration_ms = round((time.monotonic() - start) * 1000, 2)

        response.headers["x-amz-request-id"] = request_id
        response.headers["x-amz-id-2"] = base64.b64encode(secrets.token_bytes(24)).decode()
        response.headers["Date"] = email.utils.formatdate(usegmt=True)
        response.headers["Server"] = "DirStore"

        if metrics_enabled and request.url.path != "/metrics":
            import dirstore.metrics as _m

            operation = getattr(request.state, "s3_operation", None)
            if operation:
                _m.record_operation(operation, response.status_code)
            req_size = _content_length(request.headers)
            if req_size > 0 and _m.bytes_received_total is not None:
                _m.bytes_received_total.inc(req_size)
            resp_size = _content_length(response.headers)
            if resp_size > 0 and _m.bytes_sent_total is not None:
                _m.bytes_sent_total.inc(resp_size)

        if request.url.path != "/metrics":
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                },
            )

        return response


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI) -> None:
    """Register all S3-compatible routes on the application.

    Path-style addressing only: the first path segment is the bucket and the
    remainder is the key. ``/{bucket}/`` (empty key) is a bucket-level
    request. Any method without a route falls through to a 405 handler.

    Args:
        app: The FastAPI application to attach routes to.
    """
    bucket_handler = BucketHandler(app)
    object_handler = ObjectHandler(app)

    # Service-level
    @app.get("/")
    async def handle_service_get(request: Request) -> Response:
        """Handle GET / -- ListBuckets."""
        return await bucket_handler.list_buckets(request)

    # Bucket-level routes
    @app.put("/{bucket}")
    async def handle_bucket_put(bucket: str, request: Request) -> Response:
        """Handle PUT /{bucket} -- CreateBucket."""
        return await bucket_handler.create_bucket(request, bucket)

    @app.delete("/{bucket}")
    async def handle_bucket_delete(bucket: str, request: Request) -> Response:
        """Handle DELETE /{bucket} -- DeleteBucket."""
        return await bucket_handler.delete_bucket(request, bucket)

    @app.get("/{bucket}")
    async def handle_bucket_get(bucket: str, request: Request) -> Response:
        """Handle GET /{bucket} -- ListObjectsV2."""
        return await object_handler.list_objects(request, bucket)

    # Object-level routes (key can contain slashes via {key:path})
    @app.put("/{bucket}/{key:path}")
    async def handle_object_put(bucket: str, key: str, request: Request) -> Response:
        """Handle PUT /{bucket}/{key} -- PutObject."""
        if not key:
            return await bucket_handler.create_bucket(request, bucket)
        return await object_handler.put_object(request, bucket, key)

    @app.head("/{bucket}/{key:path}")
    async def handle_object_head(bucket: str, key: str, request: Request) -> Response:
        """Handle HEAD /{bucket}/{key} -- HeadObject."""
        if not key:
            raise MethodNotAllowed()
        return await object_handler.head_object(request, bucket, key)

    @app.get("/{bucket}/{key:path}")
    async def handle_object_get(bucket: str, key: str, request: Request) -> Response:
        """Handle GET /{bucket}/{key} -- GetObject."""
        if not key:
            return await object_handler.list_objects(request, bucket)
        return await object_handler.get_object(request, bucket, key)

    @app.delete("/{bucket}/{key:path}")
    async def handle_object_delete(bucket: str, key: str, request: Request) -> Response:
        """Handle DELETE /{bucket}/{key} -- DeleteObject."""
        if not key:
            return await bucket_handler.delete_bucket(request, bucket)
        return await object_handler.delete_object(request, bucket, key)

    # Fallback: only reached when no route above matched both path and method.
    @app.api_route("/{path:path}", methods=_ALL_METHODS)
    async def handle_unsupported(path: str, request: Request) -> Response:
        """Reject any other method with 405 MethodNotAllowed."""
        raise MethodNotAllowed()
