"""Bucket-level S3 request handlers for DirStore.

Implements the bucket operations:
    - ListBuckets (GET /)
    - CreateBucket (PUT /{bucket})
    - DeleteBucket (DELETE /{bucket})

Buckets are plain directories under the storage root, so there is no
owner, region or ACL bookkeeping.
"""

import logging

from fastapi import FastAPI, Request, Response

from dirstore.validation import validate_bucket_name
from dirstore.xml_utils import render_list_buckets, xml_response

logger = logging.getLogger(__name__)

# Single implicit account; every bucket belongs to it.
OWNER_ID = "dirstore"
OWNER_DISPLAY_NAME = "dirstore"


class BucketHandler:
    """Handles S3 bucket operations.

    All handlers access the storage backend from ``app.state``.
    Storage failures propagate as ``StorageError`` and are rendered by the
    application's exception handlers.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        """Initialize the bucket handler.

        Args:
            app: The FastAPI application instance.
        """
        self.app = app

    @property
    def storage(self):
        """Shortcut to the storage backend on app.state."""
        return self.app.state.storage

    async def list_buckets(self, request: Request) -> Response:
        """List all buckets under the storage root.

        Implements: GET /

        Args:
            request: The incoming HTTP request.

        Returns:
            XML response containing the bucket list, sorted by name.
        """
        request.state.s3_operation = "ListBuckets"
        buckets = await self.storage.list_buckets()

        xml = render_list_buckets(
            owner_id=OWNER_ID,
            owner_display_name=OWNER_DISPLAY_NAME,
            buckets=buckets,
        )
        return xml_response(xml, status=200)

    async def create_bucket(self, request: Request, bucket: str) -> Response:
        """Create a bucket.

        Implements: PUT /{bucket}

        Idempotent: creating a bucket that already exists returns 200.

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.

        Returns:
            Empty 200 response with a Location header.
        """
        request.state.s3_operation = "CreateBucket"
        validate_bucket_name(bucket)

        await self.storage.make_bucket(bucket)
        logger.info("Created bucket %s", bucket)

        return Response(
            status_code=200,
            headers={"Location": f"/{bucket}"},
        )

    async def delete_bucket(self, request: Request, bucket: str) -> Response:
        """Delete an existing empty bucket.

        Implements: DELETE /{bucket}

        Preconditions:
            - Bucket must exist (NoSuchBucket if not).
            - No file anywhere in its subtree (BucketNotEmpty if any).

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.

        Returns:
            204 No Content on success.
        """
        request.state.s3_operation = "DeleteBucket"
        await self.storage.delete_bucket(bucket)
        logger.info("Deleted bucket %s", bucket)

        return Response(status_code=204)
