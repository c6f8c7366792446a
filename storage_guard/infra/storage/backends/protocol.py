"""Storage backend protocol and normalized data structures.

This module defines:
- The transport protocol the storage service talks to
- Normalized data structures returned by every backend
- The closed set of canned ACLs

Backends know nothing about security policies. They are only ever called
after the storage service has validated the operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, BinaryIO, Protocol

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

# ============================================================================
# Normalized Data Structures
# ============================================================================


class CannedACL(StrEnum):
    """Canned ACLs accepted for objects."""

    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"
    AUTHENTICATED_READ = "authenticated-read"


@dataclass(frozen=True)
class ObjectMetadata:
    """Normalized object metadata.

    Attributes:
        key: Object key/path
        size_bytes: Object size in bytes
        content_type: MIME type (not returned by listings)
        last_modified: Last modification timestamp
        etag: Entity tag for version identification
        storage_class: Storage tier (e.g., STANDARD, GLACIER)
        custom_metadata: User metadata
    """

    key: str
    size_bytes: int
    content_type: str | None
    last_modified: datetime | None
    etag: str | None
    storage_class: str | None = None
    custom_metadata: dict[str, str] | None = None


@dataclass(frozen=True)
class UploadResult:
    """Result of an upload operation.

    Attributes:
        key: Object key where data was uploaded
        bucket: Bucket name
        etag: Entity tag of uploaded object
        size_bytes: Size of uploaded object in bytes
        checksum_sha256: SHA256 checksum of the uploaded bytes
        version_id: Version ID (for versioned buckets)
    """

    key: str
    bucket: str
    etag: str | None
    size_bytes: int
    checksum_sha256: str | None
    version_id: str | None = None


# ============================================================================
# Storage Backend Protocol
# ============================================================================


class StorageBackend(Protocol):
    """Protocol interface for object store transports.

    Uses structural typing, so test doubles (``AsyncMock``) and alternative
    transports need no base class. ``bucket=None`` always means the
    backend's configured default bucket.
    """

    @property
    def backend_name(self) -> str:
        """Name of the backend (e.g., 's3')."""
        ...

    @property
    def is_ready(self) -> bool:
        """Check if backend is initialized and ready for operations."""
        ...

    # ========================================================================
    # Lifecycle Management
    # ========================================================================

    async def startup(self) -> None:
        """Initialize backend (create clients, connection pools, etc.)."""
        ...

    async def shutdown(self) -> None:
        """Close connections and release resources."""
        ...

    async def health_check(self) -> bool:
        """Return True if the store is reachable with the configured credentials."""
        ...

    # ========================================================================
    # Object Operations
    # ========================================================================

    async def upload_object(
        self,
        key: str,
        data: BinaryIO,
        bucket: str | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Upload an object.

        Raises:
            StorageError: If upload fails
        """
        ...

    async def download_object(self, key: str, bucket: str | None = None) -> bytes:
        """Download an object.

        Raises:
            StorageFileNotFoundError: If object doesn't exist
            StorageError: If download fails
        """
        ...

    async def delete_object(self, key: str, bucket: str | None = None) -> bool:
        """Delete an object. Returns True on success."""
        ...

    async def list_objects(
        self,
        prefix: str = "",
        bucket: str | None = None,
        max_keys: int = 1000,
        continuation_token: str | None = None,
    ) -> tuple[list[ObjectMetadata], str | None]:
        """List one page of objects.

        Returns:
            Tuple of (object list, next continuation token or None)
        """
        ...

    def stream_objects(
        self,
        prefix: str = "",
        bucket: str | None = None,
    ) -> AsyncIterator[ObjectMetadata]:
        """Yield every object under ``prefix``, following pagination."""
        ...

    # ========================================================================
    # ACL Management
    # ========================================================================

    async def set_object_acl(self, key: str, acl: str, bucket: str | None = None) -> bool:
        """Apply a canned ACL to an existing object."""
        ...

    async def get_object_acl(self, key: str, bucket: str | None = None) -> dict[str, Any]:
        """Return ``{"owner": ..., "grants": [...]}`` for an object."""
        ...

    # ========================================================================
    # Presigned URLs
    # ========================================================================

    async def generate_presigned_url(
        self,
        client_method: str,
        params: dict[str, Any],
        expires_in: int,
    ) -> str:
        """Sign a single request for later use by a third party.

        Args:
            client_method: S3 API method name (``put_object``, ``get_object``,
                ``delete_object``, ``list_objects_v2``, ``put_object_acl``)
            params: Request parameters; ``Bucket`` defaults to the configured bucket
            expires_in: URL lifetime in seconds
        """
        ...

    async def generate_presigned_post(
        self,
        key: str,
        bucket: str | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        max_size: int | None = None,
        expires_in: int = 3600,
    ) -> dict[str, Any]:
        """Sign a browser POST upload form.

        Returns:
            Dict with ``url`` and ``fields`` for the POST request
        """
        ...

    # ========================================================================
    # Bucket Management
    # ========================================================================

    async def bucket_exists(self, bucket: str) -> bool:
        """Check if a bucket exists and is accessible."""
        ...

    async def create_bucket(self, bucket: str, region: str | None = None) -> bool:
        """Create a bucket. Returns True if created (or already owned)."""
        ...

    async def delete_bucket(self, bucket: str) -> bool:
        """Delete an empty bucket."""
        ...
