"""Policy-enforcing storage service.

``StorageService`` is the main interface of the package. Every object
operation goes through the same steps:

1. resolve the role (explicit role, else the policy's default role)
2. build an ``OperationRequest`` from the call (key, content type, size)
3. validate it; a deny raises ``PolicyViolationError`` and the backend is
   never called
4. delegate to the backend inside ``track_storage_operation``

Bucket administration (``check_bucket``, ``create_bucket``,
``delete_bucket``) is not subject to the policy.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Any, BinaryIO, TextIO

from storage_guard.core.policy import OperationKind
from storage_guard.core.settings import get_storage_settings

from .backends.factory import create_storage_backend
from .exceptions import StorageNotConfiguredError, StorageValidationError
from .guard import authorize, coerce_acl
from .instrumentation import track_storage_operation
from .operations.presigned import DEFAULT_EXPIRY_SECONDS, DEFAULT_LIST_MAX_KEYS, PresignedUrlIssuer

if TYPE_CHECKING:
    from types import TracebackType

    from storage_guard.core.policy import SecurityPolicy
    from storage_guard.core.settings.storage import StorageSettings

    from .backends.protocol import CannedACL, ObjectMetadata, StorageBackend, UploadResult
    from .operations.presigned import PresignedUploadPost

logger = logging.getLogger(__name__)

Body = bytes | bytearray | str | BinaryIO | TextIO


def _prepare_body(body: Body, key: str) -> tuple[BinaryIO, int]:
    """Return the exact bytes to upload as a stream, with their length.

    File objects are read from their current position. The returned stream
    holds only those bytes, so the length the policy checks is the length
    that is uploaded. Seekable files are rewound to where they were. Text
    streams are UTF-8 encoded like ``str`` bodies.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    if isinstance(body, bytes | bytearray):
        return io.BytesIO(body), len(body)
    if not hasattr(body, "read"):
        raise StorageValidationError(
            f"Unsupported body type {type(body).__name__}",
            metadata={"key": key},
        )

    seekable = getattr(body, "seekable", None) is not None and body.seekable()
    start = body.tell() if seekable else None
    data = body.read()
    if start is not None:
        body.seek(start)

    if isinstance(data, str):
        data = data.encode("utf-8")
    if not isinstance(data, bytes | bytearray):
        raise StorageValidationError(
            f"Body read() returned {type(data).__name__}, expected bytes or str",
            metadata={"key": key},
        )
    return io.BytesIO(data), len(data)


class StorageService:
    """Storage facade that checks the security policy before every operation.

    Example:
        service = StorageService(settings)
        await service.startup()

        await service.upload_file("public/a.txt", b"hello", "text/plain", role="editor")
        data = await service.download_file("public/a.txt")  # default role

        await service.shutdown()
    """

    def __init__(
        self,
        settings: StorageSettings | None = None,
        *,
        backend: StorageBackend | None = None,
    ) -> None:
        """Initialize storage service.

        Args:
            settings: Optional settings override. If not provided,
                loads from environment via get_storage_settings()
            backend: Optional transport. If not provided, one is created from
                the settings at startup()
        """
        self._settings = settings or get_storage_settings()
        self._backend: StorageBackend | None = backend
        self._issuer: PresignedUrlIssuer | None = None
        self._initialized = False

    @property
    def is_ready(self) -> bool:
        """Check if the service is initialized and ready for operations."""
        return self._initialized and self._backend is not None and self._backend.is_ready

    @property
    def settings(self) -> StorageSettings:
        return self._settings

    @property
    def policy(self) -> SecurityPolicy | None:
        """The security policy in force, or None in permissive mode."""
        return self._settings.security

    async def startup(self) -> None:
        """Create and start the backend.

        Raises:
            StorageError: If the backend fails to initialize
        """
        if self._initialized:
            return

        if self._backend is None:
            if not self._settings.is_configured:
                logger.info("Storage not configured, skipping initialization")
                return
            self._backend = create_storage_backend(self._settings)

        logger.info(
            "Starting storage service",
            extra={
                "bucket": self._settings.bucket,
                "endpoint": self._settings.endpoint,
                "backend": self._backend.backend_name,
                "policy_enabled": self._settings.has_security_policy,
            },
        )

        await self._backend.startup()
        self._issuer = PresignedUrlIssuer(
            self._backend,
            self.policy,
            max_expiry_seconds=self._settings.presigned_max_expiry_seconds,
        )
        self._initialized = True

        if not self._settings.has_security_policy:
            logger.warning("No security policy configured, all storage operations are allowed")
        logger.info("Storage service started successfully")

    async def shutdown(self) -> None:
        """Shutdown the backend and release its connections."""
        if not self._initialized:
            logger.debug("Storage service not initialized, nothing to shutdown")
            return

        logger.info("Shutting down storage service")
        if self._backend is not None:
            await self._backend.shutdown()

        self._issuer = None
        self._initialized = False
        logger.info("Storage service shutdown complete")

    async def health_check(self) -> bool:
        """Check storage service health.

        Returns:
            True if healthy, False otherwise
        """
        if not self.is_ready or self._backend is None:
            return False
        if not self._settings.health_check_enabled:
            return True
        return await self._backend.health_check()

    def _ensure_ready(self) -> StorageBackend:
        """Return the backend, or raise if the service has not been started.

        Raises:
            StorageNotConfiguredError: If service is not ready
        """
        if not self.is_ready or self._backend is None:
            raise StorageNotConfiguredError(
                message="Storage service is not initialized",
                metadata={"is_configured": self._settings.is_configured},
            )
        return self._backend

    def _ensure_issuer(self) -> PresignedUrlIssuer:
        self._ensure_ready()
        if self._issuer is None:
            raise StorageNotConfiguredError(message="Storage service is not initialized")
        return self._issuer

    def _bucket(self, bucket: str | None) -> str:
        return bucket or self._settings.bucket

    # ========== Policy-gated Object Operations ==========

    async def upload_file(
        self,
        key: str,
        body: Body,
        content_type: str | None = None,
        *,
        role: str | None = None,
        metadata: dict[str, str] | None = None,
        bucket: str | None = None,
    ) -> UploadResult:
        """Upload an object, validated as a ``write``.

        Args:
            key: Object key
            body: bytes, bytearray, str or a file object; text is UTF-8 encoded
            content_type: MIME content type, checked against the policy
            role: Caller's role; the default role applies when omitted
            metadata: User metadata stored with the object
            bucket: Optional bucket override

        Raises:
            PolicyViolationError: If the policy denies the upload
        """
        backend = self._ensure_ready()
        data, content_length = _prepare_body(body, key)
        request = authorize(
            self.policy,
            OperationKind.WRITE,
            key,
            role=role,
            content_type=content_type,
            content_length=content_length,
            metadata=metadata,
        )
        bucket = self._bucket(bucket)

        async with track_storage_operation(
            "upload",
            key=key,
            bucket=bucket,
            size_bytes=content_length,
            content_type=content_type,
            role=request.role,
        ) as ctx:
            result = await backend.upload_object(
                key=key,
                data=data,
                bucket=bucket,
                content_type=content_type,
                metadata=metadata,
            )
            ctx["etag"] = result.etag
        return result

    async def download_file(
        self,
        key: str,
        *,
        role: str | None = None,
        bucket: str | None = None,
    ) -> bytes:
        """Download an object, validated as a ``read``.

        Raises:
            PolicyViolationError: If the policy denies the read
            StorageFileNotFoundError: If the object doesn't exist
        """
        backend = self._ensure_ready()
        request = authorize(self.policy, OperationKind.READ, key, role=role)
        bucket = self._bucket(bucket)

        async with track_storage_operation(
            "download", key=key, bucket=bucket, role=request.role
        ) as ctx:
            data = await backend.download_object(key=key, bucket=bucket)
            ctx["result_size"] = len(data)
        return data

    async def delete_file(
        self,
        key: str,
        bucket: str | None = None,
        *,
        role: str | None = None,
    ) -> bool:
        """Delete an object, validated as a ``delete``."""
        backend = self._ensure_ready()
        request = authorize(self.policy, OperationKind.DELETE, key, role=role)
        bucket = self._bucket(bucket)

        async with track_storage_operation("delete", key=key, bucket=bucket, role=request.role):
            return await backend.delete_object(key=key, bucket=bucket)

    async def list_files(
        self,
        prefix: str = "",
        bucket: str | None = None,
        *,
        role: str | None = None,
    ) -> list[ObjectMetadata]:
        """List every object under ``prefix``, validated as a ``list``.

        The prefix is what the policy sees as the key, so listing ``""``
        fails whenever allowed prefixes are configured.
        """
        backend = self._ensure_ready()
        request = authorize(self.policy, OperationKind.LIST, prefix, role=role)
        bucket = self._bucket(bucket)

        async with track_storage_operation(
            "list", key=prefix, bucket=bucket, role=request.role
        ) as ctx:
            objects = [obj async for obj in backend.stream_objects(prefix=prefix, bucket=bucket)]
            ctx["count"] = len(objects)
        return objects

    async def update_file_permissions(
        self,
        key: str,
        acl: CannedACL | str,
        bucket: str | None = None,
        *,
        role: str | None = None,
    ) -> bool:
        """Apply a canned ACL to an object, validated as an ``acl_write``.

        Raises:
            StorageValidationError: If ``acl`` is not a canned ACL
            PolicyViolationError: If the policy denies the change
        """
        backend = self._ensure_ready()
        canned = coerce_acl(acl)
        request = authorize(self.policy, OperationKind.ACL_WRITE, key, role=role)
        bucket = self._bucket(bucket)

        async with track_storage_operation("acl_put", key=key, bucket=bucket, role=request.role):
            return await backend.set_object_acl(key=key, acl=canned.value, bucket=bucket)

    async def get_file_permissions(
        self,
        key: str,
        bucket: str | None = None,
        *,
        role: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return an object's ACL grants, validated as an ``acl_read``."""
        backend = self._ensure_ready()
        request = authorize(self.policy, OperationKind.ACL_READ, key, role=role)
        bucket = self._bucket(bucket)

        async with track_storage_operation("acl_get", key=key, bucket=bucket, role=request.role):
            acl = await backend.get_object_acl(key=key, bucket=bucket)
        return list(acl.get("grants", []))

    # ========== Presigned URLs ==========

    async def get_presigned_upload_url(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        content_type: str | None = None,
        role: str | None = None,
        max_size: int | None = None,
        metadata: dict[str, str] | None = None,
        bucket: str | None = None,
    ) -> str:
        """See ``PresignedUrlIssuer.get_presigned_upload_url``."""
        return await self._ensure_issuer().get_presigned_upload_url(
            key,
            expires_in,
            content_type=content_type,
            role=role,
            max_size=max_size,
            metadata=metadata,
            bucket=bucket,
        )

    async def get_presigned_upload_post(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        content_type: str | None = None,
        role: str | None = None,
        max_size: int | None = None,
        metadata: dict[str, str] | None = None,
        bucket: str | None = None,
    ) -> PresignedUploadPost:
        """See ``PresignedUrlIssuer.get_presigned_upload_post``."""
        return await self._ensure_issuer().get_presigned_upload_post(
            key,
            expires_in,
            content_type=content_type,
            role=role,
            max_size=max_size,
            metadata=metadata,
            bucket=bucket,
        )

    async def get_presigned_download_url(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        role: str | None = None,
        response_content_type: str | None = None,
        response_content_disposition: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """See ``PresignedUrlIssuer.get_presigned_download_url``."""
        return await self._ensure_issuer().get_presigned_download_url(
            key,
            expires_in,
            role=role,
            response_content_type=response_content_type,
            response_content_disposition=response_content_disposition,
            bucket=bucket,
        )

    async def get_presigned_delete_url(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        role: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """See ``PresignedUrlIssuer.get_presigned_delete_url``."""
        return await self._ensure_issuer().get_presigned_delete_url(
            key, expires_in, role=role, bucket=bucket
        )

    async def get_presigned_list_url(
        self,
        prefix: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        role: str | None = None,
        max_keys: int = DEFAULT_LIST_MAX_KEYS,
        delimiter: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """See ``PresignedUrlIssuer.get_presigned_list_url``."""
        return await self._ensure_issuer().get_presigned_list_url(
            prefix,
            expires_in,
            role=role,
            max_keys=max_keys,
            delimiter=delimiter,
            bucket=bucket,
        )

    async def get_presigned_acl_url(
        self,
        key: str,
        acl: CannedACL | str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        role: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """See ``PresignedUrlIssuer.get_presigned_acl_url``."""
        return await self._ensure_issuer().get_presigned_acl_url(
            key, acl, expires_in, role=role, bucket=bucket
        )

    # ========== Bucket Administration (not policy-gated) ==========

    async def check_bucket(self, bucket: str | None = None) -> bool:
        """Check whether a bucket exists and is accessible."""
        backend = self._ensure_ready()
        bucket = self._bucket(bucket)
        async with track_storage_operation("bucket_exists", bucket=bucket):
            return await backend.bucket_exists(bucket)

    async def create_bucket(self, bucket: str | None = None) -> bool:
        """Create a bucket in the configured region.

        Raises:
            StorageAlreadyExistsError: If the name is taken by another owner
        """
        backend = self._ensure_ready()
        bucket = self._bucket(bucket)
        async with track_storage_operation("create_bucket", bucket=bucket):
            return await backend.create_bucket(bucket, region=self._settings.region)

    async def delete_bucket(self, bucket: str | None = None) -> bool:
        """Delete an empty bucket."""
        backend = self._ensure_ready()
        bucket = self._bucket(bucket)
        async with track_storage_operation("delete_bucket", bucket=bucket):
            return await backend.delete_bucket(bucket)

    async def __aenter__(self) -> StorageService:
        await self.startup()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()


_storage_service: StorageService | None = None


def get_storage_service() -> StorageService:
    """Get the process-wide storage service (created on first use, not started)."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service


def reset_storage_service() -> None:
    """Drop the singleton (for tests)."""
    global _storage_service
    _storage_service = None
