"""Policy-enforcing access layer for S3-compatible object storage.

Quick Start:
    from storage_guard.infra.storage import get_storage_service

    service = get_storage_service()
    await service.startup()

    await service.upload_file("uploads/a.png", data, "image/png", role="editor")
    url = await service.get_presigned_download_url("uploads/a.png", 600, role="viewer")

    await service.shutdown()

Every object operation and every presigned URL is checked against the
configured ``SecurityPolicy`` first; a deny raises ``PolicyViolationError``
and nothing is sent to the store.
"""

from __future__ import annotations

from storage_guard.core.settings.storage import StorageSettings

from .backends import CannedACL, ObjectMetadata, StorageBackend, UploadResult
from .exceptions import (
    ExpiryLimitExceededError,
    PolicyViolationError,
    StorageAlreadyExistsError,
    StorageDownloadError,
    StorageError,
    StorageErrorKind,
    StorageFileNotFoundError,
    StorageNotConfiguredError,
    StoragePermissionError,
    StorageQuotaExceededError,
    StorageTimeoutError,
    StorageUploadError,
    StorageValidationError,
    map_boto_error,
    map_botocore_error,
)
from .instrumentation import track_storage_operation
from .operations import PresignedUploadPost, PresignedUrlIssuer
from .service import StorageService, get_storage_service, reset_storage_service

__all__ = [
    "CannedACL",
    "ExpiryLimitExceededError",
    "ObjectMetadata",
    "PolicyViolationError",
    "PresignedUploadPost",
    "PresignedUrlIssuer",
    "StorageAlreadyExistsError",
    "StorageBackend",
    "StorageDownloadError",
    "StorageError",
    "StorageErrorKind",
    "StorageFileNotFoundError",
    "StorageNotConfiguredError",
    "StoragePermissionError",
    "StorageQuotaExceededError",
    "StorageService",
    "StorageSettings",
    "StorageTimeoutError",
    "StorageUploadError",
    "StorageValidationError",
    "UploadResult",
    "get_storage_service",
    "map_boto_error",
    "map_botocore_error",
    "reset_storage_service",
    "track_storage_operation",
]
