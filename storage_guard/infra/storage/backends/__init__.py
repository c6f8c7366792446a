"""Storage backends package.

Protocol-based abstraction over the object store transport.
"""

from storage_guard.core.settings.storage import StorageBackendType

from .factory import create_storage_backend
from .protocol import (
    CannedACL,
    ObjectMetadata,
    StorageBackend,
    UploadResult,
)

__all__ = [
    "CannedACL",
    "ObjectMetadata",
    "StorageBackend",
    "StorageBackendType",
    "UploadResult",
    "create_storage_backend",
]
