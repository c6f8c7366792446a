"""Storage operation modules."""

from .presigned import (
    ACL_MAX_EXPIRY_SECONDS,
    DEFAULT_EXPIRY_SECONDS,
    DELETE_MAX_EXPIRY_SECONDS,
    PresignedUploadPost,
    PresignedUrlIssuer,
)

__all__ = [
    "ACL_MAX_EXPIRY_SECONDS",
    "DEFAULT_EXPIRY_SECONDS",
    "DELETE_MAX_EXPIRY_SECONDS",
    "PresignedUploadPost",
    "PresignedUrlIssuer",
]
