"""S3-compatible storage backend (AWS S3, MinIO, LocalStack)."""

from .backend import S3Backend

__all__ = ["S3Backend"]
