"""Unit tests for storage backend factory."""

import pytest

from storage_guard.core.settings.storage import StorageBackendType, StorageSettings
from storage_guard.infra.storage.backends import create_storage_backend
from storage_guard.infra.storage.backends.s3.backend import S3Backend
from storage_guard.infra.storage.exceptions import StorageNotConfiguredError


class TestBackendFactory:
    """Test backend factory creation logic."""

    def test_create_s3_backend(self):
        """Test creating S3 backend."""
        settings = StorageSettings(
            enabled=True,
            backend=StorageBackendType.S3,
            bucket="test-bucket",
            access_key="test-key",
            secret_key="test-secret",
        )

        backend = create_storage_backend(settings)

        assert isinstance(backend, S3Backend)
        assert backend.backend_name == "s3"
        assert backend.is_ready is False

    def test_create_minio_backend(self):
        """Test creating MinIO backend (same as S3)."""
        settings = StorageSettings(
            enabled=True,
            backend=StorageBackendType.MINIO,
            bucket="test-bucket",
            endpoint="http://localhost:9000",
            access_key="minioadmin",
            secret_key="minioadmin",
        )

        backend = create_storage_backend(settings)

        # MinIO uses the same S3Backend
        assert isinstance(backend, S3Backend)
        assert backend.backend_name == "s3"

    def test_factory_rejects_unconfigured_storage(self):
        """Test that factory rejects unconfigured storage."""
        settings = StorageSettings(enabled=False)

        with pytest.raises(StorageNotConfiguredError) as exc_info:
            create_storage_backend(settings)

        assert "Storage not configured" in str(exc_info.value)


class TestStorageBackendType:
    """Test StorageBackendType enum."""

    def test_enum_values(self):
        assert StorageBackendType.S3.value == "s3"
        assert StorageBackendType.MINIO.value == "minio"

    def test_parsed_from_string(self):
        """Test that settings accept the backend by name."""
        assert StorageSettings(backend="minio").backend is StorageBackendType.MINIO
