"""Pytest configuration and shared fixtures.

Organization:
    - Environment: isolate settings from the developer's environment and conf/
    - Policy Fixtures: a representative role-based policy
    - Storage Fixtures: AsyncMock backend and a started StorageService
"""

from __future__ import annotations

from datetime import UTC, datetime
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from storage_guard.core.policy import SecurityPolicy
from storage_guard.core.settings import clear_all_caches
from storage_guard.core.settings.storage import StorageSettings
from storage_guard.infra.storage.backends.protocol import ObjectMetadata, UploadResult
from storage_guard.infra.storage.service import StorageService, reset_storage_service

# Never pick up conf/*.yaml from the working directory during tests
os.environ["STORAGE_CONFIG_DIR"] = "/nonexistent/storage-guard-tests"
os.environ["LOG_CONFIG_DIR"] = "/nonexistent/storage-guard-tests"


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Drop STORAGE_* variables and cached settings around every test."""
    for name in list(os.environ):
        if name.startswith("STORAGE_") and name != "STORAGE_CONFIG_DIR":
            monkeypatch.delenv(name, raising=False)
    clear_all_caches()
    reset_storage_service()
    yield
    clear_all_caches()
    reset_storage_service()


# ============================================================================
# Policy Fixtures
# ============================================================================


@pytest.fixture
def policy() -> SecurityPolicy:
    """Policy with global limits and viewer/editor/admin roles.

    Written in camelCase, the way policies are usually stored.
    """
    return SecurityPolicy.model_validate(
        {
            "maxFileSize": 10_000,
            "allowedContentTypes": ["image/png", "text/plain", "application/pdf"],
            "allowedPrefixes": ["public/", "uploads/", "internal/"],
            "deniedPrefixes": ["internal/"],
            "roleBasedAccess": {
                "defaultRole": "viewer",
                "roles": {
                    "viewer": {"allowedOperations": ["read", "list"]},
                    "editor": {
                        "allowedOperations": ["read", "list", "write", "delete"],
                        "allowedPrefixes": ["uploads/"],
                        "maxFileSize": 5_000,
                    },
                    "admin": {
                        "allowedOperations": [
                            "read",
                            "list",
                            "write",
                            "delete",
                            "acl_read",
                            "acl_write",
                        ],
                    },
                },
            },
        }
    )


# ============================================================================
# Storage Fixtures
# ============================================================================


async def _aiter(items):
    for item in items:
        yield item


@pytest.fixture
def listed_objects() -> list[ObjectMetadata]:
    return [
        ObjectMetadata(
            key="public/a.txt",
            size_bytes=5,
            content_type=None,
            last_modified=datetime(2024, 1, 1, tzinfo=UTC),
            etag="abc",
        ),
        ObjectMetadata(
            key="public/b.txt",
            size_bytes=7,
            content_type=None,
            last_modified=datetime(2024, 1, 2, tzinfo=UTC),
            etag="def",
        ),
    ]


@pytest.fixture
def mock_backend(listed_objects) -> AsyncMock:
    """Backend double implementing the StorageBackend protocol."""
    backend = AsyncMock()
    backend.backend_name = "mock"
    backend.is_ready = True
    backend.upload_object.return_value = UploadResult(
        key="uploads/a.txt",
        bucket="uploads",
        etag="etag-1",
        size_bytes=5,
        checksum_sha256=None,
    )
    backend.download_object.return_value = b"hello"
    backend.delete_object.return_value = True
    backend.set_object_acl.return_value = True
    backend.get_object_acl.return_value = {
        "owner": {"ID": "owner-id"},
        "grants": [{"Grantee": {"ID": "owner-id"}, "Permission": "FULL_CONTROL"}],
    }
    backend.generate_presigned_url.return_value = "https://s3.example.com/signed"
    backend.generate_presigned_post.return_value = {
        "url": "https://s3.example.com/uploads",
        "fields": {"key": "uploads/a.txt", "policy": "p", "x-amz-signature": "s"},
    }
    backend.bucket_exists.return_value = True
    backend.create_bucket.return_value = True
    backend.delete_bucket.return_value = True
    backend.health_check.return_value = True
    backend.stream_objects = MagicMock(side_effect=lambda **_: _aiter(listed_objects))
    return backend


@pytest.fixture
def storage_settings(policy) -> StorageSettings:
    return StorageSettings(enabled=True, bucket="uploads", security=policy)


@pytest.fixture
async def storage_service(storage_settings, mock_backend):
    """Started StorageService wired to the mock backend."""
    service = StorageService(storage_settings, backend=mock_backend)
    await service.startup()
    yield service
    await service.shutdown()
