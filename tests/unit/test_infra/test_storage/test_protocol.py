"""Unit tests for storage backend data structures."""

from datetime import UTC, datetime

import pytest

from storage_guard.infra.storage.backends import CannedACL, ObjectMetadata, UploadResult


class TestCannedACL:
    """Test the closed set of canned ACLs."""

    def test_values(self):
        assert [acl.value for acl in CannedACL] == [
            "private",
            "public-read",
            "public-read-write",
            "authenticated-read",
        ]

    def test_lookup_by_value(self):
        assert CannedACL("public-read") is CannedACL.PUBLIC_READ

    def test_unknown_value(self):
        with pytest.raises(ValueError):
            CannedACL("bucket-owner-full-control")


class TestObjectMetadata:
    """Test ObjectMetadata dataclass."""

    def test_optional_fields_default_to_none(self):
        metadata = ObjectMetadata(
            key="public/a.txt",
            size_bytes=1024,
            content_type="text/plain",
            last_modified=datetime(2024, 1, 1, tzinfo=UTC),
            etag="abc123",
        )

        assert metadata.storage_class is None
        assert metadata.custom_metadata is None

    def test_immutable(self):
        """Test that ObjectMetadata is immutable (frozen)."""
        metadata = ObjectMetadata(
            key="public/a.txt",
            size_bytes=1024,
            content_type=None,
            last_modified=None,
            etag=None,
        )

        with pytest.raises(AttributeError):
            metadata.key = "other"  # type: ignore[misc]


class TestUploadResult:
    """Test UploadResult dataclass."""

    def test_create_upload_result(self):
        result = UploadResult(
            key="uploads/a.txt",
            bucket="uploads",
            etag="abc123",
            size_bytes=5,
            checksum_sha256="deadbeef",
        )

        assert result.version_id is None
        assert result.checksum_sha256 == "deadbeef"
