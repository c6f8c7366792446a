"""Tests for the storage CLI commands.

Testing approach:
- Uses Click's CliRunner for command invocation
- Replaces StorageService with an AsyncMock so no store is contacted
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner
import pytest

from storage_guard.cli.commands.storage import _format_bytes, storage
from storage_guard.core.policy import PolicyRule
from storage_guard.core.settings.storage import StorageSettings
from storage_guard.infra.storage import ExpiryLimitExceededError, ObjectMetadata, PolicyViolationError


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def settings(storage_settings):
    with patch(
        "storage_guard.cli.commands.storage.get_storage_settings",
        return_value=storage_settings,
    ):
        yield storage_settings


@pytest.fixture
def service():
    """StorageService double usable with ``async with``."""
    instance = AsyncMock()
    instance.__aenter__.return_value = instance
    with patch(
        "storage_guard.cli.commands.storage.StorageService",
        MagicMock(return_value=instance),
    ):
        yield instance


class TestInfo:
    """Tests for `storage info`."""

    def test_shows_configuration(self, cli_runner, settings):
        result = cli_runner.invoke(storage, ["info"])

        assert result.exit_code == 0
        assert "uploads" in result.output
        assert "roles: admin, editor, viewer" in result.output

    def test_default_endpoint(self, cli_runner, settings):
        result = cli_runner.invoke(storage, ["info"])

        assert "AWS S3 (default)" in result.output

    def test_custom_endpoint(self, cli_runner):
        with patch(
            "storage_guard.cli.commands.storage.get_storage_settings",
            return_value=StorageSettings(enabled=True, endpoint="http://localhost:9000"),
        ):
            result = cli_runner.invoke(storage, ["info"])

        assert result.exit_code == 0
        assert "http://localhost:9000" in result.output
        assert "AWS S3 (default)" not in result.output

    def test_disabled_storage(self, cli_runner):
        with patch(
            "storage_guard.cli.commands.storage.get_storage_settings",
            return_value=StorageSettings(),
        ):
            result = cli_runner.invoke(storage, ["info"])

        assert result.exit_code == 0
        assert "permissive mode" in result.output
        assert "Storage is disabled" in result.output


class TestLs:
    """Tests for `storage ls`."""

    def test_lists_objects(self, cli_runner, settings, service):
        service.list_files.return_value = [
            ObjectMetadata(
                key="public/a.txt",
                size_bytes=2048,
                content_type=None,
                last_modified=datetime(2024, 1, 1, 12, 0, tzinfo=UTC),
                etag="abc",
            )
        ]

        result = cli_runner.invoke(storage, ["ls", "public/", "--role", "viewer"])

        assert result.exit_code == 0
        assert "public/a.txt" in result.output
        assert "2.0 KB" in result.output
        assert "Total: 1 objects" in result.output
        service.list_files.assert_awaited_once_with("public/", role="viewer")

    def test_policy_denial(self, cli_runner, settings, service):
        service.list_files.side_effect = PolicyViolationError(
            "Access to prefix in key private/ is not allowed",
            PolicyRule.PREFIX_NOT_ALLOWED,
            "list",
            "private/",
            role="viewer",
        )

        result = cli_runner.invoke(storage, ["ls", "private/"])

        assert result.exit_code == 1
        assert "Denied by policy (prefix_not_allowed)" in result.output

    def test_requires_configured_storage(self, cli_runner, service):
        with patch(
            "storage_guard.cli.commands.storage.get_storage_settings",
            return_value=StorageSettings(),
        ):
            result = cli_runner.invoke(storage, ["ls"])

        assert result.exit_code == 1
        service.list_files.assert_not_awaited()


class TestPresign:
    """Tests for `storage presign`."""

    def test_download(self, cli_runner, settings, service):
        service.get_presigned_download_url.return_value = "https://s3.example.com/signed"

        result = cli_runner.invoke(storage, ["presign", "download", "public/a.txt", "--expires-in", "600"])

        assert result.exit_code == 0
        assert "https://s3.example.com/signed" in result.output
        service.get_presigned_download_url.assert_awaited_once_with("public/a.txt", 600, role=None)

    def test_upload_options(self, cli_runner, settings, service):
        service.get_presigned_upload_url.return_value = "https://s3.example.com/put"

        result = cli_runner.invoke(
            storage,
            [
                "presign",
                "upload",
                "uploads/a.png",
                "--role",
                "editor",
                "--content-type",
                "image/png",
                "--max-size",
                "1024",
            ],
        )

        assert result.exit_code == 0
        service.get_presigned_upload_url.assert_awaited_once_with(
            "uploads/a.png", 3600, role="editor", content_type="image/png", max_size=1024
        )

    def test_delete_over_limit(self, cli_runner, settings, service):
        service.get_presigned_delete_url.side_effect = ExpiryLimitExceededError(
            7200, 3600, operation="delete", key="uploads/a.txt"
        )

        result = cli_runner.invoke(
            storage, ["presign", "delete", "uploads/a.txt", "--expires-in", "7200"]
        )

        assert result.exit_code == 1
        assert "STORAGE_EXPIRY_LIMIT_EXCEEDED" in result.output


class TestFormatBytes:
    """Tests for the size formatter."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [(0, "0 B"), (512, "512 B"), (2048, "2.0 KB"), (5 * 1024 * 1024, "5.0 MB")],
    )
    def test_format(self, size, expected):
        assert _format_bytes(size) == expected
