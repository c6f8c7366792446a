"""Tests for storage and logging settings."""

from pydantic import ValidationError
import pytest

from storage_guard.core.policy import OperationKind
from storage_guard.core.settings import (
    LoggingSettings,
    StorageBackendType,
    StorageSettings,
    clear_all_caches,
    get_storage_settings,
)


class TestStorageSettingsDefaults:
    """Default values."""

    def test_defaults(self):
        """Test the out-of-the-box configuration."""
        settings = StorageSettings()

        assert settings.enabled is False
        assert settings.is_configured is False
        assert settings.backend is StorageBackendType.S3
        assert settings.bucket == "uploads"
        assert settings.region == "us-east-1"
        assert settings.force_path_style is True
        assert settings.presigned_max_expiry_seconds is None
        assert settings.security is None
        assert settings.has_security_policy is False

    def test_is_minio_with_endpoint(self):
        """Test that a custom endpoint marks an S3-compatible server."""
        settings = StorageSettings(endpoint="http://localhost:9000")

        assert settings.is_minio is True


class TestStorageSettingsValidation:
    """Field and model validators."""

    def test_credentials_must_come_together(self):
        """Test that an access key without a secret key is rejected."""
        with pytest.raises(ValidationError, match="access_key and secret_key"):
            StorageSettings(access_key="AKIA")

    def test_invalid_retry_mode(self):
        with pytest.raises(ValidationError, match="retry_mode"):
            StorageSettings(retry_mode="sometimes")

    def test_bucket_name_length(self):
        with pytest.raises(ValidationError):
            StorageSettings(bucket="ab")

    def test_presigned_max_expiry_bounds(self):
        """Test that the generic ceiling stays within SigV4 limits."""
        with pytest.raises(ValidationError):
            StorageSettings(presigned_max_expiry_seconds=0)
        with pytest.raises(ValidationError):
            StorageSettings(presigned_max_expiry_seconds=604_801)

    def test_invalid_nested_policy(self):
        """Test that policy errors surface as settings errors."""
        with pytest.raises(ValidationError):
            StorageSettings(security={"maxFileSize": -5})


class TestStorageSettingsSources:
    """Environment and YAML loading."""

    def test_security_policy_from_json_env(self, monkeypatch):
        """Test a whole policy given as JSON."""
        monkeypatch.setenv(
            "STORAGE_SECURITY",
            '{"allowedPrefixes": ["public/"], "roleBasedAccess": '
            '{"defaultRole": "viewer", "roles": {"viewer": {"allowedOperations": ["read"]}}}}',
        )

        settings = StorageSettings()

        assert settings.security.allowed_prefixes == ("public/",)
        assert settings.security.default_role == "viewer"
        assert settings.security.get_role("viewer").allows(OperationKind.READ)

    def test_security_field_from_nested_env(self, monkeypatch):
        """Test a single policy field set with the nested delimiter."""
        monkeypatch.setenv("STORAGE_SECURITY__MAX_FILE_SIZE", "2048")

        settings = StorageSettings()

        assert settings.security.max_file_size == 2048

    def test_yaml_file(self, tmp_path, monkeypatch):
        """Test loading conf/storage.yaml with a conf.d override."""
        (tmp_path / "storage.yaml").write_text(
            "enabled: true\n"
            "bucket: media\n"
            "security:\n"
            "  deniedPrefixes: ['internal/']\n"
        )
        (tmp_path / "storage.d").mkdir()
        (tmp_path / "storage.d" / "10-region.yaml").write_text("region: eu-west-1\n")
        monkeypatch.setenv("STORAGE_CONFIG_DIR", str(tmp_path))

        settings = StorageSettings()

        assert settings.enabled is True
        assert settings.bucket == "media"
        assert settings.region == "eu-west-1"
        assert settings.security.denied_prefixes == ("internal/",)

    def test_init_kwargs_override_env(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BUCKET", "from-env")

        assert StorageSettings(bucket="from-init").bucket == "from-init"
        assert StorageSettings().bucket == "from-env"

    def test_loader_is_cached(self, monkeypatch):
        """Test that the loader returns one instance until caches are cleared."""
        first = get_storage_settings()
        monkeypatch.setenv("STORAGE_BUCKET", "changed")

        assert get_storage_settings() is first

        clear_all_caches()
        assert get_storage_settings().bucket == "changed"


class TestBoto3Config:
    """Client keyword arguments."""

    def test_without_credentials(self):
        """Test that the default credential chain is used without static keys."""
        config = StorageSettings(region="eu-central-1").get_boto3_config()

        assert config["region_name"] == "eu-central-1"
        assert "aws_access_key_id" not in config
        assert "endpoint_url" not in config

    def test_with_credentials_and_endpoint(self):
        settings = StorageSettings(
            access_key="minio",
            secret_key="minio-secret",
            endpoint="http://localhost:9000",
            use_ssl=False,
        )
        config = settings.get_boto3_config()

        assert config["aws_access_key_id"] == "minio"
        assert config["aws_secret_access_key"] == "minio-secret"
        assert config["endpoint_url"] == "http://localhost:9000"
        assert config["use_ssl"] is False


class TestLoggingSettings:
    """Logging settings."""

    def test_level_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")

        assert LoggingSettings().level == "DEBUG"

    def test_json_toggle_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_JSON", "false")

        assert LoggingSettings().json_logs is False

    def test_file_path_only_when_enabled(self):
        """Test that file logging is off unless enabled."""
        assert LoggingSettings().to_logging_kwargs()["file_path"] is None
        kwargs = LoggingSettings(file_enabled=True, file_path="logs/x.jsonl").to_logging_kwargs()
        assert kwargs["file_path"] == "logs/x.jsonl"

    def test_handler_levels_default_to_root_level(self):
        kwargs = LoggingSettings(level="WARNING").to_logging_kwargs()

        assert kwargs["console_level"] == "WARNING"
        assert kwargs["file_level"] == "WARNING"
