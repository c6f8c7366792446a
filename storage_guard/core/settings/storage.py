"""S3-compatible object storage configuration settings.

Environment variables use STORAGE_ prefix.
Example: STORAGE_ENDPOINT="http://localhost:9000"
         STORAGE_BUCKET="uploads"

The security policy is nested under ``security``. It can be given as JSON
(``STORAGE_SECURITY='{"allowedPrefixes": ["public/"]}'``), field by field
with the ``__`` delimiter (``STORAGE_SECURITY__MAX_FILE_SIZE=1048576``), or in
``conf/storage.yaml``::

    enabled: true
    bucket: uploads
    security:
      maxFileSize: 10485760
      deniedPrefixes: ["internal/"]
      roleBasedAccess:
        defaultRole: viewer
        roles:
          viewer: {allowedOperations: [read, list]}
          editor: {allowedOperations: [read, list, write, delete]}

Leaving ``security`` unset runs the client in permissive mode: every
operation is allowed.

Supports:
- AWS S3 (default, no endpoint needed)
- MinIO (set endpoint to MinIO server URL)
- LocalStack (set endpoint to LocalStack URL)
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, SecretStr, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from storage_guard.core.policy.models import SecurityPolicy

from .yaml_sources import create_storage_yaml_source

# Recommended generic ceiling for presigned URL lifetimes (24 hours).
RECOMMENDED_PRESIGNED_MAX_EXPIRY_SECONDS = 24 * 3600


class StorageBackendType(StrEnum):
    """Supported object store backends."""

    S3 = "s3"
    MINIO = "minio"


class StorageSettings(BaseSettings):
    """S3-compatible object storage settings.

    Constructed once per client and frozen afterwards; the nested
    ``security`` policy is immutable as well.
    """

    # ──────────────────────────────────────────────────────────────
    # Enable/Disable toggle
    # ──────────────────────────────────────────────────────────────

    enabled: bool = Field(
        default=False,
        description="Enable S3-compatible file storage (disabled by default)",
    )

    backend: StorageBackendType = Field(
        default=StorageBackendType.S3,
        description="Object store backend type",
    )

    # ──────────────────────────────────────────────────────────────
    # S3 Connection Configuration
    # ──────────────────────────────────────────────────────────────

    endpoint: str | None = Field(
        default=None,
        description="S3-compatible endpoint URL (for MinIO/LocalStack). None for AWS S3.",
    )

    bucket: str = Field(
        default="uploads",
        min_length=3,
        max_length=63,
        description="Default bucket used when a call does not name one",
    )

    region: str = Field(
        default="us-east-1",
        description="AWS region (used for AWS S3 and request signing)",
    )

    access_key: SecretStr | None = Field(
        default=None,
        description="S3 access key ID",
    )

    secret_key: SecretStr | None = Field(
        default=None,
        description="S3 secret access key",
    )

    force_path_style: bool = Field(
        default=True,
        description="Use path-style addressing (bucket in the path, required by most MinIO setups)",
    )

    use_ssl: bool = Field(
        default=True,
        description="Use SSL/TLS for S3 connections (set False for local MinIO without TLS)",
    )

    verify_ssl: bool = Field(
        default=True,
        description="Verify SSL certificates (set False for self-signed certs in local MinIO)",
    )

    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum number of transport-level retry attempts (botocore)",
    )

    timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="S3 operation timeout in seconds",
    )

    max_pool_connections: int = Field(
        default=10,
        ge=1,
        le=200,
        description="Maximum number of connections in the connection pool",
    )

    retry_mode: str = Field(
        default="standard",
        description="boto3 retry mode: standard, adaptive, or legacy",
    )

    # ──────────────────────────────────────────────────────────────
    # Presigned URL Configuration
    # ──────────────────────────────────────────────────────────────

    presigned_max_expiry_seconds: int | None = Field(
        default=None,
        ge=1,
        le=604800,  # SigV4 maximum, 7 days
        description=(
            "Optional ceiling for upload/download/list presigned URL lifetimes. "
            f"{RECOMMENDED_PRESIGNED_MAX_EXPIRY_SECONDS} (24h) is recommended. "
            "Delete and ACL URLs are always capped at 3600 seconds."
        ),
    )

    # ──────────────────────────────────────────────────────────────
    # Security Policy
    # ──────────────────────────────────────────────────────────────

    security: SecurityPolicy | None = Field(
        default=None,
        description="Access policy enforced before every storage call. None = permissive.",
    )

    # ──────────────────────────────────────────────────────────────
    # Health Check Configuration
    # ──────────────────────────────────────────────────────────────

    health_check_enabled: bool = Field(
        default=True,
        description="Enable storage health checks",
    )

    # ──────────────────────────────────────────────────────────────
    # Validators
    # ──────────────────────────────────────────────────────────────

    @field_validator("retry_mode")
    @classmethod
    def _validate_retry_mode(cls, value: str) -> str:
        """Validate retry_mode is one of the allowed values."""
        allowed_modes = {"standard", "adaptive", "legacy"}
        if value not in allowed_modes:
            raise ValueError(f"retry_mode must be one of {allowed_modes}, got {value}")
        return value

    @model_validator(mode="after")
    def _validate_credential_consistency(self) -> StorageSettings:
        """Require both credentials together, or neither (IAM role authentication)."""
        has_access_key = self.access_key is not None
        has_secret_key = self.secret_key is not None

        if has_access_key != has_secret_key:
            raise ValueError(
                "Both access_key and secret_key must be provided together when using "
                "static credentials. Provide both or neither (for IAM role authentication)."
            )

        return self

    # ──────────────────────────────────────────────────────────────
    # Computed Properties
    # ──────────────────────────────────────────────────────────────

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_configured(self) -> bool:
        """Check if storage is enabled.

        Credential consistency is already enforced by the model validator.
        """
        return self.enabled

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_minio(self) -> bool:
        """Check if configured for MinIO/S3-compatible (has custom endpoint)."""
        return self.endpoint is not None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_security_policy(self) -> bool:
        """Whether operations are checked against a policy."""
        return self.security is not None

    # ──────────────────────────────────────────────────────────────
    # Helper Methods
    # ──────────────────────────────────────────────────────────────

    def get_boto3_config(self) -> dict[str, Any]:
        """Get connection kwargs for an aioboto3 S3 client.

        Credentials are only included when provided; otherwise boto3 falls
        back to its default chain (IAM role, profile, environment).
        """
        config: dict[str, Any] = {
            "region_name": self.region,
            "use_ssl": self.use_ssl,
            "verify": self.verify_ssl,
        }

        if self.access_key is not None and self.secret_key is not None:
            config["aws_access_key_id"] = self.access_key.get_secret_value()
            config["aws_secret_access_key"] = self.secret_key.get_secret_value()

        if self.endpoint:
            config["endpoint_url"] = self.endpoint

        return config

    # ──────────────────────────────────────────────────────────────
    # Model Configuration
    # ──────────────────────────────────────────────────────────────

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Customize settings source precedence: init > yaml > env > dotenv > secrets."""
        return (
            init_settings,
            create_storage_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
