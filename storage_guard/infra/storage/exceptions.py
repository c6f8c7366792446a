"""Storage exceptions.

Every error raised by the storage layer derives from ``StorageError`` and
carries:

- ``code``: stable string identifier (``STORAGE_POLICY_VIOLATION``, ...)
- ``kind``: ``StorageErrorKind`` tag callers can branch on without
  ``isinstance`` chains
- ``status_code`` / ``detail`` / ``extra``: HTTP-style status, message and context via
  ``AppException``

Example:
    ```python
    from storage_guard.infra.storage.exceptions import StorageErrorKind, StorageError

    try:
        await storage.download_file("reports/q1.pdf", role="viewer")
    except StorageError as e:
        if e.kind is StorageErrorKind.POLICY_VIOLATION:
            logger.info("Denied", extra={"rule": e.extra["rule"]})
        elif e.kind is StorageErrorKind.NOT_FOUND:
            ...
    ```
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from botocore.exceptions import (
    BotoCoreError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
    ParamValidationError,
)

from storage_guard.core.exceptions import AppException

if TYPE_CHECKING:
    from botocore.exceptions import ClientError

    from storage_guard.core.policy.models import Decision, OperationRequest, PolicyRule


class StorageErrorKind(StrEnum):
    """Tag describing what went wrong, independent of the exception class."""

    POLICY_VIOLATION = "policy_violation"
    EXPIRY_LIMIT_EXCEEDED = "expiry_limit_exceeded"
    NOT_CONFIGURED = "not_configured"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    ACCESS_DENIED = "access_denied"
    TRANSIENT = "transient"
    QUOTA_EXCEEDED = "quota_exceeded"
    VALIDATION = "validation"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    TRANSPORT = "transport"


class StorageError(AppException):
    """Base exception for all storage-related errors.

    Attributes:
        code: Error code identifier for programmatic error handling.
        kind: Tagged error kind.
        message: Human-readable error message (same as ``detail``).
        status_code: HTTP status code equivalent.
        extra: Operation context (operation, key, bucket, aws error code...).
    """

    kind: StorageErrorKind = StorageErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 500,
        metadata: dict[str, Any] | None = None,
        kind: StorageErrorKind | None = None,
    ) -> None:
        """Initialize storage error.

        Args:
            message: Human-readable error message.
            code: Error code for programmatic handling.
            status_code: HTTP status code (default: 500).
            metadata: Additional error context.
            kind: Overrides the class-level error kind.
        """
        self.code = code
        self.message = message
        if kind is not None:
            self.kind = kind
        super().__init__(
            status_code=status_code,
            detail=message,
            type=code.lower().replace("_", "-"),
            extra=metadata or {},
        )


class PolicyViolationError(StorageError):
    """Raised when the security policy denies an operation.

    Raised before any request reaches the object store. It is a final
    answer for the given request and must not be retried.

    Attributes:
        rule: The policy rule that failed.
        operation: The operation kind that was checked.
        key: The key (or list prefix) that was checked.
        role: The effective role, after default-role substitution.
    """

    kind = StorageErrorKind.POLICY_VIOLATION

    def __init__(
        self,
        message: str,
        rule: PolicyRule,
        operation: str,
        key: str,
        role: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.rule = rule
        self.operation = operation
        self.key = key
        self.role = role
        super().__init__(
            message=message,
            code="STORAGE_POLICY_VIOLATION",
            status_code=403,
            metadata={
                "rule": str(rule),
                "operation": operation,
                "key": key,
                "role": role,
                **(metadata or {}),
            },
        )

    @classmethod
    def from_decision(cls, decision: Decision, request: OperationRequest) -> PolicyViolationError:
        """Build the error for a deny decision."""
        if decision.allowed or decision.rule is None:
            raise ValueError("Cannot build a policy violation from an allow decision")
        return cls(
            message=decision.reason or f"Operation {request.operation.value} denied",
            rule=decision.rule,
            operation=request.operation.value,
            key=request.key,
            role=request.role,
        )


class ExpiryLimitExceededError(StorageError):
    """Raised when a presigned URL lifetime exceeds its ceiling."""

    kind = StorageErrorKind.EXPIRY_LIMIT_EXCEEDED

    def __init__(
        self,
        expires_in: int,
        limit: int,
        operation: str,
        key: str | None = None,
    ) -> None:
        self.expires_in = expires_in
        self.limit = limit
        super().__init__(
            message=(
                f"Presigned {operation} URL expiry of {expires_in} seconds exceeds "
                f"the maximum of {limit} seconds"
            ),
            code="STORAGE_EXPIRY_LIMIT_EXCEEDED",
            status_code=400,
            metadata={
                "operation": operation,
                "key": key,
                "expires_in": expires_in,
                "limit": limit,
            },
        )


class StorageNotConfiguredError(StorageError):
    """Raised when storage is disabled or the service has not been started."""

    kind = StorageErrorKind.NOT_CONFIGURED

    def __init__(
        self,
        message: str = "Storage is not configured or enabled",
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code="STORAGE_NOT_CONFIGURED",
            status_code=503,
            metadata=metadata,
        )


class StorageFileNotFoundError(StorageError):
    """Raised when an object or bucket does not exist."""

    kind = StorageErrorKind.NOT_FOUND

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="STORAGE_NOT_FOUND",
            status_code=404,
            metadata=metadata,
        )


class StorageAlreadyExistsError(StorageError):
    """Raised when creating a bucket whose name is already taken."""

    kind = StorageErrorKind.ALREADY_EXISTS

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="STORAGE_ALREADY_EXISTS",
            status_code=409,
            metadata=metadata,
        )


class StorageUploadError(StorageError):
    """Raised when an upload fails for a reason the store did not classify."""

    kind = StorageErrorKind.UPLOAD

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="STORAGE_UPLOAD_ERROR",
            status_code=500,
            metadata=metadata,
        )


class StorageDownloadError(StorageError):
    """Raised when a download fails for a reason the store did not classify."""

    kind = StorageErrorKind.DOWNLOAD

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="STORAGE_DOWNLOAD_ERROR",
            status_code=500,
            metadata=metadata,
        )


class StoragePermissionError(StorageError):
    """Raised when the object store itself refuses the credentials or request.

    Distinct from ``PolicyViolationError``: this one comes back from the
    store after a request was sent.
    """

    kind = StorageErrorKind.ACCESS_DENIED

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="STORAGE_PERMISSION_DENIED",
            status_code=403,
            metadata=metadata,
        )


class StorageQuotaExceededError(StorageError):
    """Raised when the store reports a quota or account limit."""

    kind = StorageErrorKind.QUOTA_EXCEEDED

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="STORAGE_QUOTA_EXCEEDED",
            status_code=507,
            metadata=metadata,
        )


class StorageValidationError(StorageError):
    """Raised when call parameters are invalid (bad ACL, non-positive expiry...)."""

    kind = StorageErrorKind.VALIDATION

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="STORAGE_VALIDATION_ERROR",
            status_code=400,
            metadata=metadata,
        )


class StorageTimeoutError(StorageError):
    """Raised on timeouts, throttling and other transient store failures."""

    kind = StorageErrorKind.TRANSIENT

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            code="STORAGE_TIMEOUT",
            status_code=504,
            metadata=metadata,
        )


_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NotFound", "404"})
_ALREADY_EXISTS_CODES = frozenset({"BucketAlreadyExists"})
_ACCESS_DENIED_CODES = frozenset(
    {
        "AccessDenied",
        "AllAccessDisabled",
        "ExpiredToken",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "InvalidToken",
        "TokenRefreshRequired",
        "403",
    }
)
_TRANSIENT_CODES = frozenset(
    {
        "RequestTimeout",
        "RequestTimeTooSkewed",
        "SlowDown",
        "ServiceUnavailable",
        "InternalError",
        "503",
    }
)
_QUOTA_CODES = frozenset({"QuotaExceeded", "TooManyBuckets", "AccountProblem"})
_VALIDATION_CODES = frozenset(
    {
        "InvalidRequest",
        "InvalidArgument",
        "MalformedXML",
        "MalformedACLError",
        "InvalidBucketName",
        "InvalidObjectState",
        "KeyTooLongError",
        "MetadataTooLarge",
        "EntityTooLarge",
        "BucketNotEmpty",
    }
)


def map_boto_error(
    error: ClientError,
    operation: str,
    key: str | None = None,
    bucket: str | None = None,
) -> StorageError:
    """Map a botocore ClientError to a domain-specific StorageError.

    Args:
        error: The botocore ClientError to map.
        operation: The storage operation being performed (e.g., "upload").
        key: Object key being operated on, if any.
        bucket: Bucket being operated on, if any.

    Returns:
        StorageError subclass matching the AWS error code.

    Error Code Mappings:
        - NoSuchKey, NoSuchBucket, 404 -> StorageFileNotFoundError (not_found)
        - BucketAlreadyExists -> StorageAlreadyExistsError (already_exists)
        - AccessDenied, ExpiredToken, ... -> StoragePermissionError (access_denied)
        - RequestTimeout, SlowDown, ServiceUnavailable -> StorageTimeoutError (transient)
        - QuotaExceeded, TooManyBuckets -> StorageQuotaExceededError
        - InvalidRequest, InvalidArgument, MalformedXML -> StorageValidationError
        - Others -> StorageError (transport)
    """
    error_info = error.response.get("Error", {})
    error_code = str(error_info.get("Code", "Unknown"))
    error_message = error_info.get("Message") or str(error)

    metadata: dict[str, Any] = {
        "operation": operation,
        "aws_error_code": error_code,
        "aws_error_message": error_message,
        "request_id": error.response.get("ResponseMetadata", {}).get("RequestId"),
    }
    if key:
        metadata["key"] = key
    if bucket:
        metadata["bucket"] = bucket
    elif "BucketName" in error_info:
        metadata["bucket"] = error_info["BucketName"]  # type: ignore[typeddict-item]

    message = f"{operation.capitalize()} failed: {error_message}"

    if error_code in _NOT_FOUND_CODES:
        return StorageFileNotFoundError(message=message, metadata=metadata)
    if error_code in _ALREADY_EXISTS_CODES:
        return StorageAlreadyExistsError(message=message, metadata=metadata)
    if error_code in _ACCESS_DENIED_CODES:
        return StoragePermissionError(message=message, metadata=metadata)
    if error_code in _TRANSIENT_CODES:
        return StorageTimeoutError(
            message=f"{operation.capitalize()} timed out: {error_message}",
            metadata=metadata,
        )
    if error_code in _QUOTA_CODES:
        return StorageQuotaExceededError(message=message, metadata=metadata)
    if error_code in _VALIDATION_CODES:
        return StorageValidationError(message=message, metadata=metadata)

    return StorageError(
        message=message,
        code="STORAGE_ERROR",
        status_code=500,
        metadata=metadata,
    )


# Raised before any response arrives: connect/read timeouts, refused or
# dropped connections, proxy and TLS failures.
_TRANSIENT_BOTOCORE_ERRORS = (BotoConnectionError, HTTPClientError)


def map_botocore_error(
    error: BotoCoreError,
    operation: str,
    key: str | None = None,
    bucket: str | None = None,
) -> StorageError:
    """Map a botocore client-side error to a StorageError.

    These errors carry no AWS error code because the store never answered.

    Error Mappings:
        - EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ... -> StorageTimeoutError (transient)
        - NoCredentialsError -> StoragePermissionError (access_denied)
        - ParamValidationError -> StorageValidationError (validation)
        - Others -> StorageError (transport)
    """
    metadata: dict[str, Any] = {"operation": operation, "error": str(error)}
    if key:
        metadata["key"] = key
    if bucket:
        metadata["bucket"] = bucket

    if isinstance(error, _TRANSIENT_BOTOCORE_ERRORS):
        return StorageTimeoutError(
            message=f"{operation.capitalize()} timed out: {error}",
            metadata=metadata,
        )
    if isinstance(error, NoCredentialsError):
        return StoragePermissionError(
            message=f"{operation.capitalize()} failed: {error}",
            metadata=metadata,
        )
    if isinstance(error, ParamValidationError):
        return StorageValidationError(
            message=f"{operation.capitalize()} failed: {error}",
            metadata=metadata,
        )

    return StorageError(
        message=f"{operation.capitalize()} failed: {error}",
        code="STORAGE_ERROR",
        status_code=500,
        metadata=metadata,
    )
