"""Presigned URL issuance under the security policy.

A presigned URL lets a third party perform one operation later, without
credentials. The issuer therefore validates the *future* operation now: an
upload URL is checked as a ``write``, a download URL as a ``read``, and so on.
Only after the policy allows it is the expiry checked against its ceiling:

- delete and ACL URLs: at most 3600 seconds, always
- upload, download and list URLs: no fixed ceiling; the optional
  ``presigned_max_expiry_seconds`` setting (24h recommended) applies

Trust boundary:
    The policy is enforced at issuance, against the parameters declared
    here. The object store never runs this validator when the URL is
    redeemed. For a presigned PUT the content type is signed into the
    request, but the declared size is advisory: the holder can send any
    body. Use ``get_presigned_upload_post`` when the size limit has to be
    enforced by the store itself (it signs a ``content-length-range``).

Issuing a URL only signs a request locally. Nothing in the store changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging
from typing import TYPE_CHECKING, Any

from storage_guard.core.policy import OperationKind
from storage_guard.infra.storage.exceptions import (
    ExpiryLimitExceededError,
    StorageValidationError,
)
from storage_guard.infra.storage.guard import authorize, coerce_acl
from storage_guard.infra.storage.instrumentation import track_storage_operation
from storage_guard.infra.storage.metrics import record_presigned_url

if TYPE_CHECKING:
    from storage_guard.core.policy import SecurityPolicy
    from storage_guard.infra.storage.backends.protocol import CannedACL, StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_SECONDS = 3600
DELETE_MAX_EXPIRY_SECONDS = 3600
ACL_MAX_EXPIRY_SECONDS = 3600
DEFAULT_LIST_MAX_KEYS = 1000


@dataclass
class PresignedUploadPost:
    """Presigned POST form for browser uploads."""

    url: str
    fields: dict[str, str]
    key: str
    expires_at: datetime
    expires_in_seconds: int
    content_type: str | None = None
    max_size_bytes: int | None = None

    def is_expired(self) -> bool:
        """Check if the form has expired."""
        return datetime.now(UTC) > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        result: dict[str, Any] = {
            "url": self.url,
            "fields": self.fields,
            "key": self.key,
            "expires_at": self.expires_at.isoformat(),
            "expires_in_seconds": self.expires_in_seconds,
        }
        if self.content_type:
            result["content_type"] = self.content_type
        if self.max_size_bytes is not None:
            result["max_size_bytes"] = self.max_size_bytes
        return result


class PresignedUrlIssuer:
    """Issues presigned URLs for operations the policy allows.

    Args:
        backend: Transport that signs the requests.
        policy: Security policy, or None for permissive mode.
        max_expiry_seconds: Optional ceiling for upload, download and list URLs.

    Example:
        issuer = PresignedUrlIssuer(backend, policy)
        url = await issuer.get_presigned_download_url("public/report.pdf", 600, role="viewer")
    """

    def __init__(
        self,
        backend: StorageBackend,
        policy: SecurityPolicy | None = None,
        *,
        max_expiry_seconds: int | None = None,
    ) -> None:
        self._backend = backend
        self._policy = policy
        self._max_expiry_seconds = max_expiry_seconds

    @property
    def policy(self) -> SecurityPolicy | None:
        return self._policy

    def _check_expiry(
        self,
        expires_in: int,
        operation: str,
        key: str,
        hard_limit: int | None = None,
    ) -> None:
        limit = hard_limit if hard_limit is not None else self._max_expiry_seconds
        if limit is not None and expires_in > limit:
            logger.warning(
                "Presigned URL expiry exceeds limit",
                extra={"operation": operation, "key": key, "expires_in": expires_in, "limit": limit},
            )
            raise ExpiryLimitExceededError(expires_in, limit, operation=operation, key=key)

    @staticmethod
    def _require_positive(expires_in: int, key: str) -> None:
        if isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in <= 0:
            raise StorageValidationError(
                f"expires_in must be a positive number of seconds, got {expires_in!r}",
                metadata={"key": key, "expires_in": expires_in},
            )

    async def _sign(
        self,
        url_type: str,
        client_method: str,
        params: dict[str, Any],
        expires_in: int,
        *,
        key: str,
        bucket: str | None,
        role: str | None,
    ) -> str:
        if bucket:
            params["Bucket"] = bucket
        async with track_storage_operation(
            f"presign_{url_type}", key=key, bucket=bucket, role=role
        ):
            url = await self._backend.generate_presigned_url(client_method, params, expires_in)
        record_presigned_url(url_type)
        logger.info(
            "Issued presigned URL",
            extra={"type": url_type, "key": key, "role": role, "expires_in": expires_in},
        )
        return url

    async def get_presigned_upload_url(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        content_type: str | None = None,
        role: str | None = None,
        max_size: int | None = None,
        metadata: dict[str, str] | None = None,
        bucket: str | None = None,
    ) -> str:
        """Issue a presigned PUT URL.

        Validated as a ``write`` with ``max_size`` as the declared content
        length. The content type is signed into the URL; the size is not.

        Raises:
            PolicyViolationError: If the policy denies the write.
            ExpiryLimitExceededError: If the optional generic ceiling is exceeded.
        """
        self._require_positive(expires_in, key)
        request = authorize(
            self._policy,
            OperationKind.WRITE,
            key,
            role=role,
            content_type=content_type,
            content_length=max_size,
            metadata=metadata,
        )
        self._check_expiry(expires_in, "upload", key)

        params: dict[str, Any] = {"Key": key}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata
        return await self._sign(
            "upload", "put_object", params, expires_in, key=key, bucket=bucket, role=request.role
        )

    async def get_presigned_upload_post(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        content_type: str | None = None,
        role: str | None = None,
        max_size: int | None = None,
        metadata: dict[str, str] | None = None,
        bucket: str | None = None,
    ) -> PresignedUploadPost:
        """Issue a presigned POST form for browser uploads.

        Validated like ``get_presigned_upload_url``. When ``max_size`` is given
        the store itself rejects larger uploads.
        """
        self._require_positive(expires_in, key)
        request = authorize(
            self._policy,
            OperationKind.WRITE,
            key,
            role=role,
            content_type=content_type,
            content_length=max_size,
            metadata=metadata,
        )
        self._check_expiry(expires_in, "upload", key)

        async with track_storage_operation(
            "presign_upload_post", key=key, bucket=bucket, role=request.role
        ):
            response = await self._backend.generate_presigned_post(
                key,
                bucket=bucket,
                content_type=content_type,
                metadata=metadata,
                max_size=max_size,
                expires_in=expires_in,
            )
        record_presigned_url("upload_post")

        return PresignedUploadPost(
            url=response["url"],
            fields=response["fields"],
            key=key,
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
            expires_in_seconds=expires_in,
            content_type=content_type,
            max_size_bytes=max_size,
        )

    async def get_presigned_download_url(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        role: str | None = None,
        response_content_type: str | None = None,
        response_content_disposition: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """Issue a presigned GET URL, validated as a ``read``."""
        self._require_positive(expires_in, key)
        request = authorize(self._policy, OperationKind.READ, key, role=role)
        self._check_expiry(expires_in, "download", key)

        params: dict[str, Any] = {"Key": key}
        if response_content_type:
            params["ResponseContentType"] = response_content_type
        if response_content_disposition:
            params["ResponseContentDisposition"] = response_content_disposition
        return await self._sign(
            "download", "get_object", params, expires_in, key=key, bucket=bucket, role=request.role
        )

    async def get_presigned_delete_url(
        self,
        key: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        role: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """Issue a presigned DELETE URL, validated as a ``delete``.

        Raises:
            ExpiryLimitExceededError: If ``expires_in`` is over 3600 seconds.
        """
        self._require_positive(expires_in, key)
        request = authorize(self._policy, OperationKind.DELETE, key, role=role)
        self._check_expiry(expires_in, "delete", key, hard_limit=DELETE_MAX_EXPIRY_SECONDS)

        return await self._sign(
            "delete", "delete_object", {"Key": key}, expires_in,
            key=key, bucket=bucket, role=request.role,
        )

    async def get_presigned_list_url(
        self,
        prefix: str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        role: str | None = None,
        max_keys: int = DEFAULT_LIST_MAX_KEYS,
        delimiter: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """Issue a presigned ListObjectsV2 URL, validated as a ``list`` of ``prefix``."""
        self._require_positive(expires_in, prefix)
        request = authorize(self._policy, OperationKind.LIST, prefix, role=role)
        self._check_expiry(expires_in, "list", prefix)

        params: dict[str, Any] = {"Prefix": prefix, "MaxKeys": max_keys}
        if delimiter:
            params["Delimiter"] = delimiter
        return await self._sign(
            "list", "list_objects_v2", params, expires_in,
            key=prefix, bucket=bucket, role=request.role,
        )

    async def get_presigned_acl_url(
        self,
        key: str,
        acl: CannedACL | str,
        expires_in: int = DEFAULT_EXPIRY_SECONDS,
        *,
        role: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """Issue a presigned PutObjectAcl URL, validated as an ``acl_write``.

        Raises:
            StorageValidationError: If ``acl`` is not a canned ACL.
            ExpiryLimitExceededError: If ``expires_in`` is over 3600 seconds.
        """
        canned = coerce_acl(acl)
        self._require_positive(expires_in, key)
        request = authorize(self._policy, OperationKind.ACL_WRITE, key, role=role)
        self._check_expiry(expires_in, "acl", key, hard_limit=ACL_MAX_EXPIRY_SECONDS)

        return await self._sign(
            "acl", "put_object_acl", {"Key": key, "ACL": canned.value}, expires_in,
            key=key, bucket=bucket, role=request.role,
        )
