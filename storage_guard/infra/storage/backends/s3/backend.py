"""S3-compatible storage backend implementation.

Implements the StorageBackend protocol for AWS S3, MinIO, and other
S3-compatible services using aioboto3.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING, Any, BinaryIO, cast

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storage_guard.infra.storage.exceptions import (
    StorageDownloadError,
    StorageError,
    StorageNotConfiguredError,
    StorageUploadError,
    map_boto_error,
    map_botocore_error,
)

from ..protocol import ObjectMetadata, UploadResult

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from storage_guard.core.settings.storage import StorageSettings

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchBucket", "NoSuchKey", "404", "NotFound"})


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3Backend:
    """S3-compatible storage backend.

    Attributes:
        settings: Storage configuration settings

    Example:
        async with S3Backend(settings) as backend:
            result = await backend.upload_object("file.txt", BytesIO(b"hello"))
    """

    def __init__(self, settings: StorageSettings) -> None:
        """Initialize S3 backend.

        Args:
            settings: Storage settings with S3 configuration

        Raises:
            StorageNotConfiguredError: If storage is not enabled
        """
        if not settings.is_configured:
            msg = "S3 backend not configured. Set STORAGE_ENABLED=true."
            raise StorageNotConfiguredError(msg)

        self.settings = settings
        self._session = aioboto3.Session()
        self._client: Any = None
        self._client_context: Any = None

    @property
    def backend_name(self) -> str:
        """Backend name identifier."""
        return "s3"

    @property
    def is_ready(self) -> bool:
        """Check if backend is initialized and ready."""
        return self._client is not None

    # ========================================================================
    # Lifecycle Management
    # ========================================================================

    def _build_boto_config(self) -> Config:
        """Retry, timeout, pooling and addressing configuration for botocore."""
        return Config(
            retries={
                "max_attempts": self.settings.max_retries,
                "mode": self.settings.retry_mode,
            },
            connect_timeout=self.settings.timeout,
            read_timeout=self.settings.timeout,
            max_pool_connections=self.settings.max_pool_connections,
            signature_version="s3v4",
            s3={"addressing_style": "path" if self.settings.force_path_style else "auto"},
        )

    async def startup(self) -> None:
        """Initialize S3 client and connection pool."""
        if self._client is not None:
            logger.debug("S3 backend already initialized")
            return

        logger.info(
            "Initializing S3 backend",
            extra={
                "bucket": self.settings.bucket,
                "endpoint": self.settings.endpoint,
                "region": self.settings.region,
                "force_path_style": self.settings.force_path_style,
            },
        )

        try:
            self._client_context = self._session.client(
                "s3",
                **self.settings.get_boto3_config(),
                config=self._build_boto_config(),
            )
            self._client = await self._client_context.__aenter__()
        except Exception as e:
            self._client_context = None
            logger.exception("Failed to initialize S3 backend", extra={"error": str(e)})
            raise StorageError(
                f"Failed to initialize S3 backend: {e}",
                code="STORAGE_INITIALIZATION_ERROR",
            ) from e

        logger.info("S3 backend initialized successfully")

    async def shutdown(self) -> None:
        """Shutdown S3 client gracefully."""
        if self._client_context is None:
            logger.debug("S3 backend not initialized, nothing to shutdown")
            return

        logger.info("Shutting down S3 backend")

        try:
            await self._client_context.__aexit__(None, None, None)
        except Exception as e:
            logger.warning("Error closing S3 client", extra={"error": str(e)})
        finally:
            self._client = None
            self._client_context = None

    async def health_check(self) -> bool:
        """Check S3 connectivity and credentials with a HEAD on the default bucket."""
        if self._client is None:
            return False

        try:
            await self._client.head_bucket(Bucket=self.settings.bucket)
            return True
        except Exception as e:
            logger.warning(
                "S3 health check failed",
                extra={"error": str(e), "bucket": self.settings.bucket},
            )
            return False

    def _ensure_client(self) -> Any:
        """Return the client, or raise if startup() has not run."""
        if self._client is None:
            msg = "S3 backend not initialized. Call startup() first."
            raise StorageNotConfiguredError(msg)
        return self._client

    # ========================================================================
    # Object Operations
    # ========================================================================

    async def upload_object(
        self,
        key: str,
        data: BinaryIO,
        bucket: str | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Upload an object with a single PutObject request.

        ``data`` is uploaded from its current position to the end.

        Raises:
            StorageUploadError: If upload fails
        """
        client = self._ensure_client()
        bucket = bucket or self.settings.bucket

        file_data = data.read()
        size_bytes = len(file_data)
        checksum_sha256 = hashlib.sha256(file_data).hexdigest()

        extra_args: dict[str, Any] = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if metadata:
            extra_args["Metadata"] = metadata

        try:
            response = await client.put_object(
                Bucket=bucket,
                Key=key,
                Body=file_data,
                **extra_args,
            )
        except ClientError as e:
            logger.exception("Failed to upload object to S3", extra={"error": str(e)})
            raise map_boto_error(e, operation="upload", key=key, bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="upload", key=key, bucket=bucket) from e
        except Exception as e:
            logger.exception("Unexpected error during S3 upload", extra={"error": str(e)})
            raise StorageUploadError(
                f"Failed to upload {key}: {e}",
                metadata={"key": key, "bucket": bucket, "error": str(e)},
            ) from e

        logger.info(
            "Object uploaded to S3",
            extra={
                "key": key,
                "bucket": bucket,
                "size_bytes": size_bytes,
                "content_type": content_type,
            },
        )
        return UploadResult(
            key=key,
            bucket=bucket,
            etag=response.get("ETag", "").strip('"') or None,
            size_bytes=size_bytes,
            checksum_sha256=checksum_sha256,
            version_id=response.get("VersionId"),
        )

    async def download_object(self, key: str, bucket: str | None = None) -> bytes:
        """Download an object.

        Raises:
            StorageFileNotFoundError: If object doesn't exist
            StorageDownloadError: If download fails
        """
        client = self._ensure_client()
        bucket = bucket or self.settings.bucket

        try:
            response = await client.get_object(Bucket=bucket, Key=key)
            async with response["Body"] as stream:
                file_data = bytes(await stream.read())
        except ClientError as e:
            logger.exception("Failed to download object from S3", extra={"error": str(e)})
            raise map_boto_error(e, operation="download", key=key, bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="download", key=key, bucket=bucket) from e
        except Exception as e:
            logger.exception("Unexpected error during S3 download", extra={"error": str(e)})
            raise StorageDownloadError(
                f"Failed to download {key}: {e}",
                metadata={"key": key, "bucket": bucket, "error": str(e)},
            ) from e

        logger.info(
            "Object downloaded from S3",
            extra={"key": key, "bucket": bucket, "size_bytes": len(file_data)},
        )
        return file_data

    async def delete_object(self, key: str, bucket: str | None = None) -> bool:
        """Delete an object.

        Raises:
            StorageError: If deletion fails
        """
        client = self._ensure_client()
        bucket = bucket or self.settings.bucket

        try:
            await client.delete_object(Bucket=bucket, Key=key)
        except ClientError as e:
            logger.exception("Failed to delete object from S3", extra={"error": str(e)})
            raise map_boto_error(e, operation="delete", key=key, bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="delete", key=key, bucket=bucket) from e
        except Exception as e:
            logger.exception("Unexpected error during S3 deletion", extra={"error": str(e)})
            raise StorageError(
                f"Failed to delete {key}: {e}",
                code="STORAGE_DELETE_ERROR",
                metadata={"key": key, "bucket": bucket, "error": str(e)},
            ) from e

        logger.info("Object deleted from S3", extra={"key": key, "bucket": bucket})
        return True

    async def list_objects(
        self,
        prefix: str = "",
        bucket: str | None = None,
        max_keys: int = 1000,
        continuation_token: str | None = None,
    ) -> tuple[list[ObjectMetadata], str | None]:
        """List one page of objects with ListObjectsV2."""
        client = self._ensure_client()
        bucket = bucket or self.settings.bucket

        kwargs: dict[str, Any] = {
            "Bucket": bucket,
            "Prefix": prefix,
            "MaxKeys": max_keys,
        }
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token

        try:
            response = await client.list_objects_v2(**kwargs)
        except ClientError as e:
            logger.exception("Failed to list objects in S3", extra={"error": str(e)})
            raise map_boto_error(e, operation="list", key=prefix, bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="list", key=prefix, bucket=bucket) from e
        except Exception as e:
            logger.exception("Unexpected error during S3 list", extra={"error": str(e)})
            raise StorageError(
                f"Failed to list objects with prefix {prefix}: {e}",
                code="STORAGE_LIST_ERROR",
                metadata={"prefix": prefix, "bucket": bucket, "error": str(e)},
            ) from e

        objects = [
            ObjectMetadata(
                key=item["Key"],
                size_bytes=item.get("Size", 0),
                content_type=None,
                last_modified=item.get("LastModified"),
                etag=item.get("ETag", "").strip('"') or None,
                storage_class=item.get("StorageClass"),
            )
            for item in response.get("Contents", [])
        ]
        next_token = response.get("NextContinuationToken")

        logger.debug(
            "Listed objects from S3",
            extra={
                "bucket": bucket,
                "prefix": prefix,
                "count": len(objects),
                "has_more": next_token is not None,
            },
        )
        return objects, next_token

    async def stream_objects(
        self,
        prefix: str = "",
        bucket: str | None = None,
    ) -> AsyncIterator[ObjectMetadata]:
        """Stream all objects matching prefix (automatic pagination)."""
        continuation_token: str | None = None

        while True:
            objects, continuation_token = await self.list_objects(
                prefix=prefix,
                bucket=bucket,
                continuation_token=continuation_token,
            )
            for obj in objects:
                yield obj

            if continuation_token is None:
                break

    # ========================================================================
    # ACL Management
    # ========================================================================

    async def set_object_acl(self, key: str, acl: str, bucket: str | None = None) -> bool:
        """Apply a canned ACL to an existing object.

        Raises:
            StorageFileNotFoundError: If object doesn't exist
            StorageError: If ACL setting fails
        """
        client = self._ensure_client()
        bucket = bucket or self.settings.bucket

        try:
            await client.put_object_acl(Bucket=bucket, Key=key, ACL=acl)
        except ClientError as e:
            logger.exception("Failed to set object ACL in S3", extra={"error": str(e)})
            raise map_boto_error(e, operation="set_object_acl", key=key, bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="set_object_acl", key=key, bucket=bucket) from e
        except Exception as e:
            logger.exception("Unexpected error setting object ACL", extra={"error": str(e)})
            raise StorageError(
                f"Failed to set ACL for {key}: {e}",
                code="STORAGE_SET_ACL_ERROR",
                metadata={"key": key, "bucket": bucket, "acl": acl, "error": str(e)},
            ) from e

        logger.info("Object ACL updated in S3", extra={"key": key, "bucket": bucket, "acl": acl})
        return True

    async def get_object_acl(self, key: str, bucket: str | None = None) -> dict[str, Any]:
        """Get the owner and grants of an object.

        Raises:
            StorageFileNotFoundError: If object doesn't exist
            StorageError: If ACL retrieval fails
        """
        client = self._ensure_client()
        bucket = bucket or self.settings.bucket

        try:
            response = await client.get_object_acl(Bucket=bucket, Key=key)
        except ClientError as e:
            logger.exception("Failed to get object ACL from S3", extra={"error": str(e)})
            raise map_boto_error(e, operation="get_object_acl", key=key, bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="get_object_acl", key=key, bucket=bucket) from e
        except Exception as e:
            logger.exception("Unexpected error getting object ACL", extra={"error": str(e)})
            raise StorageError(
                f"Failed to get ACL for {key}: {e}",
                code="STORAGE_GET_ACL_ERROR",
                metadata={"key": key, "bucket": bucket, "error": str(e)},
            ) from e

        return {
            "owner": response.get("Owner", {}),
            "grants": response.get("Grants", []),
        }

    # ========================================================================
    # Presigned URLs
    # ========================================================================

    async def generate_presigned_url(
        self,
        client_method: str,
        params: dict[str, Any],
        expires_in: int,
    ) -> str:
        """Sign a single S3 request.

        Signing is local; no request is sent to the store.

        Raises:
            StorageError: If URL generation fails
        """
        client = self._ensure_client()
        params = {"Bucket": self.settings.bucket, **params}
        key = params.get("Key", params.get("Prefix"))

        try:
            url = await client.generate_presigned_url(
                client_method,
                Params=params,
                ExpiresIn=expires_in,
            )
        except ClientError as e:
            logger.exception("Failed to generate presigned URL", extra={"error": str(e)})
            raise map_boto_error(
                e, operation="generate_presigned_url", key=key, bucket=params["Bucket"]
            ) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(
                e, operation="generate_presigned_url", key=key, bucket=params["Bucket"]
            ) from e
        except Exception as e:
            logger.exception("Unexpected error generating presigned URL", extra={"error": str(e)})
            raise StorageError(
                f"Failed to generate presigned {client_method} URL for {key}: {e}",
                code="STORAGE_PRESIGNED_URL_ERROR",
                metadata={
                    "key": key,
                    "bucket": params["Bucket"],
                    "client_method": client_method,
                    "error": str(e),
                },
            ) from e

        logger.debug(
            "Generated presigned URL",
            extra={
                "client_method": client_method,
                "key": key,
                "bucket": params["Bucket"],
                "expires_in": expires_in,
            },
        )
        return cast("str", url)

    async def generate_presigned_post(
        self,
        key: str,
        bucket: str | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        max_size: int | None = None,
        expires_in: int = 3600,
    ) -> dict[str, Any]:
        """Generate presigned POST data for browser uploads.

        When ``max_size`` is given the signed policy carries a
        ``content-length-range`` condition, so the store rejects larger bodies.

        Returns:
            Dict with 'url' and 'fields' for POST request
        """
        client = self._ensure_client()
        bucket = bucket or self.settings.bucket

        conditions: list[Any] = [{"key": key}]
        fields: dict[str, str] = {"key": key}

        if content_type:
            conditions.append({"Content-Type": content_type})
            fields["Content-Type"] = content_type
        for name, value in (metadata or {}).items():
            meta_field = f"x-amz-meta-{name}"
            conditions.append({meta_field: value})
            fields[meta_field] = value
        if max_size is not None:
            conditions.append(["content-length-range", 0, max_size])

        try:
            response = await client.generate_presigned_post(
                Bucket=bucket,
                Key=key,
                Fields=fields,
                Conditions=conditions,
                ExpiresIn=expires_in,
            )
        except ClientError as e:
            logger.exception("Failed to generate presigned POST", extra={"error": str(e)})
            raise map_boto_error(
                e, operation="generate_presigned_post", key=key, bucket=bucket
            ) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(
                e, operation="generate_presigned_post", key=key, bucket=bucket
            ) from e
        except Exception as e:
            logger.exception("Unexpected error generating presigned POST", extra={"error": str(e)})
            raise StorageError(
                f"Failed to generate presigned POST for {key}: {e}",
                code="STORAGE_PRESIGNED_POST_ERROR",
                metadata={"key": key, "bucket": bucket, "error": str(e)},
            ) from e

        return cast("dict[str, Any]", response)

    # ========================================================================
    # Bucket Management
    # ========================================================================

    async def bucket_exists(self, bucket: str) -> bool:
        """Check if a bucket exists and is accessible.

        Raises:
            StorageError: For errors other than "not found" (e.g. access denied)
        """
        client = self._ensure_client()

        try:
            await client.head_bucket(Bucket=bucket)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            logger.exception("Error checking bucket existence", extra={"error": str(e)})
            raise map_boto_error(e, operation="bucket_exists", bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="bucket_exists", bucket=bucket) from e
        return True

    async def create_bucket(self, bucket: str, region: str | None = None) -> bool:
        """Create a bucket.

        A bucket that already exists and is owned by these credentials counts
        as created.

        Raises:
            StorageAlreadyExistsError: If the name is taken by someone else
            StorageError: If creation fails
        """
        client = self._ensure_client()
        region = region or self.settings.region

        kwargs: dict[str, Any] = {"Bucket": bucket}
        # S3 requires CreateBucketConfiguration for regions other than us-east-1
        if region and region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}

        try:
            await client.create_bucket(**kwargs)
        except ClientError as e:
            if _error_code(e) == "BucketAlreadyOwnedByYou":
                logger.warning("Bucket already exists and is owned by you", extra={"bucket": bucket})
                return True
            logger.exception("Failed to create bucket in S3", extra={"error": str(e)})
            raise map_boto_error(e, operation="create_bucket", bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="create_bucket", bucket=bucket) from e
        except Exception as e:
            logger.exception("Unexpected error creating bucket", extra={"error": str(e)})
            raise StorageError(
                f"Failed to create bucket {bucket}: {e}",
                code="STORAGE_CREATE_BUCKET_ERROR",
                metadata={"bucket": bucket, "region": region, "error": str(e)},
            ) from e

        logger.info("Bucket created in S3", extra={"bucket": bucket, "region": region})
        return True

    async def delete_bucket(self, bucket: str) -> bool:
        """Delete an empty bucket.

        Raises:
            StorageValidationError: If the bucket is not empty
            StorageError: If deletion fails
        """
        client = self._ensure_client()

        try:
            await client.delete_bucket(Bucket=bucket)
        except ClientError as e:
            logger.exception("Failed to delete bucket from S3", extra={"error": str(e)})
            raise map_boto_error(e, operation="delete_bucket", bucket=bucket) from e
        except BotoCoreError as e:
            logger.exception("S3 request failed without a response", extra={"error": str(e)})
            raise map_botocore_error(e, operation="delete_bucket", bucket=bucket) from e
        except Exception as e:
            logger.exception("Unexpected error deleting bucket", extra={"error": str(e)})
            raise StorageError(
                f"Failed to delete bucket {bucket}: {e}",
                code="STORAGE_DELETE_BUCKET_ERROR",
                metadata={"bucket": bucket, "error": str(e)},
            ) from e

        logger.info("Bucket deleted from S3", extra={"bucket": bucket})
        return True

    # ========================================================================
    # Context Manager Support
    # ========================================================================

    async def __aenter__(self) -> S3Backend:
        await self.startup()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()
