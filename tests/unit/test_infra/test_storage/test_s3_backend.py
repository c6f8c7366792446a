"""Unit tests for the S3 backend with a mocked aioboto3 client."""

import hashlib
import io
from unittest.mock import AsyncMock, MagicMock

from botocore.exceptions import ClientError, ConnectTimeoutError, EndpointConnectionError, ReadTimeoutError
import pytest

from storage_guard.core.settings.storage import StorageSettings
from storage_guard.infra.storage.backends.s3.backend import S3Backend
from storage_guard.infra.storage.exceptions import (
    StorageAlreadyExistsError,
    StorageErrorKind,
    StorageFileNotFoundError,
    StorageNotConfiguredError,
    StoragePermissionError,
    StorageTimeoutError,
)


def _client_error(code: str, operation: str = "HeadBucket") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_settings():
    return StorageSettings(enabled=True, bucket="uploads", region="eu-west-1")


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def backend(s3_settings, client):
    """Backend with the client already attached, as after startup()."""
    backend = S3Backend(s3_settings)
    backend._client = client
    return backend


class TestConfiguration:
    """Client configuration."""

    def test_requires_enabled_storage(self):
        with pytest.raises(StorageNotConfiguredError):
            S3Backend(StorageSettings(enabled=False))

    def test_path_style_addressing(self, s3_settings):
        config = S3Backend(s3_settings)._build_boto_config()

        assert config.s3 == {"addressing_style": "path"}
        assert config.signature_version == "s3v4"
        assert config.retries == {"max_attempts": s3_settings.max_retries, "mode": "standard"}

    def test_virtual_host_addressing(self):
        settings = StorageSettings(enabled=True, force_path_style=False)

        assert S3Backend(settings)._build_boto_config().s3 == {"addressing_style": "auto"}

    @pytest.mark.asyncio
    async def test_calls_before_startup_fail(self, s3_settings):
        with pytest.raises(StorageNotConfiguredError):
            await S3Backend(s3_settings).download_object("public/a.txt")

    @pytest.mark.asyncio
    async def test_health_check_without_client(self, s3_settings):
        assert await S3Backend(s3_settings).health_check() is False


class TestObjectOperations:
    """Object calls translate to S3 requests."""

    @pytest.mark.asyncio
    async def test_upload(self, backend, client):
        client.put_object.return_value = {"ETag": '"etag-1"', "VersionId": "v1"}

        result = await backend.upload_object(
            "uploads/a.txt", io.BytesIO(b"hello"), content_type="text/plain"
        )

        client.put_object.assert_awaited_once_with(
            Bucket="uploads", Key="uploads/a.txt", Body=b"hello", ContentType="text/plain"
        )
        assert result.etag == "etag-1"
        assert result.version_id == "v1"
        assert result.size_bytes == 5
        assert result.checksum_sha256 == hashlib.sha256(b"hello").hexdigest()

    @pytest.mark.asyncio
    async def test_upload_from_current_position(self, backend, client):
        client.put_object.return_value = {"ETag": '"etag-1"'}
        data = io.BytesIO(b"skipped|kept")
        data.seek(8)

        result = await backend.upload_object("uploads/a.txt", data)

        assert client.put_object.await_args.kwargs["Body"] == b"kept"
        assert result.size_bytes == 4

    @pytest.mark.asyncio
    async def test_download(self, backend, client):
        body = MagicMock()
        body.__aenter__.return_value.read = AsyncMock(return_value=b"hello")
        client.get_object.return_value = {"Body": body}

        assert await backend.download_object("public/a.txt", bucket="archive") == b"hello"
        client.get_object.assert_awaited_once_with(Bucket="archive", Key="public/a.txt")

    @pytest.mark.asyncio
    async def test_download_missing_key(self, backend, client):
        client.get_object.side_effect = _client_error("NoSuchKey", "GetObject")

        with pytest.raises(StorageFileNotFoundError) as exc_info:
            await backend.download_object("public/missing.txt")

        assert exc_info.value.extra["key"] == "public/missing.txt"
        assert exc_info.value.extra["bucket"] == "uploads"

    @pytest.mark.asyncio
    async def test_stream_objects_follows_pagination(self, backend, client):
        client.list_objects_v2.side_effect = [
            {"Contents": [{"Key": "public/a.txt", "Size": 1}], "NextContinuationToken": "t1"},
            {"Contents": [{"Key": "public/b.txt", "Size": 2}]},
        ]

        keys = [obj.key async for obj in backend.stream_objects(prefix="public/")]

        assert keys == ["public/a.txt", "public/b.txt"]
        assert client.list_objects_v2.await_args_list[1].kwargs["ContinuationToken"] == "t1"

    @pytest.mark.asyncio
    async def test_acl_access_denied(self, backend, client):
        client.put_object_acl.side_effect = _client_error("AccessDenied", "PutObjectAcl")

        with pytest.raises(StoragePermissionError):
            await backend.set_object_acl("public/a.txt", "public-read")

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_on_download(self, backend, client):
        """Test that connection failures surface as transient storage errors."""
        client.get_object.side_effect = EndpointConnectionError(endpoint_url="http://localhost:9000")

        with pytest.raises(StorageTimeoutError) as exc_info:
            await backend.download_object("public/a.txt")

        assert exc_info.value.kind is StorageErrorKind.TRANSIENT
        assert exc_info.value.extra["operation"] == "download"
        assert exc_info.value.extra["key"] == "public/a.txt"
        assert exc_info.value.extra["bucket"] == "uploads"

    @pytest.mark.asyncio
    async def test_read_timeout_on_upload(self, backend, client):
        client.put_object.side_effect = ReadTimeoutError(endpoint_url="http://localhost:9000")

        with pytest.raises(StorageTimeoutError) as exc_info:
            await backend.upload_object("uploads/a.txt", io.BytesIO(b"hello"))

        assert exc_info.value.kind is StorageErrorKind.TRANSIENT
        assert exc_info.value.extra["key"] == "uploads/a.txt"


class TestPresigning:
    """Local request signing."""

    @pytest.mark.asyncio
    async def test_default_bucket_filled_in(self, backend, client):
        client.generate_presigned_url.return_value = "https://signed"

        url = await backend.generate_presigned_url("get_object", {"Key": "public/a.txt"}, 600)

        assert url == "https://signed"
        client.generate_presigned_url.assert_awaited_once_with(
            "get_object",
            Params={"Bucket": "uploads", "Key": "public/a.txt"},
            ExpiresIn=600,
        )

    @pytest.mark.asyncio
    async def test_presigned_post_size_condition(self, backend, client):
        """Test that max_size becomes a content-length-range condition."""
        client.generate_presigned_post.return_value = {"url": "https://u", "fields": {}}

        await backend.generate_presigned_post(
            "uploads/a.txt",
            content_type="text/plain",
            metadata={"owner": "u1"},
            max_size=4_000,
            expires_in=600,
        )

        kwargs = client.generate_presigned_post.await_args.kwargs
        assert kwargs["Bucket"] == "uploads"
        assert kwargs["Fields"] == {
            "key": "uploads/a.txt",
            "Content-Type": "text/plain",
            "x-amz-meta-owner": "u1",
        }
        assert ["content-length-range", 0, 4_000] in kwargs["Conditions"]
        assert kwargs["ExpiresIn"] == 600


class TestBucketOperations:
    """Bucket administration."""

    @pytest.mark.asyncio
    async def test_bucket_exists(self, backend, client):
        assert await backend.bucket_exists("uploads") is True

    @pytest.mark.asyncio
    async def test_bucket_missing(self, backend, client):
        client.head_bucket.side_effect = _client_error("404")

        assert await backend.bucket_exists("uploads") is False

    @pytest.mark.asyncio
    async def test_bucket_exists_access_denied(self, backend, client):
        client.head_bucket.side_effect = _client_error("403")

        with pytest.raises(StoragePermissionError):
            await backend.bucket_exists("uploads")

    @pytest.mark.asyncio
    async def test_bucket_exists_connect_timeout(self, backend, client):
        client.head_bucket.side_effect = ConnectTimeoutError(endpoint_url="http://localhost:9000")

        with pytest.raises(StorageTimeoutError) as exc_info:
            await backend.bucket_exists("archive")

        assert exc_info.value.extra["bucket"] == "archive"

    @pytest.mark.asyncio
    async def test_create_bucket_with_location(self, backend, client):
        assert await backend.create_bucket("media") is True

        client.create_bucket.assert_awaited_once_with(
            Bucket="media",
            CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
        )

    @pytest.mark.asyncio
    async def test_create_bucket_us_east_1(self, backend, client):
        await backend.create_bucket("media", region="us-east-1")

        client.create_bucket.assert_awaited_once_with(Bucket="media")

    @pytest.mark.asyncio
    async def test_create_owned_bucket_succeeds(self, backend, client):
        client.create_bucket.side_effect = _client_error("BucketAlreadyOwnedByYou", "CreateBucket")

        assert await backend.create_bucket("media") is True

    @pytest.mark.asyncio
    async def test_create_taken_bucket_fails(self, backend, client):
        client.create_bucket.side_effect = _client_error("BucketAlreadyExists", "CreateBucket")

        with pytest.raises(StorageAlreadyExistsError):
            await backend.create_bucket("media")
