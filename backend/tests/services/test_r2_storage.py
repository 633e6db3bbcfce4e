"""
Tests for the R2 storage service.

Tests validate_s3_key() and the S3 calls R2StorageService makes against a
mocked boto3 client.
"""

import io
import pytest
from unittest.mock import MagicMock
from botocore.exceptions import ClientError

from services.r2_storage import R2StorageService, generate_video_key, validate_s3_key


def client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def storage(s3_client):
    return R2StorageService(client=s3_client, bucket_name="bird-videos")


class TestValidateS3Key:
    """Test cases for validate_s3_key() function."""

    def test_valid_key(self):
        """Test that valid object keys are accepted."""
        assert validate_s3_key("videos/123/1700000000000.mp4", "test") == "videos/123/1700000000000.mp4"

    def test_none_returns_none(self):
        """Test that None input returns None."""
        assert validate_s3_key(None, "test") is None

    def test_whitespace_stripped(self):
        """Test that whitespace is stripped."""
        assert validate_s3_key("  videos/123/1.mp4  ", "test") == "videos/123/1.mp4"

    @pytest.mark.parametrize("value", [
        "http://bucket.r2.dev/videos/1.mp4",
        "https://bucket.r2.dev/videos/1.mp4",
        "s3://bucket/videos/1.mp4",
    ])
    def test_urls_rejected(self, value):
        """Test that URLs are rejected."""
        with pytest.raises(ValueError, match="must be an object key"):
            validate_s3_key(value, "test")

    @pytest.mark.parametrize("value", [
        "videos/1.mp4?X-Amz-Signature=abc123&X-Amz-Date=20231117",
        "videos/1.mp4?AWSAccessKeyId=AKIA123&Signature=abc",
        "videos/1.mp4?X-Goog-Signature=abc",
    ])
    def test_presigned_urls_rejected(self, value):
        """Test that presigned URL signatures are rejected."""
        with pytest.raises(ValueError, match="presigned URL"):
            validate_s3_key(value, "test")

    def test_error_message_includes_field_name(self):
        """Test that error messages include the field name for debugging."""
        with pytest.raises(ValueError) as exc_info:
            validate_s3_key("https://example.com/file.mp4", "r2_key")
        assert "r2_key" in str(exc_info.value)


def test_generate_video_key():
    assert generate_video_key("abc", 1700000000000) == "videos/abc/1700000000000.mp4"


class TestR2StorageService:

    def test_upload_streams_with_metadata(self, storage, s3_client):
        data = io.BytesIO(b"mp4")

        key = storage.upload_fileobj(data, "videos/v1/1.mp4", metadata={"videoId": "v1"})

        assert key == "videos/v1/1.mp4"
        s3_client.upload_fileobj.assert_called_once_with(
            data,
            "bird-videos",
            "videos/v1/1.mp4",
            ExtraArgs={"ContentType": "video/mp4", "Metadata": {"videoId": "v1"}},
        )

    def test_upload_rejects_url_key(self, storage, s3_client):
        with pytest.raises(ValueError):
            storage.upload_fileobj(io.BytesIO(b"mp4"), "https://x/videos/v1.mp4")
        s3_client.upload_fileobj.assert_not_called()

    def test_upload_error_propagates(self, storage, s3_client):
        s3_client.upload_fileobj.side_effect = client_error("InternalError", "PutObject")
        with pytest.raises(ClientError):
            storage.upload_fileobj(io.BytesIO(b"mp4"), "videos/v1/1.mp4")

    def test_ranged_get(self, storage, s3_client):
        body = MagicMock()
        s3_client.get_object.return_value = {
            "Body": body,
            "ContentLength": 100,
            "ContentRange": "bytes 100-199/1000",
            "ContentType": "video/mp4",
        }

        stored = storage.get_object("videos/v1/1.mp4", (100, 199))

        s3_client.get_object.assert_called_once_with(
            Bucket="bird-videos", Key="videos/v1/1.mp4", Range="bytes=100-199"
        )
        assert stored.body is body
        assert stored.size == 100
        assert stored.total_size == 1000
        assert stored.range == (100, 199)

    def test_full_get(self, storage, s3_client):
        s3_client.get_object.return_value = {"Body": MagicMock(), "ContentLength": 1000}

        stored = storage.get_object("videos/v1/1.mp4")

        s3_client.get_object.assert_called_once_with(Bucket="bird-videos", Key="videos/v1/1.mp4")
        assert stored.size == stored.total_size == 1000
        assert stored.range is None

    def test_missing_object(self, storage, s3_client):
        s3_client.get_object.side_effect = client_error("NoSuchKey")
        s3_client.head_object.side_effect = client_error("404", "HeadObject")

        assert storage.get_object("videos/v1/1.mp4") is None
        assert storage.head_object("videos/v1/1.mp4") is None

    def test_other_errors_propagate(self, storage, s3_client):
        s3_client.head_object.side_effect = client_error("AccessDenied", "HeadObject")
        with pytest.raises(ClientError):
            storage.head_object("videos/v1/1.mp4")

    def test_head_returns_size(self, storage, s3_client):
        s3_client.head_object.return_value = {"ContentLength": 1000}
        assert storage.head_object("videos/v1/1.mp4") == 1000

    @pytest.mark.asyncio
    async def test_async_wrappers(self, storage, s3_client):
        s3_client.head_object.return_value = {"ContentLength": 42}
        assert await storage.head_object_async("videos/v1/1.mp4") == 42
        s3_client.get_object.return_value = {
            "Body": MagicMock(),
            "ContentLength": 10,
            "ContentRange": "bytes 0-9/42",
        }
        stored = await storage.get_object_async("videos/v1/1.mp4", (0, 9))
        assert (stored.size, stored.total_size) == (10, 42)
