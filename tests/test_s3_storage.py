"""Tests for the S3 storage backend against a mocked boto3 client."""
import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from deployhub.domain.errors import ExternalServiceError, NotFoundError
from deployhub.storage.s3 import S3Config, S3Storage


def client_error(code, operation="HeadBucket"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def s3_storage(s3_client):
    return S3Storage(S3Config(endpoint="minio:9000"), s3_client=s3_client)


class TestS3Config:

    def test_endpoint_url(self):
        assert S3Config(endpoint="minio:9000").endpoint_url() == "http://minio:9000"
        assert S3Config(endpoint="s3.example.com", secure=True).endpoint_url() == "https://s3.example.com"

    def test_internal_endpoint(self):
        config = S3Config(endpoint="s3.example.com", endpoint_in_cluster="minio.svc:9000")
        assert config.internal_endpoint == "minio.svc:9000"
        assert config.endpoint_url() == "http://minio.svc:9000"


class TestBuckets:

    def test_existing_bucket(self, s3_storage, s3_client):
        s3_storage.make_sure_bucket("models")

        s3_client.head_bucket.assert_called_once_with(Bucket="models")
        s3_client.create_bucket.assert_not_called()

    def test_missing_bucket_is_created(self, s3_storage, s3_client):
        s3_client.head_bucket.side_effect = client_error("404")

        s3_storage.make_sure_bucket("models")

        s3_client.create_bucket.assert_called_once_with(Bucket="models")

    def test_other_errors_raise(self, s3_storage, s3_client):
        s3_client.head_bucket.side_effect = client_error("403")

        with pytest.raises(ExternalServiceError):
            s3_storage.make_sure_bucket("models")

    def test_connection_failure_raises(self, s3_storage, s3_client):
        s3_client.head_bucket.side_effect = EndpointConnectionError(endpoint_url="http://minio:9000")

        with pytest.raises(ExternalServiceError, match="failed to check bucket models"):
            s3_storage.make_sure_bucket("models")


class TestObjects:

    def test_put_object(self, s3_storage, s3_client):
        reader = io.BytesIO(b"abc")
        s3_storage.put_object("models", "models/acme/iris/v1.tar.gz", reader, 3)

        s3_client.upload_fileobj.assert_called_once_with(
            reader, "models", "models/acme/iris/v1.tar.gz",
            ExtraArgs={"ContentType": "application/octet-stream"},
        )

    def test_put_object_error(self, s3_storage, s3_client):
        s3_client.upload_fileobj.side_effect = client_error("500", "PutObject")
        with pytest.raises(ExternalServiceError):
            s3_storage.put_object("models", "key", io.BytesIO(b""), 0)

    def test_get_object(self, s3_storage, s3_client):
        body = io.BytesIO(b"abc")
        s3_client.get_object.return_value = {"Body": body}
        assert s3_storage.get_object("models", "key") is body

    def test_get_missing_object(self, s3_storage, s3_client):
        s3_client.get_object.side_effect = client_error("NoSuchKey", "GetObject")
        with pytest.raises(NotFoundError):
            s3_storage.get_object("models", "key")

    def test_get_object_connection_failure(self, s3_storage, s3_client):
        s3_client.get_object.side_effect = EndpointConnectionError(endpoint_url="http://minio:9000")

        with pytest.raises(ExternalServiceError, match="get object"):
            s3_storage.get_object("models", "key")


class TestPresign:

    def test_put_url(self, s3_storage, s3_client):
        s3_client.generate_presigned_url.return_value = "http://minio:9000/models/key?X-Amz-Signature=x"

        assert s3_storage.presigned_put_url("models", "key", 60) == "http://minio:9000/models/key?X-Amz-Signature=x"
        s3_client.generate_presigned_url.assert_called_once_with(
            ClientMethod="put_object", Params={"Bucket": "models", "Key": "key"}, ExpiresIn=60,
        )

    def test_host_rewritten_to_public_endpoint(self, s3_client):
        s3_storage = S3Storage(
            S3Config(endpoint="s3.example.com", endpoint_in_cluster="minio.svc:9000"), s3_client=s3_client
        )
        s3_client.generate_presigned_url.return_value = "http://minio.svc:9000/models/key?sig=1"

        assert s3_storage.presigned_get_url("models", "key", 60) == "http://s3.example.com/models/key?sig=1"


class TestMultipart:

    def test_create(self, s3_storage, s3_client):
        s3_client.create_multipart_upload.return_value = {"UploadId": "abc"}
        assert s3_storage.create_multipart_upload("models", "key") == "abc"

    def test_part_url(self, s3_storage, s3_client):
        s3_client.generate_presigned_url.return_value = "http://minio:9000/part"
        s3_storage.presigned_upload_part_url("models", "key", "abc", 3, 60)

        params = s3_client.generate_presigned_url.call_args.kwargs["Params"]
        assert params == {"Bucket": "models", "Key": "key", "UploadId": "abc", "PartNumber": 3}

    def test_complete_sorts_parts(self, s3_storage, s3_client):
        parts = [{"PartNumber": 2, "ETag": "b"}, {"PartNumber": 1, "ETag": "a"}]
        s3_storage.complete_multipart_upload("models", "key", "abc", parts)

        s3_client.complete_multipart_upload.assert_called_once_with(
            Bucket="models",
            Key="key",
            UploadId="abc",
            MultipartUpload={"Parts": [{"PartNumber": 1, "ETag": "a"}, {"PartNumber": 2, "ETag": "b"}]},
        )
