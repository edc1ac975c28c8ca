import logging
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from deployhub.domain.errors import ExternalServiceError, NotFoundError
from deployhub.storage.interface import ObjectStorage

logger = logging.getLogger(__name__)


@dataclass
class S3Config:
    """Connection settings for one organization's object store."""

    endpoint: str
    access_key: str = ""
    secret_key: str = ""
    region: str = "us-east-1"
    secure: bool = False
    endpoint_in_cluster: str = ""
    models_bucket_name: str = "models"
    bentos_bucket_name: str = "bentos"

    @property
    def internal_endpoint(self) -> str:
        return self.endpoint_in_cluster or self.endpoint

    def endpoint_url(self, endpoint: Optional[str] = None) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{endpoint or self.internal_endpoint}"


class S3Storage(ObjectStorage):
    """
    Implements artifact storage on an S3-compatible object store.

    The client talks to the in-cluster endpoint; presigned URLs handed out
    to callers are rewritten to the public endpoint when the two differ.
    """

    def __init__(self, config: S3Config, s3_client=None):
        """
        Initialize S3 storage.

        Args:
            config: Endpoint, credentials and bucket names
            s3_client: Pre-built boto3 client (if None, one is created from config)
        """
        self.config = config
        self.s3_client = s3_client or boto3.client(
            's3',
            endpoint_url=config.endpoint_url(),
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
            region_name=config.region,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    def make_sure_bucket(self, bucket_name: str) -> None:
        """Ensure the S3 bucket exists, create it if it doesn't."""
        try:
            self.s3_client.head_bucket(Bucket=bucket_name)
        except BotoCoreError as e:
            raise ExternalServiceError(f"failed to check bucket {bucket_name}: {e}") from e
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code not in ('404', 'NoSuchBucket', 'NotFound'):
                raise ExternalServiceError(f"failed to check bucket {bucket_name}: {e}") from e
            logger.info(f"Creating bucket {bucket_name}")
            try:
                self.s3_client.create_bucket(Bucket=bucket_name)
            except (ClientError, BotoCoreError) as create_error:
                raise ExternalServiceError(f"failed to create bucket {bucket_name}: {create_error}") from create_error

    def put_object(self, bucket_name: str, object_name: str, reader: BinaryIO, size: int) -> None:
        logger.debug(f"uploading to s3: {bucket_name}/{object_name} ({size} bytes)")
        try:
            self.s3_client.upload_fileobj(
                reader,
                bucket_name,
                object_name,
                ExtraArgs={"ContentType": "application/octet-stream"},
            )
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(f"put object: {e}") from e
        logger.debug(f"uploaded to s3: {bucket_name}/{object_name}")

    def get_object(self, bucket_name: str, object_name: str) -> BinaryIO:
        try:
            response = self.s3_client.get_object(Bucket=bucket_name, Key=object_name)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('NoSuchKey', '404'):
                raise NotFoundError(f"Object not found: {bucket_name}/{object_name}") from e
            raise ExternalServiceError(f"get object: {e}") from e
        except BotoCoreError as e:
            raise ExternalServiceError(f"get object: {e}") from e
        return response['Body']

    def presigned_put_url(self, bucket_name: str, object_name: str, expires: int) -> str:
        return self._presign(
            "put_object", {"Bucket": bucket_name, "Key": object_name}, expires, "presigned put object"
        )

    def presigned_get_url(self, bucket_name: str, object_name: str, expires: int) -> str:
        return self._presign(
            "get_object", {"Bucket": bucket_name, "Key": object_name}, expires, "presigned get object"
        )

    def create_multipart_upload(self, bucket_name: str, object_name: str) -> str:
        try:
            response = self.s3_client.create_multipart_upload(Bucket=bucket_name, Key=object_name)
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(f"new multipart upload: {e}") from e
        return response["UploadId"]

    def presigned_upload_part_url(
        self, bucket_name: str, object_name: str, upload_id: str, part_number: int, expires: int
    ) -> str:
        params = {
            "Bucket": bucket_name,
            "Key": object_name,
            "UploadId": upload_id,
            "PartNumber": part_number,
        }
        return self._presign("upload_part", params, expires, "presigned upload part")

    def complete_multipart_upload(
        self, bucket_name: str, object_name: str, upload_id: str, parts: List[Dict]
    ) -> None:
        ordered = sorted(parts, key=lambda part: part["PartNumber"])
        try:
            self.s3_client.complete_multipart_upload(
                Bucket=bucket_name,
                Key=object_name,
                UploadId=upload_id,
                MultipartUpload={"Parts": ordered},
            )
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(f"complete multipart upload: {e}") from e

    def _presign(self, client_method: str, params: Dict, expires: int, action: str) -> str:
        try:
            url = self.s3_client.generate_presigned_url(
                ClientMethod=client_method, Params=params, ExpiresIn=expires
            )
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(f"{action}: {e}") from e
        return self.rewrite_host(url)

    def rewrite_host(self, url: str) -> str:
        """Point a URL signed against the in-cluster endpoint at the public one."""
        if not self.config.endpoint_in_cluster or self.config.endpoint == self.config.endpoint_in_cluster:
            return url
        parts = urlsplit(url)
        return urlunsplit((parts.scheme, self.config.endpoint, parts.path, parts.query, parts.fragment))
