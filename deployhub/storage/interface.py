from abc import ABC, abstractmethod
from typing import BinaryIO, Dict, List


class ObjectStorage(ABC):
    """
    Abstract interface for artifact storage in an S3-compatible object store.
    """

    @abstractmethod
    def make_sure_bucket(self, bucket_name: str) -> None:
        """Create the bucket if it does not exist yet."""
        pass

    @abstractmethod
    def put_object(self, bucket_name: str, object_name: str, reader: BinaryIO, size: int) -> None:
        """
        Upload an object from a readable stream.

        Args:
            bucket_name: Target bucket
            object_name: Key of the object inside the bucket
            reader: Binary stream to read the object from
            size: Size in bytes, or -1 when unknown
        """
        pass

    @abstractmethod
    def get_object(self, bucket_name: str, object_name: str) -> BinaryIO:
        """
        Open an object for reading.

        Returns:
            A readable binary stream
        """
        pass

    @abstractmethod
    def presigned_put_url(self, bucket_name: str, object_name: str, expires: int) -> str:
        """Return a URL a client can PUT the object to without credentials."""
        pass

    @abstractmethod
    def presigned_get_url(self, bucket_name: str, object_name: str, expires: int) -> str:
        """Return a URL a client can GET the object from without credentials."""
        pass

    @abstractmethod
    def create_multipart_upload(self, bucket_name: str, object_name: str) -> str:
        """Start a multipart upload and return its upload id."""
        pass

    @abstractmethod
    def presigned_upload_part_url(
        self, bucket_name: str, object_name: str, upload_id: str, part_number: int, expires: int
    ) -> str:
        """Return a URL a client can PUT one part of a multipart upload to."""
        pass

    @abstractmethod
    def complete_multipart_upload(
        self, bucket_name: str, object_name: str, upload_id: str, parts: List[Dict]
    ) -> None:
        """
        Assemble the uploaded parts into the final object.

        Args:
            parts: ``{"PartNumber": int, "ETag": str}`` entries in part order
        """
        pass
