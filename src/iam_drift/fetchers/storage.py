"""
GCS Fetchers Module.

This module lists and downloads Terraform state files held in GCS buckets.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from google.api_core import exceptions as api_exceptions
from google.cloud import storage

from ...utils import setup_logging
from ..errors import StorageError

logger = setup_logging()


class Storage(ABC):
    """The object storage operations used by the Terraform state parser."""

    @abstractmethod
    def objects_with_name(self, bucket: str, suffix: str) -> List[str]:
        """Returns gs:// URIs of every object in the bucket whose name ends with suffix."""

    @abstractmethod
    def download_object(self, bucket: str, name: str, limit: int) -> bytes:
        """Returns at most limit bytes of the object."""


class GoogleCloudStorage(Storage):
    """Storage backed by the google-cloud-storage client."""

    def __init__(self, client: Optional[storage.Client] = None) -> None:
        self._client = client or storage.Client()

    def objects_with_name(self, bucket: str, suffix: str) -> List[str]:
        try:
            uris = [
                f"gs://{bucket}/{blob.name}"
                for blob in self._client.list_blobs(bucket)
                if blob.name.endswith(suffix)
            ]
        except api_exceptions.GoogleAPICallError as e:
            raise StorageError(f"failed to list contents of bucket {bucket}: {e}") from e
        logger.debug(f"Found {len(uris)} objects ending in {suffix} in bucket {bucket}")
        return uris

    def download_object(self, bucket: str, name: str, limit: int) -> bytes:
        """
        Downloads an object into memory.

        Args:
            bucket: Bucket name
            name: Object name
            limit: Maximum number of bytes to read

        Returns:
            The object content, truncated to limit bytes

        Raises:
            StorageError: If the object cannot be read
        """
        blob = self._client.bucket(bucket).blob(name)
        try:
            with blob.open("rb") as reader:
                return reader.read(limit)
        except api_exceptions.GoogleAPICallError as e:
            raise StorageError(f"failed to download gs://{bucket}/{name}: {e}") from e
