"""
Google Cloud Storage Package Storage Implementation

Concrete implementation of IPackageStorage for Google Cloud Storage, using
the google-cloud-storage client. Ranged reads map onto ranged blob downloads
so resumed transfers never fetch the whole object.
"""

import logging
from typing import BinaryIO, Iterator, Optional

from google.cloud import storage
from google.cloud.exceptions import GoogleCloudError, NotFound

from export_engine.domain.package_storage import DEFAULT_CHUNK_SIZE, IPackageStorage

logger = logging.getLogger(__name__)


class GCSPackageStorage(IPackageStorage):
    """
    Google Cloud Storage implementation of IPackageStorage.

    Thread Safety:
        The GCS client handles concurrent operations safely.

    Attributes:
        bucket_name: Name of the GCS bucket holding packages
        prefix: Object name prefix for all packages
    """

    def __init__(
        self,
        bucket_name: str,
        prefix: str = "exports",
        client: Optional[storage.Client] = None,
    ):
        """
        Initialize the GCS package storage.

        Args:
            bucket_name: Name of the GCS bucket to use
            prefix: Object name prefix
            client: Preconfigured client, a default client is created if None

        Raises:
            ValueError: If bucket_name is empty
        """
        if not bucket_name or not bucket_name.strip():
            raise ValueError("bucket_name cannot be empty")

        self.bucket_name = bucket_name
        self.prefix = prefix.strip("/")
        self.client = client or storage.Client()
        self.bucket = self.client.bucket(bucket_name)

    def _blob_name(self, file_path: str) -> str:
        if not file_path or not file_path.strip():
            raise ValueError("file_path cannot be empty")
        return f"{self.prefix}/{file_path}" if self.prefix else file_path

    def save(self, file_path: str, content: BinaryIO) -> bool:
        blob = self.bucket.blob(self._blob_name(file_path))
        if hasattr(content, "seek"):
            content.seek(0)
        try:
            blob.upload_from_file(content, content_type="application/gzip")
        except GoogleCloudError as e:
            raise IOError(f"Failed to save package to GCS: {e}") from e
        return True

    def open_range(
        self,
        file_path: str,
        start: int = 0,
        end: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> Iterator[bytes]:
        blob = self.bucket.get_blob(self._blob_name(file_path))
        if blob is None:
            raise FileNotFoundError(f"Package not found: {file_path}")

        last = blob.size - 1 if end is None else min(end, blob.size - 1)
        return self._iter_blob(blob, start, last, chunk_size)

    @staticmethod
    def _iter_blob(blob, start: int, last: int, chunk_size: int) -> Iterator[bytes]:
        position = start
        while position <= last:
            chunk_end = min(position + chunk_size - 1, last)
            # download_as_bytes treats end as inclusive
            chunk = blob.download_as_bytes(start=position, end=chunk_end)
            if not chunk:
                break
            position += len(chunk)
            yield chunk

    def delete(self, file_path: str) -> bool:
        try:
            self.bucket.blob(self._blob_name(file_path)).delete()
        except NotFound:
            return True
        except GoogleCloudError as e:
            raise IOError(f"Failed to delete package from GCS: {e}") from e
        return True

    def exists(self, file_path: str) -> bool:
        try:
            return self.bucket.blob(self._blob_name(file_path)).exists()
        except (ValueError, GoogleCloudError) as e:
            logger.warning(f"Could not check GCS package {file_path}: {e}")
            return False

    def get_size(self, file_path: str) -> Optional[int]:
        try:
            blob = self.bucket.get_blob(self._blob_name(file_path))
        except (ValueError, GoogleCloudError) as e:
            logger.warning(f"Could not stat GCS package {file_path}: {e}")
            return None
        return blob.size if blob is not None else None
