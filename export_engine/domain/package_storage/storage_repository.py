"""
Package Storage Interface

Abstract interface for the physical storage of export packages. The engine
only relies on write, ranged read and delete; the backing technology (local
filesystem, Google Cloud Storage) is chosen by the storage factory.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, Iterator, Optional

DEFAULT_CHUNK_SIZE = 64 * 1024


class IPackageStorage(ABC):
    """
    Storage contract for export packages.

    Contract Guarantees:
    - Paths are relative to the storage root
    - delete() is idempotent: a missing object counts as deleted
    - open_range() streams in chunks and never loads the whole package
    - get_size() and exists() never raise for unknown paths

    Thread Safety:
    - Implementations must allow concurrent reads of the same package
    """

    @abstractmethod
    def save(self, file_path: str, content: BinaryIO) -> bool:
        """
        Write package content to storage, replacing any existing object.

        Args:
            file_path: Relative path for the package (e.g. 'job-id/export.tar.gz')
            content: Binary content as a file-like object

        Returns:
            True if the package was written

        Raises:
            ValueError: If file_path is empty
            IOError: If the write fails
        """
        pass

    @abstractmethod
    def open_range(
        self,
        file_path: str,
        start: int = 0,
        end: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> Iterator[bytes]:
        """
        Stream the bytes of a package between start and end (inclusive).

        Args:
            file_path: Relative path of the package
            start: First byte offset
            end: Last byte offset, None for end of object
            chunk_size: Maximum size of each yielded chunk

        Returns:
            Iterator of byte chunks

        Raises:
            FileNotFoundError: If no object exists at file_path
        """
        pass

    @abstractmethod
    def delete(self, file_path: str) -> bool:
        """
        Delete a package.

        Returns:
            True if the package was deleted or did not exist

        Raises:
            IOError: If the backend refused the delete
        """
        pass

    @abstractmethod
    def exists(self, file_path: str) -> bool:
        pass

    @abstractmethod
    def get_size(self, file_path: str) -> Optional[int]:
        """Return the size in bytes, or None if the package does not exist."""
        pass
