"""
Local Package Storage Implementation

Concrete implementation of IPackageStorage on the local filesystem.
Writes go to a temporary file that is atomically renamed into place, so a
reader never sees a half-written package.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from export_engine.domain.package_storage import DEFAULT_CHUNK_SIZE, IPackageStorage

logger = logging.getLogger(__name__)


class LocalPackageStorage(IPackageStorage):
    """
    Local filesystem implementation of IPackageStorage.

    Thread Safety:
        Concurrent reads are safe. Writes use a temporary file plus os.replace.

    Attributes:
        base_path: Root directory for stored packages
    """

    def __init__(self, base_path: str = "/tmp/export-packages"):
        """
        Initialize the local package storage.

        Args:
            base_path: Root directory, created if missing

        Raises:
            PermissionError: If the directory cannot be created
        """
        self.base_path = Path(base_path)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PermissionError(
                f"Insufficient permissions to create storage directory: {self.base_path}"
            ) from e

    def _resolve(self, file_path: str) -> Path:
        """Map a relative path into base_path, rejecting traversal."""
        if not file_path or not file_path.strip():
            raise ValueError("file_path cannot be empty")
        full_path = (self.base_path / file_path).resolve()
        base = self.base_path.resolve()
        if full_path != base and base not in full_path.parents:
            raise ValueError(f"Path escapes storage root: {file_path}")
        return full_path

    def save(self, file_path: str, content: BinaryIO) -> bool:
        full_path = self._resolve(file_path)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        if hasattr(content, "seek"):
            content.seek(0)

        fd, tmp_name = tempfile.mkstemp(dir=full_path.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as handle:
                while True:
                    chunk = content.read(DEFAULT_CHUNK_SIZE)
                    if not chunk:
                        break
                    handle.write(chunk)
            os.replace(tmp_name, full_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise IOError(f"Failed to save package {file_path}: {e}") from e
        return True

    def open_range(
        self,
        file_path: str,
        start: int = 0,
        end: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> Iterator[bytes]:
        full_path = self._resolve(file_path)
        if not full_path.is_file():
            raise FileNotFoundError(f"Package not found: {file_path}")

        size = full_path.stat().st_size
        last = size - 1 if end is None else min(end, size - 1)
        return self._iter_file(full_path, start, last, chunk_size)

    @staticmethod
    def _iter_file(full_path: Path, start: int, last: int, chunk_size: int) -> Iterator[bytes]:
        # Opened on first next(); a stream closed before that holds no handle
        with open(full_path, "rb") as handle:
            handle.seek(start)
            remaining = last - start + 1
            while remaining > 0:
                chunk = handle.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk

    def delete(self, file_path: str) -> bool:
        try:
            full_path = self._resolve(file_path)
        except ValueError:
            return True

        try:
            full_path.unlink(missing_ok=True)
        except IsADirectoryError as e:
            raise IOError(f"Refusing to delete directory {file_path}") from e
        except OSError as e:
            raise IOError(f"Failed to delete package {file_path}: {e}") from e

        # Drop the per-job directory once it is empty.
        parent = full_path.parent
        if parent != self.base_path.resolve():
            try:
                parent.rmdir()
            except OSError:
                pass
        return True

    def exists(self, file_path: str) -> bool:
        try:
            return self._resolve(file_path).is_file()
        except ValueError:
            return False

    def get_size(self, file_path: str) -> Optional[int]:
        try:
            full_path = self._resolve(file_path)
        except ValueError:
            return None
        if not full_path.is_file():
            return None
        return full_path.stat().st_size
