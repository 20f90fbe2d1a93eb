"""
Package Storage Domain

Storage contract and integrity helpers for export packages.
"""

from .checksum import sha256_file, sha256_stream
from .storage_repository import DEFAULT_CHUNK_SIZE, IPackageStorage

__all__ = ["IPackageStorage", "DEFAULT_CHUNK_SIZE", "sha256_file", "sha256_stream"]
