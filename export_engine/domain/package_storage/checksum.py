"""SHA-256 helpers for package integrity."""

import hashlib
from typing import Iterable

_READ_SIZE = 1024 * 1024


def sha256_file(path: str) -> str:
    """Hex SHA-256 digest of a local file, read in 1 MiB blocks."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for block in iter(lambda: handle.read(_READ_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def sha256_stream(chunks: Iterable[bytes]) -> str:
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk)
    return digest.hexdigest()
