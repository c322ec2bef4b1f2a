"""Content hashing helpers for manifest verification.

The eopkg manifest records a SHA-1 hex digest per file. Symbolic links are
hashed by their target text rather than the bytes they point at, so both
forms are provided here.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import BinaryIO

_CHUNK_SIZE = 1024 * 1024


def sha1_hex(data: bytes) -> str:
    """Return the lowercase SHA-1 hex digest of raw bytes."""
    return hashlib.sha1(data).hexdigest()


def sha1_stream(stream: BinaryIO) -> str:
    """Hash a binary stream in fixed-size chunks."""
    h = hashlib.sha1()
    for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
        h.update(chunk)
    return h.hexdigest()


def sha1_file(path: Path) -> str:
    """Stream-hash the full content of a regular file."""
    with Path(path).open("rb") as f:
        return sha1_stream(f)


def sha1_symlink(path: Path) -> str:
    """Hash the target text of a symbolic link, not what it points to."""
    return sha1_hex(os.fsencode(os.readlink(path)))
