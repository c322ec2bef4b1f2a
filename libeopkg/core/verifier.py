"""On-disk verification of an installed file tree against its manifest.

Checks run in a fixed order and stop at the first mismatch: size,
permission bits, uid, gid, then content. Symbolic links are hashed by
their target text; fifos, devices and sockets skip the content check.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from libeopkg.core.errors import VerificationMismatchError
from libeopkg.core.hasher import sha1_file, sha1_symlink
from libeopkg.models.files import FileEntry, FileManifest

logger = logging.getLogger(__name__)


def resolve(root: Path, entry: FileEntry) -> Path:
    """Location of a manifest path under an installation root."""
    return Path(root) / entry.path.lstrip("/")


def verify_file(entry: FileEntry, root: Path) -> None:
    """Verify a single entry.

    Raises
    ------
    VerificationMismatchError
        Naming the first field that differs.
    FileNotFoundError
        If the entry does not exist under ``root``.
    """
    path = resolve(root, entry)
    st = os.lstat(path)

    if st.st_size != entry.size:
        raise VerificationMismatchError(entry.path, "size", entry.size, st.st_size)
    perms = stat.S_IMODE(st.st_mode)
    if perms != entry.permissions:
        raise VerificationMismatchError(
            entry.path, "mode", oct(entry.permissions), oct(perms)
        )
    if st.st_uid != entry.uid:
        raise VerificationMismatchError(entry.path, "uid", entry.uid, st.st_uid)
    if st.st_gid != entry.gid:
        raise VerificationMismatchError(entry.path, "gid", entry.gid, st.st_gid)

    if stat.S_ISLNK(st.st_mode):
        digest = sha1_symlink(path)
    elif stat.S_ISREG(st.st_mode):
        digest = sha1_file(path)
    else:
        logger.debug("Skipping content check for %s", entry.path)
        return
    if digest != entry.hash:
        raise VerificationMismatchError(entry.path, "hash", entry.hash, digest)


def verify_manifest(manifest: FileManifest, root: Path) -> None:
    """Verify every entry, failing on the first bad one."""
    for entry in manifest:
        verify_file(entry, root)
