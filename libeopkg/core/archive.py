"""Access to ``.eopkg`` containers.

An ``.eopkg`` is a zip archive with this top-level structure::

    metadata.xml    -> package descriptor
    files.xml       -> file records with hash/uid/gid/mode
    comar/          -> post-install scripts
    install.tar.xz  -> filesystem contents

Entry names within one container are unique, so lookup is a plain scan by
exact name. The descriptor and manifest are parsed lazily and at most once.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tarfile
import zipfile
from pathlib import Path
from typing import IO

from libeopkg.core.differ import diff_manifests
from libeopkg.core.errors import CorruptedArchiveError
from libeopkg.core.payload import (
    PayloadEntry,
    PayloadExtractor,
    PayloadReader,
)
from libeopkg.core.verifier import verify_manifest
from libeopkg.core.xml_codec import parse_files, parse_metadata
from libeopkg.core.xz import Codec
from libeopkg.models.files import DiffResult, FileManifest
from libeopkg.models.metadata import Metadata

logger = logging.getLogger(__name__)

METADATA_ENTRY = "metadata.xml"
FILES_ENTRY = "files.xml"

_XATTR_PREFIX = "SCHILY.xattr."


class Archive:
    """An opened ``.eopkg`` container.

    The instance owns its zip handle exclusively. ``close()`` releases it and
    may be called any number of times, including on an instance whose open
    failed part-way.

    Parameters
    ----------
    path:
        Location of the ``.eopkg`` file.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.id = self.path.name
        self._zip: zipfile.ZipFile | None = None
        self._metadata: Metadata | None = None
        self._files: FileManifest | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, path: Path | str) -> Archive:
        """Open a container, asserting that it is a readable zip archive."""
        archive = cls(path)
        try:
            archive._zip = zipfile.ZipFile(archive.path, "r")
        except zipfile.BadZipFile as e:
            raise CorruptedArchiveError(f"{archive.id}: not a valid container: {e}") from e
        return archive

    @classmethod
    def open_all(cls, path: Path | str) -> Archive:
        """Open a container and read its descriptor and manifest."""
        archive = cls.open(path)
        try:
            archive.read_all()
        except BaseException:
            archive.close()
            raise
        return archive

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    @property
    def closed(self) -> bool:
        return self._zip is None

    def __enter__(self) -> Archive:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _handle(self) -> zipfile.ZipFile:
        if self._zip is None:
            raise ValueError(f"{self.id}: archive is not open")
        return self._zip

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def entries(self) -> list[zipfile.ZipInfo]:
        """All entries in container order."""
        return self._handle().infolist()

    def find_entry(self, name: str) -> zipfile.ZipInfo | None:
        """Return the entry called ``name``, or None when absent.

        Absence is not an error here; callers decide whether it means the
        container is corrupted.
        """
        for info in self._handle().infolist():
            if info.filename == name:
                return info
        return None

    def open_entry(self, info: zipfile.ZipInfo) -> IO[bytes]:
        """Open an entry previously returned by ``find_entry`` or ``entries``."""
        return self._handle().open(info)

    def read_entry(self, name: str) -> bytes:
        info = self.find_entry(name)
        if info is None:
            raise CorruptedArchiveError(f"{self.id}: missing {name}")
        return self._handle().read(info)

    def extract_entry(self, name: str, dest_dir: Path) -> Path:
        """Copy one entry's bytes verbatim to ``dest_dir/name`` and fsync it."""
        info = self.find_entry(name)
        if info is None:
            raise CorruptedArchiveError(f"{self.id}: missing {name}")
        dest = Path(dest_dir) / name
        dest.parent.mkdir(parents=True, exist_ok=True)
        with self._handle().open(info) as src, dest.open("wb") as dst:
            shutil.copyfileobj(src, dst)
            dst.flush()
            os.fsync(dst.fileno())
        return dest

    # ------------------------------------------------------------------
    # Descriptor and manifest
    # ------------------------------------------------------------------

    def read_metadata(self) -> Metadata:
        """Parse ``metadata.xml`` on first call; later calls return the cache."""
        if self._metadata is None:
            self._metadata = parse_metadata(self.read_entry(METADATA_ENTRY))
            logger.debug("Read metadata for %s", self.id)
        return self._metadata

    def read_files(self) -> FileManifest:
        """Parse ``files.xml`` on first call; later calls return the cache."""
        if self._files is None:
            self._files = parse_files(self.read_entry(FILES_ENTRY))
            logger.debug("Read %d file records for %s", len(self._files), self.id)
        return self._files

    def read_all(self) -> None:
        self.read_metadata()
        self.read_files()

    @property
    def metadata(self) -> Metadata:
        return self.read_metadata()

    @property
    def files(self) -> FileManifest:
        return self.read_files()

    # ------------------------------------------------------------------
    # Comparison and verification
    # ------------------------------------------------------------------

    def is_delta_possible(self, newer: Archive) -> bool:
        return self.metadata.package.is_delta_possible(newer.metadata.package)

    def diff(self, newer: Archive) -> DiffResult:
        """Files in ``newer`` that changed, and files of ours it dropped."""
        return diff_manifests(self.files, newer.files)

    def verify(self, root: Path) -> None:
        """Check every manifest entry against the tree installed at ``root``."""
        self.read_all()
        verify_manifest(self.files, Path(root))
        logger.info("Verified %d files of %s under %s", len(self.files), self.id, root)

    # ------------------------------------------------------------------
    # Unpacking
    # ------------------------------------------------------------------

    def unpack(
        self,
        meta_dir: Path,
        files_dir: Path,
        *,
        codec: Codec | None = None,
        preserve_ownership: bool = True,
    ) -> None:
        """Write out the XML documents and materialise the payload.

        ``files.xml`` and ``metadata.xml`` land in ``meta_dir``; the payload
        is decompressed into ``files_dir`` and every member is created there
        with its mode, mtime and extended attributes. Ownership is restored
        only when ``preserve_ownership`` is set, which normally needs root.
        """
        meta_dir = Path(meta_dir)
        files_dir = Path(files_dir)
        meta_dir.mkdir(parents=True, exist_ok=True)
        self.extract_entry(FILES_ENTRY, meta_dir)
        self.extract_entry(METADATA_ENTRY, meta_dir)
        files_dir.mkdir(parents=True, exist_ok=True)

        tar_path = PayloadExtractor(codec).extract(self, files_dir)
        dirs: list[PayloadEntry] = []
        try:
            with PayloadReader(tar_path) as reader:
                for entry in reader:
                    if not entry.name:
                        continue
                    dst = _safe_join(files_dir, entry.name)
                    if _materialise(entry, dst, files_dir):
                        _apply_attributes(entry.info, dst, preserve_ownership)
                        if entry.info.isdir():
                            dirs.append(entry)
            # Creating children bumps directory mtimes, so restore them last
            for entry in reversed(dirs):
                dst = _safe_join(files_dir, entry.name)
                os.utime(dst, (entry.info.mtime, entry.info.mtime), follow_symlinks=False)
        except tarfile.ReadError as e:
            raise CorruptedArchiveError(f"{self.id}: truncated payload: {e}") from e
        finally:
            tar_path.unlink(missing_ok=True)
        logger.info("Unpacked %s into %s", self.id, files_dir)


def _inside(root: Path, path: Path) -> bool:
    real_root = root.resolve()
    real = path.resolve()
    return real == real_root or real_root in real.parents


def _safe_join(root: Path, name: str) -> Path:
    """Destination of payload member ``name`` under ``root``.

    Rejects ``..`` components, and any name whose parent directory resolves
    outside ``root`` through a symlink created by an earlier member.
    """
    dst = root / name
    if any(part == ".." for part in name.split("/")) or not _inside(root, dst.parent):
        raise CorruptedArchiveError(f"Payload member escapes the target: {name}")
    return dst


def _materialise(entry: PayloadEntry, dst: Path, root: Path) -> bool:
    """Create one tar member on disk. Returns False for unsupported types."""
    info = entry.info
    dst.parent.mkdir(parents=True, exist_ok=True)
    # Never write through a link left by an earlier member
    if dst.is_symlink():
        dst.unlink()
    if entry.is_regular:
        with dst.open("wb") as out:
            shutil.copyfileobj(entry.stream, out)
            out.flush()
            os.fsync(out.fileno())
    elif info.islnk():
        os.link(_safe_join(root, info.linkname.lstrip("/")), dst, follow_symlinks=False)
    elif info.issym():
        os.symlink(info.linkname, dst)
    elif info.isdir():
        dst.mkdir(parents=True, exist_ok=True)
    elif info.isfifo():
        os.mkfifo(dst, 0o666)
    else:
        logger.warning("Skipping unsupported payload member %s (type %r)", info.name, info.type)
        return False
    return True


def _apply_attributes(info: tarfile.TarInfo, dst: Path, preserve_ownership: bool) -> None:
    if preserve_ownership:
        os.chown(dst, info.uid, info.gid, follow_symlinks=False)
    if not info.issym():
        os.chmod(dst, stat.S_IMODE(info.mode))
        os.utime(dst, (info.mtime, info.mtime))
    for key, value in info.pax_headers.items():
        if key.startswith(_XATTR_PREFIX):
            os.setxattr(
                dst,
                key[len(_XATTR_PREFIX):],
                value.encode("utf-8", "surrogateescape"),
                follow_symlinks=False,
            )
