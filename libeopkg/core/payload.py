"""Payload extraction and forward-only tar reading.

The payload is the ``install.tar.xz`` entry of a container. It is copied
verbatim into a working directory, decompressed by the codec, and then read
sequentially with ``tarfile`` in stream mode: every entry's body is either
consumed or skipped before the reader moves on.
"""

from __future__ import annotations

import logging
import tarfile
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING

from libeopkg.core.errors import CorruptedArchiveError
from libeopkg.core.xz import Codec, default_codec

if TYPE_CHECKING:
    from libeopkg.core.archive import Archive

logger = logging.getLogger(__name__)

PAYLOAD_ENTRY = "install.tar.xz"
PAYLOAD_TAR = "install.tar"

REGULAR_TYPES = (tarfile.REGTYPE, tarfile.AREGTYPE)


def normalize_member_name(name: str) -> str:
    """Canonical form used to match tar member names against manifest paths.

    Strips the trailing slash tar puts on directories, and any leading
    ``./`` or ``/`` so that ``./usr/bin/`` and ``usr/bin`` compare equal.
    """
    name = name.lstrip("/")
    while name.startswith("./"):
        name = name[2:]
    name = name.strip("/")
    return "" if name == "." else name


@dataclass
class PayloadEntry:
    """One tar member as yielded by ``PayloadReader``.

    ``stream`` is only set for regular files and is valid until the reader
    advances.
    """

    info: tarfile.TarInfo
    stream: IO[bytes] | None

    @property
    def name(self) -> str:
        return normalize_member_name(self.info.name)

    @property
    def is_regular(self) -> bool:
        return self.info.type in REGULAR_TYPES


class PayloadReader:
    """Sequential reader over a plain tar file.

    Parameters
    ----------
    tar_path:
        Path to an uncompressed tar archive.
    """

    def __init__(self, tar_path: Path) -> None:
        self._path = Path(tar_path)
        self._fileobj: IO[bytes] | None = None
        self._tar: tarfile.TarFile | None = None

    def open(self) -> PayloadReader:
        self._fileobj = self._path.open("rb")
        try:
            self._tar = tarfile.open(fileobj=self._fileobj, mode="r|")
        except tarfile.TarError as e:
            self.close()
            raise CorruptedArchiveError(f"Invalid payload tar {self._path}: {e}") from e
        return self

    def close(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None
        if self._fileobj is not None:
            self._fileobj.close()
            self._fileobj = None

    def __enter__(self) -> PayloadReader:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[PayloadEntry]:
        if self._tar is None:
            self.open()
        tar = self._tar
        if tar is None:
            raise ValueError(f"PayloadReader for {self._path} is not open")
        try:
            for info in tar:
                stream = tar.extractfile(info) if info.type in REGULAR_TYPES else None
                yield PayloadEntry(info=info, stream=stream)
        except tarfile.ReadError as e:
            raise CorruptedArchiveError(f"Truncated payload tar {self._path}: {e}") from e


class PayloadExtractor:
    """Copies a container's payload out and decompresses it."""

    def __init__(self, codec: Codec | None = None) -> None:
        self._codec = codec or default_codec()

    def extract(self, archive: Archive, work_dir: Path) -> Path:
        """Unpack ``install.tar.xz`` into ``work_dir`` and return the tar path."""
        work_dir = Path(work_dir)
        if archive.find_entry(PAYLOAD_ENTRY) is None:
            raise CorruptedArchiveError(f"{archive.id}: missing {PAYLOAD_ENTRY}")
        compressed = archive.extract_entry(PAYLOAD_ENTRY, work_dir)
        tar_path = self._codec.decompress(compressed, keep_original=False)
        logger.debug("Decompressed payload of %s to %s", archive.id, tar_path)
        return tar_path
