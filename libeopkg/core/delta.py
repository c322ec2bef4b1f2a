"""Delta package production.

A delta package carries only the payload members that changed between two
releases of the same package, plus every non-payload container entry of the
newer release copied verbatim.

Design:
- One ``DeltaProducer`` per job, single pass, no retries.
- The producer owns a private working directory and both archive handles;
  ``close()`` removes the directory and closes the handles whatever happened.
- ``create()`` is all-or-nothing: on failure every half-written tar,
  compressed payload and partial output container is deleted before
  re-raising. The finished container is moved into place last, so a delta
  from an earlier run is never touched.
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
import zipfile
from contextlib import suppress
from pathlib import Path

from libeopkg.config import settings
from libeopkg.core.archive import Archive
from libeopkg.core.errors import (
    CorruptedArchiveError,
    DeltaPointlessError,
    MismatchedDeltaError,
)
from libeopkg.core.payload import (
    PAYLOAD_ENTRY,
    PayloadExtractor,
    PayloadReader,
    normalize_member_name,
)
from libeopkg.core.xz import XZ_SUFFIX, Codec, default_codec
from libeopkg.models.files import DiffResult
from libeopkg.models.metadata import MetaPackage

logger = logging.getLogger(__name__)

DELTA_TAR = "delta-eopkg.install.tar"
PART_SUFFIX = ".part"


def compute_delta_name(
    old: MetaPackage, new: MetaPackage, extension: str | None = None
) -> str:
    """``<name>-<old>-<new>-<distRelease>-<arch>.delta.<ext>``.

    Depends only on descriptor fields, so identical inputs always target
    the same file name.
    """
    return f"{old.delta_name(new.release)}.delta.{extension or settings.delta_extension}"


def check_delta_possible(old: MetaPackage, new: MetaPackage) -> None:
    """Raise ``MismatchedDeltaError`` unless ``new`` directly succeeds ``old``."""
    if not old.is_delta_possible(new):
        raise MismatchedDeltaError(
            f"Delta is not possible from {old.name}-{old.release} "
            f"({old.distribution_release}/{old.architecture}) to "
            f"{new.name}-{new.release} "
            f"({new.distribution_release}/{new.architecture})"
        )


class DeltaProducer:
    """Builds a delta package from an older and a newer ``.eopkg``.

    The order of the inputs matters: ``left`` is the installed (older)
    release, ``right`` the one being upgraded to.

    Parameters
    ----------
    left, right:
        Paths of the older and newer containers.
    base_dir:
        Parent of the private working directory. Defaults to
        ``settings.work_dir``.
    output_dir:
        Where the delta is written. Defaults to the working directory, in
        which case the caller must move the result before ``close()``.
    codec:
        Compression collaborator, ``XzCodec`` by default.
    """

    def __init__(
        self,
        left: Path | str,
        right: Path | str,
        *,
        base_dir: Path | None = None,
        output_dir: Path | None = None,
        codec: Codec | None = None,
    ) -> None:
        self._codec = codec or default_codec()
        self._left: Archive | None = None
        self._right: Archive | None = None
        self._work_dir: Path | None = None
        try:
            self._left = Archive.open_all(left)
            self._right = Archive.open_all(right)
            old = self._left.metadata.package
            new = self._right.metadata.package
            check_delta_possible(old, new)

            base = Path(base_dir or settings.work_dir)
            base.mkdir(parents=True, exist_ok=True)
            prefix = f"{old.name}-{old.version}-{old.architecture}-{new.release}-{old.release}-"
            self._work_dir = Path(tempfile.mkdtemp(prefix=prefix, dir=base))
        except BaseException:
            self.close()
            raise
        if output_dir is None:
            logger.warning(
                "No output directory given, the delta will be written to %s "
                "and removed on close()", self._work_dir,
            )
        self._output_dir = Path(output_dir) if output_dir else self._work_dir

    @property
    def work_dir(self) -> Path:
        if self._work_dir is None:
            raise ValueError("DeltaProducer is closed")
        return self._work_dir

    @property
    def left(self) -> Archive:
        if self._left is None:
            raise ValueError("DeltaProducer is closed")
        return self._left

    @property
    def right(self) -> Archive:
        if self._right is None:
            raise ValueError("DeltaProducer is closed")
        return self._right

    def close(self) -> None:
        """Close both archives and remove the working directory."""
        if self._left is not None:
            self._left.close()
            self._left = None
        if self._right is not None:
            self._right.close()
            self._right = None
        if self._work_dir is not None:
            shutil.rmtree(self._work_dir, ignore_errors=True)
            logger.debug("Removed working directory %s", self._work_dir)
            self._work_dir = None

    def __enter__(self) -> DeltaProducer:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def diff(self) -> DiffResult:
        return self.left.diff(self.right)

    def create(self) -> Path:
        """Produce the delta package and return its path.

        Raises
        ------
        DeltaPointlessError
            If no file in the newer release differs from the older one.
        CorruptedArchiveError
            If the newer container has no readable payload.
        """
        result = self.diff()
        if len(result.changed) == 0:
            raise DeltaPointlessError(
                f"File set of {self.right.id} is the same as {self.left.id}, "
                "no point in creating a delta"
            )
        wanted = {normalize_member_name(f.path) for f in result.changed}
        logger.debug(
            "%d changed, %d removed between %s and %s",
            len(result.changed), len(result.removed), self.left.id, self.right.id,
        )

        name = compute_delta_name(self.left.metadata.package, self.right.metadata.package)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        out_path = self._output_dir / name
        part_path = out_path.with_name(out_path.name + PART_SUFFIX)
        tar_path = self.work_dir / DELTA_TAR
        xz_path = tar_path.with_name(tar_path.name + XZ_SUFFIX)
        try:
            source_tar = PayloadExtractor(self._codec).extract(self.right, self.work_dir)
            copied = self._copy_modified(source_tar, tar_path, wanted)
            source_tar.unlink(missing_ok=True)
            xz_path = self._codec.compress(tar_path, keep_original=False)
            self._repackage(part_path, xz_path)
            os.replace(part_path, out_path)
        except BaseException:
            # out_path is only ever written by the final replace
            for leftover in (tar_path, xz_path, part_path):
                with suppress(OSError):
                    leftover.unlink(missing_ok=True)
            raise

        logger.info(
            "Created delta %s with %d of %d payload members",
            out_path, copied, len(self.right.files),
        )
        return out_path

    @staticmethod
    def _copy_modified(source_tar: Path, dest_tar: Path, wanted: set[str]) -> int:
        """Re-tar the members of ``source_tar`` whose names are in ``wanted``.

        Headers are written unchanged. Only regular files carry a body.
        """
        copied = 0
        with PayloadReader(source_tar) as reader, tarfile.open(
            dest_tar, "w", format=tarfile.PAX_FORMAT
        ) as out:
            try:
                for entry in reader:
                    if entry.name not in wanted:
                        continue
                    out.addfile(entry.info, entry.stream if entry.is_regular else None)
                    copied += 1
            except tarfile.ReadError as e:
                raise CorruptedArchiveError(f"Truncated payload tar {source_tar}: {e}") from e
        return copied

    def _repackage(self, out_path: Path, xz_path: Path) -> None:
        """Copy the newer container minus its payload, then add ``xz_path``."""
        payload_info = self.right.find_entry(PAYLOAD_ENTRY)
        compress_type = (
            payload_info.compress_type if payload_info is not None else zipfile.ZIP_STORED
        )
        with zipfile.ZipFile(out_path, "w") as zw:
            for info in self.right.entries():
                if info.filename.startswith("install.tar"):
                    continue
                with self.right.open_entry(info) as src, zw.open(
                    _copy_header(info), "w"
                ) as dst:
                    shutil.copyfileobj(src, dst)

            payload = zipfile.ZipInfo.from_file(xz_path, arcname=PAYLOAD_ENTRY)
            payload.compress_type = compress_type
            with xz_path.open("rb") as src, zw.open(payload, "w") as dst:
                shutil.copyfileobj(src, dst)


def _copy_header(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    """Duplicate the descriptive fields of a zip entry header."""
    header = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    header.compress_type = info.compress_type
    header.comment = info.comment
    header.extra = info.extra
    header.create_system = info.create_system
    header.create_version = info.create_version
    header.extract_version = info.extract_version
    header.internal_attr = info.internal_attr
    header.external_attr = info.external_attr
    header.file_size = info.file_size
    return header
