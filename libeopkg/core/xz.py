"""Compression collaborator for the ``install.tar.xz`` payload.

The rest of the library depends only on the ``Codec`` protocol:
``compress(path) -> path + ".xz"`` and ``decompress(path + ".xz") -> path``,
each optionally keeping its input. ``XzCodec`` shells out to the xz tools
and blocks until they exit; ``LzmaCodec`` does the same work in-process.
"""

from __future__ import annotations

import logging
import lzma
import shutil
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

from libeopkg.config import settings

logger = logging.getLogger(__name__)

XZ_SUFFIX = ".xz"


class CodecError(OSError):
    """Raised when the compressor or decompressor fails."""


@runtime_checkable
class Codec(Protocol):
    """Narrow synchronous compression contract."""

    def compress(self, path: Path, keep_original: bool = False) -> Path: ...

    def decompress(self, path: Path, keep_original: bool = False) -> Path: ...


def _strip_suffix(path: Path) -> Path:
    if path.suffix != XZ_SUFFIX:
        raise CodecError(f"Not an .xz file: {path}")
    return path.with_suffix("")


class XzCodec:
    """Runs the external ``xz``/``unxz`` binaries.

    There is no timeout: a hung subprocess blocks the caller.
    """

    def __init__(
        self,
        *,
        level: int | None = None,
        threads: int | None = None,
        xz_binary: str | None = None,
        unxz_binary: str | None = None,
    ) -> None:
        self._level = settings.xz_level if level is None else level
        self._threads = settings.xz_threads if threads is None else threads
        self._xz = xz_binary or settings.xz_binary
        self._unxz = unxz_binary or settings.unxz_binary

    def _run(self, cmd: list[str]) -> None:
        logger.debug("Running %s", " ".join(cmd))
        try:
            res = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise CodecError(f"Codec binary not found: {cmd[0]}") from e
        if res.returncode != 0:
            raise CodecError(
                f"{cmd[0]} exited with status {res.returncode}: {res.stderr.strip()}"
            )

    def compress(self, path: Path, keep_original: bool = False) -> Path:
        path = Path(path)
        cmd = [self._xz, f"-{self._level}", "-T", str(self._threads), str(path)]
        if keep_original:
            cmd.append("-k")
        self._run(cmd)
        return path.with_name(path.name + XZ_SUFFIX)

    def decompress(self, path: Path, keep_original: bool = False) -> Path:
        path = Path(path)
        out = _strip_suffix(path)
        cmd = [self._unxz, "-T", str(self._threads), str(path)]
        if keep_original:
            cmd.append("-k")
        self._run(cmd)
        return out


class LzmaCodec:
    """In-process codec using the ``lzma`` module, same file semantics."""

    def __init__(self, *, level: int | None = None) -> None:
        self._level = settings.xz_level if level is None else level

    def compress(self, path: Path, keep_original: bool = False) -> Path:
        path = Path(path)
        out = path.with_name(path.name + XZ_SUFFIX)
        try:
            with path.open("rb") as src, lzma.open(
                out, "wb", format=lzma.FORMAT_XZ, preset=self._level
            ) as dst:
                shutil.copyfileobj(src, dst)
        except lzma.LZMAError as e:
            out.unlink(missing_ok=True)
            raise CodecError(f"Failed to compress {path}: {e}") from e
        if not keep_original:
            path.unlink()
        return out

    def decompress(self, path: Path, keep_original: bool = False) -> Path:
        path = Path(path)
        out = _strip_suffix(path)
        try:
            with lzma.open(path, "rb") as src, out.open("wb") as dst:
                shutil.copyfileobj(src, dst)
        except (lzma.LZMAError, EOFError) as e:
            out.unlink(missing_ok=True)
            raise CodecError(f"Failed to decompress {path}: {e}") from e
        if not keep_original:
            path.unlink()
        return out


def default_codec() -> Codec:
    """The codec used when callers do not inject one."""
    return XzCodec()
