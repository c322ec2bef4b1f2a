"""Shared test fixtures for libeopkg.

Packages are assembled from plain member specs::

    {"path": "usr/bin/nano", "data": b"...", "mode": 0o755}
    {"path": "usr/bin", "dir": True}
    {"path": "usr/bin/rnano", "link": "nano"}

Optional keys: ``mode``, ``uid``, ``gid``, ``mtime``, ``type`` (manifest
type tag), ``entry`` (overrides applied to the manifest record only) and
``manifest`` (False to leave the member out of files.xml).
"""

from __future__ import annotations

import hashlib
import io
import lzma
import tarfile
import zipfile
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from libeopkg.core.xml_codec import files_to_xml, metadata_to_xml
from libeopkg.core.xz import LzmaCodec
from libeopkg.models.files import FileEntry, FileManifest
from libeopkg.models.metadata import (
    LocalisedField,
    Metadata,
    MetaPackage,
    Packager,
    Source,
    Update,
)

MTIME = 1_600_000_000

MemberSpec = dict[str, Any]


def _tar_member(member: MemberSpec, uid: int, gid: int) -> tuple[tarfile.TarInfo, bytes | None]:
    info = tarfile.TarInfo(member["path"])
    info.uid = member.get("uid", uid)
    info.gid = member.get("gid", gid)
    info.mtime = member.get("mtime", MTIME)
    data = None
    if "link" in member:
        info.type = tarfile.SYMTYPE
        info.linkname = member["link"]
        info.mode = 0o777
    elif member.get("dir"):
        info.type = tarfile.DIRTYPE
        info.mode = member.get("mode", 0o755)
    else:
        data = member.get("data", b"")
        info.size = len(data)
        info.mode = member.get("mode", 0o644)
    return info, data


def _file_entry(member: MemberSpec, uid: int, gid: int) -> FileEntry:
    if "link" in member:
        target = member["link"].encode()
        size, digest, mode = len(target), hashlib.sha1(target).hexdigest(), 0o777
    elif member.get("dir"):
        size, digest, mode = 0, "", member.get("mode", 0o755)
    else:
        data = member.get("data", b"")
        size, digest, mode = len(data), hashlib.sha1(data).hexdigest(), member.get("mode", 0o644)
    entry = FileEntry(
        path=member["path"],
        type=member.get("type", "data"),
        size=size,
        uid=member.get("uid", uid),
        gid=member.get("gid", gid),
        mode=mode,
        hash=digest,
    )
    if "entry" in member:
        entry = entry.model_copy(update=member["entry"])
    return entry


def build_payload(members: Iterable[MemberSpec], uid: int = 0, gid: int = 0) -> bytes:
    """Plain (uncompressed) tar bytes for the given member specs."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for member in members:
            info, data = _tar_member(member, uid, gid)
            tar.addfile(info, io.BytesIO(data) if data is not None else None)
    return buf.getvalue()


def build_manifest(members: Iterable[MemberSpec], uid: int = 0, gid: int = 0) -> FileManifest:
    return FileManifest.of(
        _file_entry(member, uid, gid) for member in members if member.get("manifest", True)
    )


def build_metadata(
    name: str = "nano",
    release: int = 1,
    version: str = "1.0",
    distribution_release: str = "1",
    architecture: str = "x86_64",
) -> Metadata:
    source = Source(name=name, packager=Packager(name="Test Packager", email="test@example.com"))
    return Metadata(
        source=source,
        package=MetaPackage(
            name=name,
            summary=[LocalisedField(value="A test package", lang="en")],
            description=[LocalisedField(value="A package built by the test suite", lang="en")],
            license=["GPL-3.0-or-later"],
            history=[Update(release=release, version=version, date="2020-09-13")],
            distribution="Solus",
            distribution_release=distribution_release,
            architecture=architecture,
            source=source,
        ),
    )


@pytest.fixture
def codec() -> LzmaCodec:
    """In-process xz codec, so tests do not depend on the xz binary."""
    return LzmaCodec(level=1)


@pytest.fixture
def make_package(tmp_path: Path) -> Callable[..., Path]:
    """Factory fixture: write an .eopkg container and return its path.

    Any of ``metadata``, ``files`` and ``payload`` may be passed as raw
    bytes to replace the generated entry, or as None to omit it.
    """

    counter = iter(range(1_000_000))

    def _factory(
        members: Iterable[MemberSpec] = (),
        *,
        filename: str | None = None,
        name: str = "nano",
        release: int = 1,
        version: str = "1.0",
        distribution_release: str = "1",
        architecture: str = "x86_64",
        uid: int = 0,
        gid: int = 0,
        extra_entries: dict[str, bytes] | None = None,
        **overrides: Any,
    ) -> Path:
        members = list(members)
        entries: dict[str, bytes | None] = {
            "metadata.xml": metadata_to_xml(
                build_metadata(name, release, version, distribution_release, architecture)
            ),
            "files.xml": files_to_xml(build_manifest(members, uid, gid)),
        }
        for entry_name, data in (extra_entries or {}).items():
            entries[entry_name] = data
        entries["install.tar.xz"] = lzma.compress(
            build_payload(members, uid, gid), format=lzma.FORMAT_XZ
        )
        for key in ("metadata", "files", "payload"):
            if key in overrides:
                entry_name = {"metadata": "metadata.xml", "files": "files.xml",
                              "payload": "install.tar.xz"}[key]
                entries[entry_name] = overrides[key]

        out_dir = tmp_path / "packages"
        out_dir.mkdir(exist_ok=True)
        path = out_dir / (filename or f"{name}-{release}-{next(counter)}.eopkg")
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for entry_name, data in entries.items():
                if data is not None:
                    zf.writestr(entry_name, data)
        return path

    return _factory


@pytest.fixture
def base_members() -> list[MemberSpec]:
    """A small nano-like payload shared by the delta tests."""
    return [
        {"path": "usr", "dir": True},
        {"path": "usr/bin", "dir": True},
        {"path": "usr/bin/nano", "data": b"nano binary v1", "mode": 0o755, "type": "executable"},
        {"path": "usr/bin/rnano", "link": "nano"},
        {"path": "usr/share", "dir": True},
        {"path": "usr/share/nano", "dir": True},
        {"path": "usr/share/nano/c.nanorc", "data": b"syntax c\n"},
        {"path": "usr/share/nano/python.nanorc", "data": b"syntax python\n"},
    ]


@pytest.fixture
def make_metadata() -> Callable[..., Metadata]:
    return build_metadata


@pytest.fixture
def make_manifest() -> Callable[..., FileManifest]:
    return build_manifest


@pytest.fixture
def make_payload() -> Callable[..., bytes]:
    return build_payload
