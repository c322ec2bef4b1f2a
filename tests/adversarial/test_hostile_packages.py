"""Adversarial tests: malformed or hostile containers are rejected.

These tests verify that:
1. Payload members cannot escape the unpack root, by name or through links
2. Truncated or non-xz payloads fail loudly
3. Malformed descriptors never produce partial models
4. A failed delta leaves no output behind
"""

from __future__ import annotations

import io
import lzma
import stat
import tarfile

import pytest

from libeopkg.core.archive import Archive
from libeopkg.core.delta import DeltaProducer
from libeopkg.core.errors import CorruptedArchiveError, EopkgError
from libeopkg.core.xz import CodecError


def _xz(data: bytes) -> bytes:
    return lzma.compress(data, format=lzma.FORMAT_XZ)


def _append_hard_link(raw: bytes, name: str, target: str) -> bytes:
    """Re-tar ``raw`` with a trailing hard-link member."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=io.BytesIO(raw)) as src, tarfile.open(
        fileobj=buf, mode="w", format=tarfile.PAX_FORMAT
    ) as out:
        for info in src.getmembers():
            out.addfile(info, src.extractfile(info) if info.isreg() else None)
        link = tarfile.TarInfo(name)
        link.type = tarfile.LNKTYPE
        link.linkname = target
        out.addfile(link)
    return buf.getvalue()


class TestPayloadEscape:
    """Members naming paths outside the root must be refused."""

    def test_dotdot_member(self, make_package, make_payload, tmp_path, codec):
        payload = _xz(make_payload([{"path": "../escaped", "data": b"pwned"}]))
        root = tmp_path / "inner" / "root"
        with Archive.open(make_package(payload=payload)) as archive:
            with pytest.raises(CorruptedArchiveError, match="escapes"):
                archive.unpack(tmp_path / "m", root, codec=codec, preserve_ownership=False)
        assert not (tmp_path / "inner" / "escaped").exists()
        assert not (root / "install.tar").exists()

    def test_nested_dotdot_member(self, make_package, make_payload, tmp_path, codec):
        payload = _xz(make_payload([{"path": "usr/../../etc/passwd", "data": b"x"}]))
        with Archive.open(make_package(payload=payload)) as archive:
            with pytest.raises(CorruptedArchiveError):
                archive.unpack(tmp_path / "m", tmp_path / "root", codec=codec,
                               preserve_ownership=False)

    def test_absolute_member_stays_inside(self, make_package, make_payload, tmp_path, codec):
        payload = _xz(make_payload([{"path": "/etc/evil.conf", "data": b"x"}]))
        root = tmp_path / "root"
        with Archive.open(make_package(payload=payload)) as archive:
            archive.unpack(tmp_path / "m", root, codec=codec, preserve_ownership=False)
        assert (root / "etc/evil.conf").read_bytes() == b"x"

    def test_file_through_symlinked_dir(self, make_package, make_payload, tmp_path, codec):
        outside = tmp_path / "outside"
        outside.mkdir()
        payload = _xz(make_payload([
            {"path": "evil", "link": str(outside)},
            {"path": "evil/pwned", "data": b"x"},
        ]))
        with Archive.open(make_package(payload=payload)) as archive:
            with pytest.raises(CorruptedArchiveError, match="escapes"):
                archive.unpack(tmp_path / "m", tmp_path / "root", codec=codec,
                               preserve_ownership=False)
        assert not (outside / "pwned").exists()

    def test_relative_symlink_chain(self, make_package, make_payload, tmp_path, codec):
        (tmp_path / "outside").mkdir()
        payload = _xz(make_payload([
            {"path": "a", "link": "../outside"},
            {"path": "a/b/pwned", "data": b"x"},
        ]))
        with Archive.open(make_package(payload=payload)) as archive:
            with pytest.raises(CorruptedArchiveError):
                archive.unpack(tmp_path / "m", tmp_path / "root", codec=codec,
                               preserve_ownership=False)
        assert not (tmp_path / "outside" / "b").exists()

    def test_hard_link_through_symlink(self, make_package, make_payload, tmp_path, codec):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret").write_bytes(b"secret")
        raw = make_payload([{"path": "evil", "link": str(outside)}])
        payload = _xz(_append_hard_link(raw, "stolen", "evil/secret"))
        with Archive.open(make_package(payload=payload)) as archive:
            with pytest.raises(CorruptedArchiveError, match="escapes"):
                archive.unpack(tmp_path / "m", tmp_path / "root", codec=codec,
                               preserve_ownership=False)
        assert (outside / "secret").stat().st_nlink == 1

    def test_file_replaces_earlier_symlink(self, make_package, make_payload, tmp_path, codec):
        victim = tmp_path / "victim"
        victim.write_bytes(b"keep")
        root = tmp_path / "root"
        payload = _xz(make_payload([
            {"path": "target", "link": str(victim)},
            {"path": "target", "data": b"overwritten", "mode": 0o600},
        ]))
        with Archive.open(make_package(payload=payload)) as archive:
            archive.unpack(tmp_path / "m", root, codec=codec, preserve_ownership=False)
        assert victim.read_bytes() == b"keep"
        assert not (root / "target").is_symlink()
        assert (root / "target").read_bytes() == b"overwritten"

    def test_dir_replaces_earlier_symlink(self, make_package, make_payload, tmp_path, codec):
        outside = tmp_path / "outside"
        outside.mkdir()
        outside.chmod(0o755)
        root = tmp_path / "root"
        payload = _xz(make_payload([
            {"path": "d", "link": str(outside)},
            {"path": "d", "dir": True, "mode": 0o700},
        ]))
        with Archive.open(make_package(payload=payload)) as archive:
            archive.unpack(tmp_path / "m", root, codec=codec, preserve_ownership=False)
        assert stat.S_IMODE(outside.stat().st_mode) == 0o755
        assert not (root / "d").is_symlink()
        assert stat.S_IMODE((root / "d").stat().st_mode) == 0o700


class TestBrokenPayload:
    def test_truncated_body(self, make_package, make_payload, tmp_path, codec):
        raw = make_payload([{"path": "big", "data": b"A" * 4096}])
        payload = _xz(raw[:512 + 1000])
        with Archive.open(make_package(payload=payload)) as archive:
            with pytest.raises(CorruptedArchiveError):
                archive.unpack(tmp_path / "m", tmp_path / "root", codec=codec,
                               preserve_ownership=False)

    def test_payload_not_xz(self, make_package, tmp_path, codec):
        with Archive.open(make_package(payload=b"definitely not xz")) as archive:
            with pytest.raises(CodecError):
                archive.unpack(tmp_path / "m", tmp_path / "root", codec=codec)

    def test_payload_not_tar(self, make_package, tmp_path, codec):
        with Archive.open(make_package(payload=_xz(b"\x01" * 100))) as archive:
            with pytest.raises(CorruptedArchiveError):
                archive.unpack(tmp_path / "m", tmp_path / "root", codec=codec)


class TestMalformedDescriptors:
    @pytest.mark.parametrize(
        "files_xml",
        [
            b"",
            b"<Files><File><Path>a</Path></Files>",
            b"<Files><File><Path>a</Path><Mode>rwx</Mode></File></Files>",
            b"<Files><File><Path>a</Path><Mode>1777777</Mode></File></Files>",
            b"<Files><File><Path>a</Path><Size>-x</Size></File></Files>",
            b"<Files><File><Path>a</Path></File><File><Path>a</Path></File></Files>",
        ],
    )
    def test_bad_files_xml(self, make_package, files_xml):
        with Archive.open(make_package(files=files_xml)) as archive:
            with pytest.raises(CorruptedArchiveError):
                archive.read_files()
            assert archive._files is None

    @pytest.mark.parametrize(
        "metadata_xml",
        [
            b"<PISI/>",
            b"<PISI><Package><Name>x</Name></Package></PISI>",
            b"<PISI><Package><Name>x</Name><History><Update release='one'/></History></Package></PISI>",
            b"<PISI><Package><Name>x</Name><History><Update/></History></Package></PISI>",
            b"<PISI><Package><Name>x</Name><History><Update release='1'/></History>"
            b"<InstalledSize>lots</InstalledSize></Package></PISI>",
        ],
    )
    def test_bad_metadata_xml(self, make_package, metadata_xml):
        with Archive.open(make_package(metadata=metadata_xml)) as archive:
            with pytest.raises(CorruptedArchiveError):
                archive.read_metadata()
            assert archive._metadata is None

    def test_all_library_errors_share_a_base(self, make_package):
        with Archive.open(make_package(metadata=b"<PISI/>")) as archive:
            with pytest.raises(EopkgError):
                archive.read_metadata()


class TestDeltaAgainstHostileInput:
    def test_truncated_new_payload_leaves_nothing(
        self, make_package, make_payload, base_members, tmp_path, codec
    ):
        newer = [dict(m) for m in base_members]
        newer[2]["data"] = b"nano binary v2" * 400
        truncated = _xz(make_payload(newer)[:4096])
        old = make_package(base_members, release=1)
        new = make_package(newer, release=2, payload=truncated)
        out_dir = tmp_path / "out"
        with DeltaProducer(old, new, base_dir=tmp_path / "work", output_dir=out_dir,
                           codec=codec) as producer:
            with pytest.raises(CorruptedArchiveError):
                producer.create()
        assert list(out_dir.iterdir()) == []
