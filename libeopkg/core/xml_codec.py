"""XML codec for ``metadata.xml`` and ``files.xml``.

Parsing maps the eopkg documents onto the frozen models and raises
``CorruptedArchiveError`` for anything malformed, so a failed read never
yields a partial model. Emission produces documents the parser reads back,
keeping "omitted" and "present but empty" sub-lists distinct.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import IO

from libeopkg.config import settings
from libeopkg.core.errors import CorruptedArchiveError
from libeopkg.models.files import FileEntry, FileManifest
from libeopkg.models.metadata import (
    COMAR,
    Action,
    Delta,
    Dependency,
    LocalisedField,
    Metadata,
    MetaPackage,
    Packager,
    Provides,
    Source,
    Update,
)

logger = logging.getLogger(__name__)

XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def parse_mode(raw: str) -> int:
    """Parse a zero-padded octal mode string such as ``0755``.

    Raises ValueError for anything that is not octal or does not fit in
    16 bits.
    """
    text = raw.strip()
    if not re.fullmatch(r"[0-7]+", text):
        raise ValueError(f"not an octal mode: {raw!r}")
    value = int(text, 8)
    if value > 0xFFFF:
        raise ValueError(f"mode out of range: {raw!r}")
    return value


def format_mode(mode: int) -> str:
    """Format a mode as octal with a leading zero on 3 and 4 digit values."""
    raw = format(mode, "o")
    if len(raw) in (3, 4):
        raw = "0" + raw
    return raw


def _text(elem: ET.Element | None, default: str = "") -> str:
    if elem is None or elem.text is None:
        return default
    return elem.text


def _child_text(parent: ET.Element, *tags: str, default: str = "") -> str:
    for tag in tags:
        child = parent.find(tag)
        if child is not None:
            return _text(child, default)
    return default


def _optional_text(parent: ET.Element, tag: str) -> str | None:
    child = parent.find(tag)
    return None if child is None else _text(child)


def _int(raw: str | None, default: int = 0) -> int:
    if raw is None or raw.strip() == "":
        return default
    return int(raw.strip())


def _optional_int(raw: str | None) -> int | None:
    return None if raw is None else int(raw)


def _localised(parent: ET.Element, tag: str) -> list[LocalisedField]:
    return [
        LocalisedField(value=_text(e), lang=e.get(XML_LANG, ""))
        for e in parent.findall(tag)
    ]


def clean_localised(fields: list[LocalisedField], default_lang: str) -> list[LocalisedField]:
    """Strip surrounding whitespace and backfill the first element's language."""
    cleaned = [f.model_copy(update={"value": f.value.strip()}) for f in fields]
    if cleaned and not cleaned[0].lang:
        cleaned[0] = cleaned[0].model_copy(update={"lang": default_lang})
    return cleaned


def _load(source: IO[bytes] | bytes, what: str) -> ET.Element:
    try:
        if isinstance(source, bytes):
            return ET.fromstring(source)
        return ET.parse(source).getroot()
    except ET.ParseError as e:
        raise CorruptedArchiveError(f"Malformed XML in {what}: {e}") from e


# ---------------------------------------------------------------------------
# files.xml
# ---------------------------------------------------------------------------


def _parse_file(elem: ET.Element) -> FileEntry:
    mode_elem = elem.find("Mode")
    mode = 0 if mode_elem is None else parse_mode(_text(mode_elem))
    return FileEntry(
        path=_child_text(elem, "Path"),
        type=_child_text(elem, "Type"),
        size=_int(_child_text(elem, "Size")),
        uid=_int(_child_text(elem, "UID", "Uid")),
        gid=_int(_child_text(elem, "GID", "Gid")),
        mode=mode,
        hash=_child_text(elem, "Hash"),
        permanent=_child_text(elem, "Permanent"),
    )


def parse_files(source: IO[bytes] | bytes) -> FileManifest:
    """Parse a ``files.xml`` document.

    Any malformed record, including a non-octal mode, fails the whole read.
    """
    root = _load(source, "files.xml")
    try:
        entries = [_parse_file(e) for e in root.iter("File")]
        manifest = FileManifest.of(entries)
    except ValueError as e:
        raise CorruptedArchiveError(f"Invalid files.xml: {e}") from e
    logger.debug("Parsed %d file records", len(manifest))
    return manifest


def files_to_xml(manifest: FileManifest) -> bytes:
    """Serialise a manifest to ``files.xml`` bytes."""
    root = ET.Element("Files")
    for f in manifest:
        node = ET.SubElement(root, "File")
        ET.SubElement(node, "Path").text = f.path
        ET.SubElement(node, "Type").text = f.type
        if f.size:
            ET.SubElement(node, "Size").text = str(f.size)
        if f.uid:
            ET.SubElement(node, "UID").text = str(f.uid)
        if f.gid:
            ET.SubElement(node, "GID").text = str(f.gid)
        if f.mode:
            ET.SubElement(node, "Mode").text = format_mode(f.mode)
        if f.hash:
            ET.SubElement(node, "Hash").text = f.hash
        if f.permanent:
            ET.SubElement(node, "Permanent").text = f.permanent
    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


# ---------------------------------------------------------------------------
# metadata.xml
# ---------------------------------------------------------------------------


def _parse_source(elem: ET.Element | None) -> Source:
    if elem is None:
        return Source()
    packager = elem.find("Packager")
    return Source(
        name=_child_text(elem, "Name"),
        homepage=_optional_text(elem, "Homepage"),
        packager=Packager(
            name=_child_text(packager, "Name") if packager is not None else "",
            email=_child_text(packager, "Email") if packager is not None else "",
        ),
    )


def _parse_update(elem: ET.Element) -> Update:
    requires_elem = elem.find("Requires")
    requires = None
    if requires_elem is not None:
        requires = [
            Action(value=_text(a), package=a.get("package"))
            for a in requires_elem.findall("Action")
        ]
    return Update(
        release=int(elem.get("release", "")),
        type=elem.get("type"),
        date=_child_text(elem, "Date"),
        version=_child_text(elem, "Version"),
        comment=_child_text(elem, "Comment"),
        name=_child_text(elem, "Name"),
        email=_child_text(elem, "Email"),
        requires=requires,
    )


def _parse_dependency(elem: ET.Element) -> Dependency:
    return Dependency(
        name=_text(elem).strip(),
        release_from=_optional_int(elem.get("releaseFrom")),
        release_to=_optional_int(elem.get("releaseTo")),
        release=_optional_int(elem.get("release")),
        version_from=elem.get("versionFrom"),
        version_to=elem.get("versionTo"),
        version=elem.get("version"),
    )


def _parse_name_list(parent: ET.Element, tag: str, child: str) -> list[str] | None:
    container = parent.find(tag)
    if container is None:
        return None
    return [_text(e) for e in container.findall(child)]


def _parse_provides(elem: ET.Element | None) -> Provides | None:
    if elem is None:
        return None
    return Provides(
        comar=[COMAR(value=_text(c), script=c.get("script")) for c in elem.findall("COMAR")],
        pkg_config=[_text(p) for p in elem.findall("PkgConfig")],
        pkg_config32=[_text(p) for p in elem.findall("PkgConfig32")],
    )


def _parse_deltas(elem: ET.Element | None) -> list[Delta] | None:
    if elem is None:
        return None
    return [
        Delta(
            release_from=_optional_int(d.get("releaseFrom")),
            package_uri=_child_text(d, "PackageURI"),
            package_size=_int(_child_text(d, "PackageSize")),
            package_hash=_child_text(d, "PackageHash"),
        )
        for d in elem.findall("Delta")
    ]


def _parse_package(elem: ET.Element, default_lang: str) -> MetaPackage:
    deps_elem = elem.find("RuntimeDependencies")
    history_elem = elem.find("History")
    return MetaPackage(
        name=_child_text(elem, "Name").strip(),
        summary=clean_localised(_localised(elem, "Summary"), default_lang),
        description=clean_localised(_localised(elem, "Description"), default_lang),
        is_a=_optional_text(elem, "IsA"),
        part_of=_optional_text(elem, "PartOf"),
        license=[_text(e).strip() for e in elem.findall("License")],
        runtime_dependencies=(
            None if deps_elem is None
            else [_parse_dependency(d) for d in deps_elem.findall("Dependency")]
        ),
        conflicts=_parse_name_list(elem, "Conflicts", "Package"),
        replaces=_parse_name_list(elem, "Replaces", "Package"),
        provides=_parse_provides(elem.find("Provides")),
        history=(
            [] if history_elem is None
            else [_parse_update(u) for u in history_elem.findall("Update")]
        ),
        build_host=_child_text(elem, "BuildHost").strip(),
        distribution=_child_text(elem, "Distribution").strip(),
        distribution_release=_child_text(elem, "DistributionRelease").strip(),
        architecture=_child_text(elem, "Architecture").strip(),
        installed_size=_int(_child_text(elem, "InstalledSize")),
        package_size=_int(_child_text(elem, "PackageSize")),
        package_hash=_child_text(elem, "PackageHash").strip(),
        package_uri=_child_text(elem, "PackageURI").strip(),
        delta_packages=_parse_deltas(elem.find("DeltaPackages")),
        package_format=_child_text(elem, "PackageFormat").strip(),
        source=_parse_source(elem.find("Source")),
    )


def parse_metadata(source: IO[bytes] | bytes, default_lang: str | None = None) -> Metadata:
    """Parse a ``metadata.xml`` document, normalising localised fields."""
    root = _load(source, "metadata.xml")
    package = root.find("Package")
    if package is None:
        raise CorruptedArchiveError("metadata.xml has no <Package> section")
    try:
        return Metadata(
            source=_parse_source(root.find("Source")),
            package=_parse_package(package, default_lang or settings.default_language),
        )
    except ValueError as e:
        raise CorruptedArchiveError(f"Invalid metadata.xml: {e}") from e


def _sub(parent: ET.Element, tag: str, text: str | None) -> ET.Element:
    node = ET.SubElement(parent, tag)
    node.text = text
    return node


def _set_attr(node: ET.Element, key: str, value: object | None) -> None:
    if value is not None:
        node.set(key, str(value))


def _emit_source(parent: ET.Element, source: Source) -> None:
    node = ET.SubElement(parent, "Source")
    _sub(node, "Name", source.name)
    if source.homepage is not None:
        _sub(node, "Homepage", source.homepage)
    packager = ET.SubElement(node, "Packager")
    _sub(packager, "Name", source.packager.name)
    _sub(packager, "Email", source.packager.email)


def _emit_localised(parent: ET.Element, tag: str, fields: list[LocalisedField]) -> None:
    for f in fields:
        node = _sub(parent, tag, f.value)
        if f.lang:
            node.set(XML_LANG, f.lang)


def _emit_package(parent: ET.Element, pkg: MetaPackage) -> None:
    node = ET.SubElement(parent, "Package")
    _sub(node, "Name", pkg.name)
    _emit_localised(node, "Summary", pkg.summary)
    _emit_localised(node, "Description", pkg.description)
    if pkg.is_a is not None:
        _sub(node, "IsA", pkg.is_a)
    if pkg.part_of is not None:
        _sub(node, "PartOf", pkg.part_of)
    for lic in pkg.license:
        _sub(node, "License", lic)
    if pkg.runtime_dependencies is not None:
        deps = ET.SubElement(node, "RuntimeDependencies")
        for dep in pkg.runtime_dependencies:
            d = _sub(deps, "Dependency", dep.name)
            _set_attr(d, "releaseFrom", dep.release_from)
            _set_attr(d, "releaseTo", dep.release_to)
            _set_attr(d, "release", dep.release)
            _set_attr(d, "versionFrom", dep.version_from)
            _set_attr(d, "versionTo", dep.version_to)
            _set_attr(d, "version", dep.version)
    for tag, names in (("Conflicts", pkg.conflicts), ("Replaces", pkg.replaces)):
        if names is not None:
            container = ET.SubElement(node, tag)
            for name in names:
                _sub(container, "Package", name)
    if pkg.provides is not None:
        provides = ET.SubElement(node, "Provides")
        for c in pkg.provides.comar:
            _set_attr(_sub(provides, "COMAR", c.value), "script", c.script)
        for pc in pkg.provides.pkg_config:
            _sub(provides, "PkgConfig", pc)
        for pc in pkg.provides.pkg_config32:
            _sub(provides, "PkgConfig32", pc)
    history = ET.SubElement(node, "History")
    for u in pkg.history:
        update = ET.SubElement(history, "Update", release=str(u.release))
        _set_attr(update, "type", u.type)
        _sub(update, "Date", u.date)
        _sub(update, "Version", u.version)
        _sub(update, "Comment", u.comment)
        _sub(update, "Name", u.name)
        _sub(update, "Email", u.email)
        if u.requires is not None:
            requires = ET.SubElement(update, "Requires")
            for a in u.requires:
                _set_attr(_sub(requires, "Action", a.value), "package", a.package)
    _sub(node, "BuildHost", pkg.build_host)
    _sub(node, "Distribution", pkg.distribution)
    _sub(node, "DistributionRelease", pkg.distribution_release)
    _sub(node, "Architecture", pkg.architecture)
    _sub(node, "InstalledSize", str(pkg.installed_size))
    _sub(node, "PackageSize", str(pkg.package_size))
    _sub(node, "PackageHash", pkg.package_hash)
    _sub(node, "PackageURI", pkg.package_uri)
    if pkg.delta_packages is not None:
        deltas = ET.SubElement(node, "DeltaPackages")
        for delta in pkg.delta_packages:
            d = ET.SubElement(deltas, "Delta")
            _set_attr(d, "releaseFrom", delta.release_from)
            _sub(d, "PackageURI", delta.package_uri)
            _sub(d, "PackageSize", str(delta.package_size))
            _sub(d, "PackageHash", delta.package_hash)
    _sub(node, "PackageFormat", pkg.package_format)
    _emit_source(node, pkg.source)


def metadata_to_xml(metadata: Metadata) -> bytes:
    """Serialise a descriptor to ``metadata.xml`` bytes."""
    root = ET.Element("PISI")
    _emit_source(root, metadata.source)
    _emit_package(root, metadata.package)
    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)
