"""Package descriptor models (the contents of ``metadata.xml``).

Optional sub-lists use ``None`` for "element omitted from the document" and
``[]`` for "element present with no children", so re-emission preserves
the original shape.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field


class LocalisedField(BaseModel):
    """A text value tagged with an ``xml:lang`` attribute."""

    model_config = ConfigDict(frozen=True)

    value: str = ""
    lang: str = ""


class Packager(BaseModel):
    """The person who last touched the source package."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    email: str = ""


class Source(BaseModel):
    """The source package one or more binary packages are built from."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    homepage: str | None = None
    packager: Packager = Packager()


class Dependency(BaseModel):
    """A runtime dependency with optional release or version constraints."""

    model_config = ConfigDict(frozen=True)

    name: str
    release_from: int | None = None
    release_to: int | None = None
    release: int | None = None
    version_from: str | None = None
    version_to: str | None = None
    version: str | None = None


class Action(BaseModel):
    """An action required when applying an update, e.g. a reboot."""

    model_config = ConfigDict(frozen=True)

    value: str
    package: str | None = None


class Update(BaseModel):
    """One release in the package history. ``history[0]`` is the newest."""

    model_config = ConfigDict(frozen=True)

    release: int
    type: str | None = None
    date: str = ""
    version: str = ""
    comment: str = ""
    name: str = ""
    email: str = ""
    requires: list[Action] | None = None


class COMAR(BaseModel):
    """A COMAR script reference."""

    model_config = ConfigDict(frozen=True)

    value: str
    script: str | None = None


class Provides(BaseModel):
    """Items exported by a package besides its files."""

    model_config = ConfigDict(frozen=True)

    comar: list[COMAR] = []
    pkg_config: list[str] = []
    pkg_config32: list[str] = []


class Delta(BaseModel):
    """A delta package advertised for upgrades from ``release_from``."""

    model_config = ConfigDict(frozen=True)

    release_from: int | None = None
    package_uri: str = ""
    package_size: int = 0
    package_hash: str = ""


class MetaPackage(BaseModel):
    """The ``<Package>`` section of the descriptor."""

    model_config = ConfigDict(frozen=True)

    name: str
    summary: list[LocalisedField] = []
    description: list[LocalisedField] = []
    is_a: str | None = None
    part_of: str | None = None
    license: list[str] = []
    runtime_dependencies: list[Dependency] | None = None
    conflicts: list[str] | None = None
    replaces: list[str] | None = None
    provides: Provides | None = None
    history: list[Update] = Field(min_length=1)
    build_host: str = ""
    distribution: str = ""
    distribution_release: str = ""
    architecture: str = ""
    installed_size: int = 0
    package_size: int = 0
    package_hash: str = ""
    package_uri: str = ""
    delta_packages: list[Delta] | None = None
    package_format: str = ""
    source: Source = Source()

    @property
    def release(self) -> int:
        """The current release, taken from the newest history entry."""
        return self.history[0].release

    @property
    def version(self) -> str:
        """The current version, taken from the newest history entry."""
        return self.history[0].version

    @property
    def id(self) -> str:
        return posixpath.basename(self.package_uri)

    @property
    def path_component(self) -> str:
        """Repository subdirectory for this package's source.

        Sources starting with ``lib`` and longer than three characters are
        split on the first four letters (``libr/libreoffice``); everything
        else on its first letter (``n/nano``).
        """
        name = self.source.name.lower()
        if name.startswith("lib") and len(name) > 3:
            return posixpath.join(name[:4], name)
        return posixpath.join(name[:1], name)

    def is_delta_possible(self, newer: MetaPackage) -> bool:
        """Whether a delta from this package to ``newer`` is legal.

        The distribution *name* is deliberately not compared; only the
        distribution release participates in the lineage check.
        """
        return (
            self.release < newer.release
            and self.name == newer.name
            and self.distribution_release == newer.distribution_release
            and self.architecture == newer.architecture
        )

    def delta_name(self, new_release: int) -> str:
        """File name stem of a delta from this release to ``new_release``."""
        return "-".join([
            self.name,
            str(self.release),
            str(new_release),
            self.distribution_release,
            self.architecture,
        ])


class Metadata(BaseModel):
    """The full ``metadata.xml`` document."""

    model_config = ConfigDict(frozen=True)

    source: Source = Source()
    package: MetaPackage


def sort_by_release(packages: Iterable[MetaPackage]) -> list[MetaPackage]:
    """Order packages oldest release first."""
    return sorted(packages, key=lambda p: p.release)
