"""File manifest models (the contents of ``files.xml``)."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator


class FileType(str, Enum):
    """Type tags eopkg writes into the manifest.

    These are descriptive only. Whether an entry is a directory is decided
    by an empty hash, not by this tag.
    """

    CONFIG = "config"
    DATA = "data"
    DOC = "doc"
    EXECUTABLE = "executable"
    HEADER = "header"
    INFO = "info"
    LIBRARY = "library"
    LOCALE = "localedata"
    MAN = "man"


class FileEntry(BaseModel):
    """One ``<File>`` record.

    Two entries are attribute-equal when every field matches, which is
    exactly model equality.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    type: str = ""
    size: int = 0
    uid: int = 0
    gid: int = 0
    mode: int = 0
    hash: str = ""  # empty for directories
    permanent: str = ""

    @property
    def is_dir(self) -> bool:
        return self.hash == ""

    @property
    def permissions(self) -> int:
        """Permission bits, including setuid/setgid/sticky."""
        return self.mode & 0o7777


class FileManifest(BaseModel):
    """An ordered, path-unique collection of file entries."""

    model_config = ConfigDict(frozen=True)

    files: tuple[FileEntry, ...] = ()

    @model_validator(mode="after")
    def _paths_unique(self) -> FileManifest:
        seen: set[str] = set()
        for entry in self.files:
            if entry.path in seen:
                raise ValueError(f"Duplicate path in manifest: {entry.path}")
            seen.add(entry.path)
        return self

    @classmethod
    def of(cls, entries: Iterable[FileEntry]) -> FileManifest:
        return cls(files=tuple(entries))

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self) -> Iterator[FileEntry]:  # type: ignore[override]
        return iter(self.files)

    def has_file(self, path: str) -> bool:
        return any(f.path == path for f in self.files)

    def get(self, path: str) -> FileEntry | None:
        for f in self.files:
            if f.path == path:
                return f
        return None

    def paths(self) -> list[str]:
        return [f.path for f in self.files]


class DiffResult(BaseModel):
    """Outcome of comparing an older manifest against a newer one.

    ``changed`` holds new or modified entries from the newer manifest;
    ``removed`` holds older entries whose path no longer exists.
    """

    model_config = ConfigDict(frozen=True)

    changed: FileManifest = FileManifest()
    removed: FileManifest = FileManifest()

    @property
    def is_empty(self) -> bool:
        return len(self.changed) == 0 and len(self.removed) == 0
