"""libeopkg data models: all Pydantic v2, all frozen (immutable)."""

from libeopkg.models.files import DiffResult, FileEntry, FileManifest, FileType
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
    sort_by_release,
)

__all__ = [
    # files
    "FileType",
    "FileEntry",
    "FileManifest",
    "DiffResult",
    # metadata
    "LocalisedField",
    "Packager",
    "Source",
    "Dependency",
    "Action",
    "Update",
    "COMAR",
    "Provides",
    "Delta",
    "MetaPackage",
    "Metadata",
    "sort_by_release",
]
