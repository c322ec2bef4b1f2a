"""Exception taxonomy for archive access, delta creation and verification.

Filesystem and subprocess failures are not wrapped: they surface as the
builtin ``OSError`` family so callers can apply their own retry policy.
"""

from __future__ import annotations

from typing import Any


class EopkgError(RuntimeError):
    """Base class for all library errors."""


class CorruptedArchiveError(EopkgError):
    """Raised when a mandatory container entry is missing or fails to parse."""


class MismatchedDeltaError(EopkgError):
    """Raised when two packages are not from a comparable release lineage."""


class DeltaPointlessError(EopkgError):
    """Raised when the file sets are identical and a delta would be empty."""


class VerificationMismatchError(EopkgError):
    """Raised when an installed file diverges from its manifest record.

    Parameters
    ----------
    path:
        Manifest-relative path of the failing entry.
    field:
        One of ``size``, ``mode``, ``uid``, ``gid`` or ``hash``.
    expected:
        Value recorded in the manifest.
    actual:
        Value observed on disk.
    """

    def __init__(self, path: str, field: str, expected: Any, actual: Any) -> None:
        self.path = path
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"'{path}' {field} mismatch: expected {expected!r}, found {actual!r}"
        )
