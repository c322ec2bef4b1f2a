"""libeopkg: read, verify and delta-package ``.eopkg`` software containers.

  - Lazy, cached access to metadata.xml and files.xml inside the zip container
  - Attribute-exact manifest diffing between two releases
  - Delta packages holding only the changed payload members
  - Byte- and attribute-level verification of an installed tree
"""

__version__ = "0.1.0"
__description__ = "Reader, verifier and delta producer for eopkg packages"

from libeopkg.core.archive import Archive
from libeopkg.core.delta import DeltaProducer, compute_delta_name
from libeopkg.core.differ import diff_manifests
from libeopkg.core.errors import (
    CorruptedArchiveError,
    DeltaPointlessError,
    EopkgError,
    MismatchedDeltaError,
    VerificationMismatchError,
)
from libeopkg.core.verifier import verify_file, verify_manifest

__all__ = [
    "Archive",
    "DeltaProducer",
    "compute_delta_name",
    "diff_manifests",
    "verify_file",
    "verify_manifest",
    "EopkgError",
    "CorruptedArchiveError",
    "MismatchedDeltaError",
    "DeltaPointlessError",
    "VerificationMismatchError",
    "__version__",
]
