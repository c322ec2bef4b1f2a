"""File manifest differ.

Computes the edit that turns an older manifest into a newer one. Matching
is by full attribute equality rather than by content hash alone, so an
ownership or permission change on otherwise identical content is still
reported. Directories get no special treatment.
"""

from __future__ import annotations

from libeopkg.models.files import DiffResult, FileEntry, FileManifest


def diff_manifests(left: FileManifest, right: FileManifest) -> DiffResult:
    """Compare ``left`` (older) against ``right`` (newer).

    1. Each left entry whose path is gone from ``right`` is removed; each
       left entry whose path survives with different attributes contributes
       the right-side entry to ``changed``.
    2. Each right entry with no attribute-equal counterpart anywhere in
       ``left`` is changed. This catches new paths and moved content.

    ``changed`` is path-unique and ordered as in ``right``; ``removed`` is
    ordered as in ``left``.
    """
    right_by_path = {f.path: f for f in right}
    left_entries = set(left)

    modified: set[str] = set()
    removed: list[FileEntry] = []
    for curr in left:
        nxt = right_by_path.get(curr.path)
        if nxt is None:
            removed.append(curr)
        elif nxt != curr:
            modified.add(nxt.path)

    changed = [
        nxt for nxt in right
        if nxt.path in modified or nxt not in left_entries
    ]
    return DiffResult(
        changed=FileManifest.of(changed),
        removed=FileManifest.of(removed),
    )
