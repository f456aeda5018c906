"""Comparison of generated file sets against the last published snapshot."""

from __future__ import annotations

from typing import Optional

from ..models import GeneratedFileSet, SnapshotDelta


class SnapshotDiffer:
    """Decides whether a newly generated file set needs publishing."""

    def compute(
        self,
        current: GeneratedFileSet,
        previous: Optional[GeneratedFileSet],
    ) -> SnapshotDelta:
        if previous is None:
            return SnapshotDelta(added=tuple(current.files))

        added = []
        modified = []
        unchanged = 0
        for path, content in current.files.items():
            if path not in previous.files:
                added.append(path)
            elif previous.files[path] != content:
                modified.append(path)
            else:
                unchanged += 1
        removed = [path for path in previous.files if path not in current.files]
        return SnapshotDelta(
            added=tuple(added),
            modified=tuple(modified),
            removed=tuple(sorted(removed)),
            unchanged=unchanged,
        )


__all__ = ["SnapshotDiffer"]
