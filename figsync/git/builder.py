"""Materializes a generated file set as a commit on a fresh branch.

Concurrency notes
-----------------
Resolving the base head and creating the branch ref are the two points where
concurrent publishes can interleave. Each publish writes its own commit and a
branch whose name is unique per publish, and no existing ref is ever updated
or force-pushed. Two concurrent runs therefore yield two independent branches
rather than one corrupted one. A run abandoned before the ref exists leaves
only unreferenced blobs, trees and commits behind, which need no cleanup.
Callers that want one publish at a time per document serialize above this
layer (see ``publish.concurrency``).
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..errors import BaseBranchMoved, BaseBranchNotFound, BranchNameCollision, HostError
from ..logging import get_logger
from ..models import GeneratedFileSet, SnapshotDelta, TreeEntry, VCObjectGraph
from .host import VersionControlHost, git_blob_sha

_SLUG_PATTERN = re.compile(r"[^A-Za-z0-9]+")


class SnapshotBuilder:
    """Builds blobs, one tree and one commit layered on the live base head."""

    MAX_BRANCH_ATTEMPTS = 5

    def __init__(
        self,
        host: VersionControlHost,
        *,
        branch_prefix: str = "figsync",
        commit_message: str = "chore(design): sync generated files",
        blob_workers: int = 1,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.host = host
        self.branch_prefix = branch_prefix.strip().strip("/") or "figsync"
        self.commit_message = commit_message
        self.blob_workers = max(1, blob_workers)
        self._clock = clock or (lambda: datetime.now(UTC))
        self.logger = get_logger("git.builder")

    def build(
        self,
        document_id: str,
        files: GeneratedFileSet,
        delta: SnapshotDelta,
        base_branch: str,
    ) -> Optional[VCObjectGraph]:
        """Publish ``files`` as a new branch; ``None`` when the base already matches."""
        head = self.host.branch_head(base_branch)
        base_tree = self.host.commit_tree(head)
        existing = self.host.read_tree(base_tree)
        self.logger.debug("Base %s resolved to %s (tree %s)", base_branch, head[:12], base_tree[:12])

        to_write = self._paths_to_write(files.files, existing)
        removed = self._paths_to_remove(delta.removed, files.files, existing)
        if not to_write and not removed:
            self.logger.info("Base branch %s already contains the generated files", base_branch)
            return None

        blobs = self._write_blobs({path: files.files[path] for path in to_write})
        entries: List[TreeEntry] = [
            TreeEntry(path=path, sha=sha, mode=_mode_for(path, existing))
            for path, sha in sorted(blobs.items())
        ]
        entries.extend(TreeEntry(path=path, sha=None) for path in removed)
        tree = self.host.write_tree(base_tree, entries)

        message = (
            f"{self.commit_message}\n\n"
            f"Design document: {document_id}\n"
            f"Snapshot: {files.provenance}\n"
        )
        commit = self.host.write_commit(message, tree, [head])
        branch = self._create_branch(document_id, files.provenance, commit)
        self.logger.info(
            "Created branch %s at %s (%d blobs, %d removals)", branch, commit[:12], len(blobs), len(removed)
        )

        graph = VCObjectGraph(
            parent=head,
            base_tree=base_tree,
            blobs=blobs,
            removed=tuple(removed),
            tree=tree,
            commit=commit,
            branch=branch,
        )
        graph.conflict = self._detect_base_move(base_branch, head)
        return graph

    def branch_pattern(self, document_id: str) -> str:
        """Prefix shared by every branch this builder creates for a document."""
        return f"{self.branch_prefix}/{document_slug(document_id)}-"

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def _paths_to_write(
        files: Mapping[str, str], existing: Optional[Mapping[str, TreeEntry]]
    ) -> List[str]:
        if existing is None:
            return list(files)
        paths = []
        for path, content in files.items():
            entry = existing.get(path)
            if entry is None or entry.sha != git_blob_sha(content):
                paths.append(path)
        return paths

    @staticmethod
    def _paths_to_remove(
        removed: Sequence[str],
        files: Mapping[str, str],
        existing: Optional[Mapping[str, TreeEntry]],
    ) -> List[str]:
        candidates = [path for path in removed if path not in files]
        if existing is None:
            return sorted(candidates)
        return sorted(path for path in candidates if path in existing)

    def _write_blobs(self, contents: Mapping[str, str]) -> Dict[str, str]:
        paths = sorted(contents)
        if self.blob_workers == 1 or len(paths) <= 1:
            shas = [self.host.write_blob(contents[path]) for path in paths]
        else:
            with ThreadPoolExecutor(
                max_workers=self.blob_workers, thread_name_prefix="figsync-blob"
            ) as executor:
                shas = list(executor.map(lambda path: self.host.write_blob(contents[path]), paths))
        return dict(zip(paths, shas))

    def _create_branch(self, document_id: str, provenance: str, commit: str) -> str:
        timestamp = self._clock().strftime("%Y%m%d%H%M%S")
        base_name = f"{self.branch_pattern(document_id)}{timestamp}-{provenance[:8]}"
        for attempt in range(self.MAX_BRANCH_ATTEMPTS):
            candidate = base_name if attempt == 0 else f"{base_name}-{attempt + 1}"
            try:
                self.host.create_branch(candidate, commit)
            except BranchNameCollision:
                if self._points_at(candidate, commit):
                    return candidate
                self.logger.debug("Branch %s already exists; trying another name", candidate)
                continue
            return candidate
        raise BranchNameCollision(base_name)

    def _points_at(self, branch: str, commit: str) -> bool:
        try:
            return self.host.branch_head(branch) == commit
        except BaseBranchNotFound:
            return False

    def _detect_base_move(self, base_branch: str, resolved: str) -> Optional[BaseBranchMoved]:
        try:
            current = self.host.branch_head(base_branch)
        except HostError as exc:
            self.logger.warning("Could not re-read %s after publishing: %s", base_branch, exc)
            return None
        if current == resolved:
            return None
        conflict = BaseBranchMoved(base_branch, resolved, current)
        self.logger.warning("%s; the new branch is based on the earlier head", conflict)
        return conflict


def document_slug(document_id: str) -> str:
    slug = _SLUG_PATTERN.sub("-", document_id).strip("-")
    return slug or "document"


def _mode_for(path: str, existing: Optional[Mapping[str, TreeEntry]]) -> str:
    if existing is not None:
        entry = existing.get(path)
        if entry is not None and entry.type == "blob":
            return entry.mode
    return "100644"


__all__ = ["SnapshotBuilder", "document_slug"]
