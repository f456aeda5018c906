"""Change request publishing for synced design snapshots."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import List, Optional, Sequence

from ..errors import HostError
from ..logging import get_logger
from ..models import ChangeRequest, SnapshotDelta, VCObjectGraph
from .host import VersionControlHost


class ChangePublisher:
    """Opens a change request for a published branch.

    With ``update_existing`` enabled an open request created earlier for the
    same document is superseded: the new request links to it and the old one
    is closed with a pointer to its replacement, so each document keeps at
    most one open request. The host cannot retarget a request's head branch
    and published refs are never force-updated, so superseding is how an
    existing request gets "updated".
    """

    def __init__(
        self,
        host: VersionControlHost,
        *,
        labels: Sequence[str] = (),
        update_existing: bool = True,
    ) -> None:
        self.host = host
        self.labels = [label for label in labels if label]
        self.update_existing = update_existing
        self.logger = get_logger("git.publisher")

    def publish(
        self,
        document_id: str,
        graph: VCObjectGraph,
        base_branch: str,
        delta: SnapshotDelta,
        *,
        branch_pattern: str,
        document_name: str = "",
        provenance: str = "",
    ) -> ChangeRequest:
        prior = None
        if self.update_existing:
            prior = self.find_existing(base_branch, branch_pattern, exclude=graph.branch)

        title = self.build_title(delta)
        body = self.build_body(
            document_id,
            graph,
            base_branch,
            delta,
            document_name=document_name,
            provenance=provenance,
            supersedes=prior.number if prior else None,
        )
        request = self.host.open_request(graph.branch, base_branch, title, body)
        self.logger.info("Opened change request #%d for %s", request.number, graph.branch)

        if self.labels:
            try:
                self.host.add_labels(request.number, self.labels)
            except HostError as exc:
                self.logger.warning("Could not label change request #%d: %s", request.number, exc)

        if prior is not None:
            comment = f"Superseded by #{request.number} ({graph.branch})."
            try:
                self.host.close_request(prior.number, comment)
            except HostError as exc:
                self.logger.warning("Could not close superseded request #%d: %s", prior.number, exc)
            else:
                self.logger.info("Closed superseded change request #%d", prior.number)

        return replace(
            request,
            title=title,
            body=body,
            supersedes=prior.number if prior else None,
        )

    def close_stale(self, base_branch: str, branch_pattern: str, comment: str) -> List[int]:
        """Close every open request for the document once the base already matches it."""
        matcher = _branch_matcher(branch_pattern)
        closed: List[int] = []
        for request in self.host.list_open_requests(base_branch):
            if not matcher.match(request.branch):
                continue
            try:
                self.host.close_request(request.number, comment)
            except HostError as exc:
                self.logger.warning("Could not close stale request #%d: %s", request.number, exc)
                continue
            self.logger.info("Closed stale change request #%d", request.number)
            closed.append(request.number)
        return closed

    def find_existing(
        self, base_branch: str, branch_pattern: str, *, exclude: str = ""
    ) -> Optional[ChangeRequest]:
        """Return the newest open request whose head follows the document's branch pattern."""
        matcher = _branch_matcher(branch_pattern)
        candidates: List[ChangeRequest] = [
            request
            for request in self.host.list_open_requests(base_branch)
            if request.branch != exclude and matcher.match(request.branch)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda request: request.number)

    @staticmethod
    def build_title(delta: SnapshotDelta) -> str:
        if delta.noop:
            return "Design sync: republish snapshot"
        return f"Design sync: {delta.summary()}"

    @staticmethod
    def build_body(
        document_id: str,
        graph: VCObjectGraph,
        base_branch: str,
        delta: SnapshotDelta,
        *,
        document_name: str = "",
        provenance: str = "",
        supersedes: Optional[int] = None,
    ) -> str:
        label = f"{document_name} (`{document_id}`)" if document_name else f"`{document_id}`"
        lines = [
            "## Summary",
            f"- Design document: {label}",
            f"- Base: `{base_branch}` at `{graph.parent[:12]}`",
            f"- Changes: {delta.summary()}",
        ]
        if provenance:
            lines.append(f"- Snapshot: `{provenance[:12]}`")
        for heading, paths in (
            ("Added", delta.added),
            ("Modified", delta.modified),
            ("Removed", delta.removed),
        ):
            if not paths:
                continue
            lines.extend(["", f"## {heading}"])
            lines.extend(f"- `{path}`" for path in paths)
        if supersedes is not None:
            lines.extend(["", f"Supersedes #{supersedes}."])
        if graph.conflict is not None:
            lines.extend(["", f"> Note: {graph.conflict}. Rebase before merging if needed."])
        lines.extend(["", "Generated by `figsync sync`."])
        return "\n".join(lines)


def _branch_matcher(branch_pattern: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(branch_pattern)}\d{{14}}-")


__all__ = ["ChangePublisher"]
