"""Core data models shared across figsync components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .errors import PublishConflictError, SyncError


@dataclass(frozen=True)
class DesignNode:
    """A node of the raw design tree as delivered by the design tool."""

    id: str
    kind: str
    type: str
    name: str
    visible: bool = True
    attributes: Mapping[str, Any] = field(default_factory=dict)
    children: Tuple["DesignNode", ...] = ()


@dataclass(frozen=True)
class DesignDocument:
    """Full design payload for one document identifier."""

    id: str
    name: str
    root: DesignNode
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def pages(self) -> Tuple[DesignNode, ...]:
        return self.root.children


@dataclass(frozen=True)
class IntermediateNode:
    """Generator-facing view of a supported design node."""

    id: str
    kind: str
    name: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    children: Tuple["IntermediateNode", ...] = ()
    screen: bool = False

    def walk(self) -> Iterator["IntermediateNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "screen": self.screen,
            "attributes": dict(self.attributes),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class IntermediateTree:
    """Normalized forest of the first page plus derived design tokens."""

    document_id: str
    document_name: str
    nodes: Tuple[IntermediateNode, ...]
    tokens: Mapping[str, Any]
    digest: str

    @property
    def screens(self) -> Tuple[IntermediateNode, ...]:
        return tuple(node for node in self.nodes if node.screen)


@dataclass(frozen=True)
class GeneratedFileSet:
    """Repository-relative path to content mapping, ordered by path."""

    files: Mapping[str, str]
    provenance: str

    def __post_init__(self) -> None:
        ordered = {path: self.files[path] for path in sorted(self.files)}
        object.__setattr__(self, "files", ordered)

    @property
    def paths(self) -> List[str]:
        return list(self.files)

    def __len__(self) -> int:
        return len(self.files)


@dataclass(frozen=True)
class SnapshotDelta:
    """Difference between a new file set and the previously published one."""

    added: Tuple[str, ...] = ()
    modified: Tuple[str, ...] = ()
    removed: Tuple[str, ...] = ()
    unchanged: int = 0

    @property
    def noop(self) -> bool:
        return not (self.added or self.modified or self.removed)

    @property
    def changed(self) -> Tuple[str, ...]:
        return tuple(sorted(self.added + self.modified))

    def summary(self) -> str:
        parts = []
        for count, verb in (
            (len(self.added), "added"),
            (len(self.modified), "modified"),
            (len(self.removed), "removed"),
        ):
            if count:
                noun = "file" if count == 1 else "files"
                parts.append(f"{count} {noun} {verb}")
        return ", ".join(parts) if parts else "no changes"


@dataclass(frozen=True)
class TreeEntry:
    """A single path in a version-control tree; ``sha=None`` deletes the path."""

    path: str
    sha: Optional[str]
    mode: str = "100644"
    type: str = "blob"


@dataclass
class VCObjectGraph:
    """Objects written for one publish: blobs, one tree, one commit, one branch."""

    parent: str
    base_tree: str
    blobs: Dict[str, str]
    removed: Tuple[str, ...]
    tree: str
    commit: str
    branch: str = ""
    conflict: Optional[PublishConflictError] = None


@dataclass(frozen=True)
class ChangeRequest:
    """Published review artifact on the host."""

    number: int
    url: str
    branch: str
    base: str
    title: str
    body: str
    supersedes: Optional[int] = None


@dataclass
class PublishedResult:
    document_id: str
    change_request: ChangeRequest
    delta: SnapshotDelta
    graph: VCObjectGraph
    status: str = "published"


@dataclass
class NoOpResult:
    document_id: str
    reason: str
    status: str = "noop"


@dataclass
class FailedResult:
    document_id: str
    error: SyncError
    status: str = "failed"


SyncResult = Union[PublishedResult, NoOpResult, FailedResult]
