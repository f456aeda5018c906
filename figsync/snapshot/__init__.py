"""Snapshot diffing and last-published state storage."""

from .diff import SnapshotDiffer
from .store import InMemorySnapshotStore, JsonSnapshotStore, SnapshotStore

__all__ = ["InMemorySnapshotStore", "JsonSnapshotStore", "SnapshotDiffer", "SnapshotStore"]
