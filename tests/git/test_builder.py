"""Tests for the snapshot builder."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from figsync.errors import BaseBranchMoved, BaseBranchNotFound
from figsync.git.builder import SnapshotBuilder, document_slug
from figsync.models import GeneratedFileSet, SnapshotDelta
from tests._fixtures.fake_host import FakeHost

PROVENANCE = "0123456789abcdef" * 4


def _clock() -> datetime:
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def _files(files: dict[str, str]) -> GeneratedFileSet:
    return GeneratedFileSet(files=files, provenance=PROVENANCE)


def test_build_commits_on_live_base_head() -> None:
    host = FakeHost({"README.md": "hi\n"})
    files = _files({"apps/web/a.ts": "a", "apps/web/b.ts": "b"})
    head = host.refs["main"]

    graph = SnapshotBuilder(host, clock=_clock).build("abc123", files, SnapshotDelta(added=tuple(files.files)), "main")

    assert graph is not None
    assert graph.parent == head
    assert host.commits[graph.commit]["parents"] == [head]
    assert graph.branch == "figsync/abc123-20240501120000-01234567"
    assert host.refs[graph.branch] == graph.commit
    assert host.refs["main"] == head
    assert host.files_at(graph.branch) == {"README.md": "hi\n", "apps/web/a.ts": "a", "apps/web/b.ts": "b"}
    message = str(host.commits[graph.commit]["message"])
    assert "Design document: abc123" in message
    assert f"Snapshot: {PROVENANCE}" in message


def test_build_skips_files_already_on_base() -> None:
    host = FakeHost({"apps/web/a.ts": "a"})
    files = _files({"apps/web/a.ts": "a", "apps/web/b.ts": "b"})

    graph = SnapshotBuilder(host, clock=_clock).build("doc", files, SnapshotDelta(added=tuple(files.files)), "main")

    assert graph is not None
    assert list(graph.blobs) == ["apps/web/b.ts"]
    assert host.calls.count("write_blob") == 1


def test_build_returns_none_when_base_matches() -> None:
    host = FakeHost({"apps/web/a.ts": "a"})

    graph = SnapshotBuilder(host, clock=_clock).build(
        "doc", _files({"apps/web/a.ts": "a"}), SnapshotDelta(modified=("apps/web/a.ts",)), "main"
    )

    assert graph is None
    assert host.writes == []


def test_build_removes_paths_dropped_from_snapshot() -> None:
    host = FakeHost({"apps/web/old.ts": "old", "apps/web/a.ts": "a", "keep.md": "k"})
    delta = SnapshotDelta(removed=("apps/web/old.ts", "apps/web/never-published.ts"), unchanged=1)

    graph = SnapshotBuilder(host, clock=_clock).build("doc", _files({"apps/web/a.ts": "a"}), delta, "main")

    assert graph is not None
    assert graph.removed == ("apps/web/old.ts",)
    assert graph.blobs == {}
    assert host.files_at(graph.branch) == {"apps/web/a.ts": "a", "keep.md": "k"}


def test_truncated_base_listing_writes_everything() -> None:
    host = FakeHost({"apps/web/a.ts": "a"})
    host.truncated = True

    graph = SnapshotBuilder(host, clock=_clock).build(
        "doc", _files({"apps/web/a.ts": "a"}), SnapshotDelta(modified=("apps/web/a.ts",)), "main"
    )

    assert graph is not None
    assert list(graph.blobs) == ["apps/web/a.ts"]


def test_branch_name_collision_picks_next_suffix() -> None:
    host = FakeHost()
    host.refs["figsync/doc-20240501120000-01234567"] = host.refs["main"]

    graph = SnapshotBuilder(host, clock=_clock).build("doc", _files({"a.ts": "a"}), SnapshotDelta(added=("a.ts",)), "main")

    assert graph is not None
    assert graph.branch == "figsync/doc-20240501120000-01234567-2"
    assert host.refs["figsync/doc-20240501120000-01234567"] == host.refs["main"]


def test_base_moving_during_build_is_reported() -> None:
    host = FakeHost({"README.md": "hi\n"})
    original = host.refs["main"]
    reads = []

    def move_after_first_read(branch: str) -> None:
        reads.append(branch)
        if len(reads) == 2:
            host.advance("main", {"OTHER.md": "x"})

    host.before_head = move_after_first_read

    graph = SnapshotBuilder(host, clock=_clock).build("doc", _files({"a.ts": "a"}), SnapshotDelta(added=("a.ts",)), "main")

    assert graph is not None
    assert graph.parent == original
    assert isinstance(graph.conflict, BaseBranchMoved)
    assert graph.conflict.resolved == original
    assert graph.conflict.current == host.refs["main"]


def test_missing_base_branch_raises() -> None:
    with pytest.raises(BaseBranchNotFound):
        SnapshotBuilder(FakeHost()).build("doc", _files({"a.ts": "a"}), SnapshotDelta(added=("a.ts",)), "develop")


def test_parallel_blob_workers_write_every_blob() -> None:
    host = FakeHost()
    files = _files({f"src/{index}.ts": str(index) for index in range(8)})

    graph = SnapshotBuilder(host, blob_workers=4, clock=_clock).build(
        "doc", files, SnapshotDelta(added=tuple(files.files)), "main"
    )

    assert graph is not None
    assert sorted(graph.blobs) == sorted(files.files)
    assert host.files_at(graph.branch) == dict(files.files)


def test_branch_pattern_uses_document_slug() -> None:
    builder = SnapshotBuilder(FakeHost(), branch_prefix="/design-sync/")

    assert builder.branch_pattern("Ab:12 3") == "design-sync/Ab-12-3-"
    assert document_slug("::") == "document"
