"""Tests for the GitHub host client."""

from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from figsync.errors import (
    BaseBranchNotFound,
    BranchNameCollision,
    HostError,
    HostUnavailable,
    HostWriteError,
    ObjectWriteFailed,
    PermissionDenied,
)
from figsync.git.host import GitHubHost, git_blob_sha
from figsync.models import TreeEntry

Handler = Callable[[httpx.Request], httpx.Response]


def _host(handler: Handler, *, max_retries: int = 3) -> tuple[GitHubHost, List[float]]:
    sleeps: List[float] = []
    host = GitHubHost(
        "acme",
        "web",
        "gh-token",
        api_url="https://github.test",
        max_retries=max_retries,
        backoff=0,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
    )
    return host, sleeps


def test_git_blob_sha_matches_git_hash_object() -> None:
    # `printf 'hello\n' | git hash-object --stdin`
    assert git_blob_sha("hello\n") == "ce013625030ba8dba906f756967f9e9ca394464a"


def test_branch_head_reads_ref_with_auth_headers() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"object": {"sha": "c" * 40}})

    host, _ = _host(handler)

    assert host.branch_head("main") == "c" * 40
    assert seen[0].url.path == "/repos/acme/web/git/ref/heads/main"
    assert seen[0].headers["Authorization"] == "Bearer gh-token"
    assert seen[0].headers["X-GitHub-Api-Version"] == "2022-11-28"


def test_branch_head_missing_branch() -> None:
    host, _ = _host(lambda request: httpx.Response(404, json={"message": "Not Found"}))

    with pytest.raises(BaseBranchNotFound):
        host.branch_head("develop")


def test_read_tree_returns_entries_or_none_when_truncated() -> None:
    responses = iter(
        [
            {"truncated": False, "tree": [{"path": "a.ts", "sha": "1" * 40, "mode": "100755", "type": "blob"}]},
            {"truncated": True, "tree": []},
        ]
    )
    host, _ = _host(lambda request: httpx.Response(200, json=next(responses)))

    assert host.read_tree("t1") == {"a.ts": TreeEntry(path="a.ts", sha="1" * 40, mode="100755")}
    assert host.read_tree("t2") is None


def test_write_tree_sends_deletions_as_null_sha() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"sha": "t" * 40})

    host, _ = _host(handler)
    sha = host.write_tree("base", [TreeEntry("a.ts", "1" * 40), TreeEntry("gone.ts", None)])

    assert sha == "t" * 40
    assert bodies[0]["base_tree"] == "base"
    assert bodies[0]["tree"][1] == {"path": "gone.ts", "mode": "100644", "type": "blob", "sha": None}


def test_transient_failures_are_retried() -> None:
    statuses = iter([502, 429])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses, 201)
        if status != 201:
            return httpx.Response(status)
        return httpx.Response(201, json={"sha": "b" * 40})

    host, sleeps = _host(handler)

    assert host.write_blob("content") == "b" * 40
    assert len(sleeps) == 2


def test_exhausted_object_write_raises_object_write_failed() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    host, _ = _host(handler, max_retries=2)

    with pytest.raises(ObjectWriteFailed):
        host.write_commit("msg", "t" * 40, ["p" * 40])
    assert len(calls) == 2


def test_rate_limited_forbidden_is_transient() -> None:
    host, sleeps = _host(
        lambda request: httpx.Response(403, headers={"x-ratelimit-remaining": "0"}), max_retries=2
    )

    with pytest.raises(HostUnavailable):
        host.default_branch()
    assert len(sleeps) == 1


@pytest.mark.parametrize("status", [401, 403, 404])
def test_permission_failures_are_not_retried(status: int) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status, json={"message": "Bad credentials"})

    host, _ = _host(handler)

    with pytest.raises(PermissionDenied):
        host.default_branch()
    assert len(calls) == 1


def test_create_branch_reports_collisions() -> None:
    messages = iter(["Reference already exists", "Invalid sha"])
    host, _ = _host(lambda request: httpx.Response(422, json={"message": next(messages)}))

    with pytest.raises(BranchNameCollision):
        host.create_branch("figsync/doc-1", "c" * 40)
    with pytest.raises(HostWriteError):
        host.create_branch("figsync/doc-2", "c" * 40)


def test_open_request_returns_existing_after_retried_create() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(422, json={"message": "A pull request already exists"})
        return httpx.Response(
            200,
            json=[
                {
                    "number": 7,
                    "html_url": "https://github.test/acme/web/pull/7",
                    "head": {"ref": "figsync/doc-1"},
                    "base": {"ref": "main"},
                    "title": "Design sync",
                }
            ],
        )

    host, _ = _host(handler)
    request = host.open_request("figsync/doc-1", "main", "Design sync", "body")

    assert request.number == 7
    assert request.branch == "figsync/doc-1"


def test_close_request_comments_then_closes() -> None:
    seen: List[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(200, json={})

    host, _ = _host(handler)
    host.close_request(3, "Superseded by #4.")

    assert seen == [
        ("POST", "/repos/acme/web/issues/3/comments"),
        ("PATCH", "/repos/acme/web/pulls/3"),
    ]


def test_non_json_success_body_is_a_host_error() -> None:
    host, _ = _host(lambda request: httpx.Response(200, text="<html>proxy login</html>"))

    with pytest.raises(HostError, match="not JSON"):
        host.default_branch()


def test_unexpected_json_shapes_are_host_errors() -> None:
    bodies = iter([{"message": "moved"}, {"tree": "nope"}, [{"html_url": "x"}]])
    host, _ = _host(lambda request: httpx.Response(200, json=next(bodies)))

    with pytest.raises(HostError, match="not a list"):
        host.list_open_requests("main")
    with pytest.raises(HostError, match="no entry list"):
        host.read_tree("t1")
    with pytest.raises(HostError, match="no number"):
        host.list_open_requests("main")
