"""Version-control host interface and its GitHub REST implementation."""

from __future__ import annotations

import hashlib
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import (
    BaseBranchNotFound,
    BranchNameCollision,
    HostError,
    HostUnavailable,
    HostWriteError,
    ObjectWriteFailed,
    PermissionDenied,
)
from ..logging import get_logger
from ..models import ChangeRequest, TreeEntry


def git_blob_sha(content: str) -> str:
    """Return the git object id the host assigns to a UTF-8 text blob."""
    data = content.encode("utf-8")
    digest = hashlib.sha1()
    digest.update(f"blob {len(data)}\0".encode("ascii"))
    digest.update(data)
    return digest.hexdigest()


class VersionControlHost(ABC):
    """Operations the publish pipeline needs from a git hosting service."""

    @abstractmethod
    def default_branch(self) -> str:
        """Return the repository's default branch name."""

    @abstractmethod
    def branch_head(self, branch: str) -> str:
        """Return the live head commit of ``branch``."""

    @abstractmethod
    def commit_tree(self, commit_sha: str) -> str:
        """Return the root tree of a commit."""

    @abstractmethod
    def read_tree(self, tree_sha: str) -> Optional[Dict[str, TreeEntry]]:
        """Return every entry of a tree recursively, or ``None`` when the listing is incomplete."""

    @abstractmethod
    def write_blob(self, content: str) -> str:
        ...

    @abstractmethod
    def write_tree(self, base_tree: str, entries: Sequence[TreeEntry]) -> str:
        ...

    @abstractmethod
    def write_commit(self, message: str, tree: str, parents: Sequence[str]) -> str:
        ...

    @abstractmethod
    def create_branch(self, branch: str, commit_sha: str) -> None:
        """Create a new branch ref; raise :class:`BranchNameCollision` if it exists."""

    @abstractmethod
    def delete_branch(self, branch: str) -> None:
        ...

    @abstractmethod
    def list_open_requests(self, base: str) -> List[ChangeRequest]:
        ...

    @abstractmethod
    def open_request(self, head: str, base: str, title: str, body: str) -> ChangeRequest:
        ...

    @abstractmethod
    def close_request(self, number: int, comment: str) -> None:
        ...

    @abstractmethod
    def add_labels(self, number: int, labels: Sequence[str]) -> None:
        ...


class GitHubHost(VersionControlHost):
    """GitHub git-data and pulls API client.

    Every call has a bounded timeout; transient failures (rate limiting, 5xx,
    transport errors) are retried with exponential backoff up to
    ``max_retries`` attempts. Object writes that exhaust their budget surface
    as :class:`ObjectWriteFailed`.
    """

    DEFAULT_API_URL = "https://api.github.com"
    _MAX_PULL_PAGES = 10

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str],
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff: float = 1.0,
        max_backoff: float = 30.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self.max_backoff = max_backoff
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None
        self._sleep = sleep
        self.logger = get_logger("git.host")

    # ------------------------------------------------------------------
    # Reads

    def default_branch(self) -> str:
        data = _object(self._request("GET", ""), "repository")
        branch = data.get("default_branch")
        if not isinstance(branch, str) or not branch:
            raise HostError(f"{self.owner}/{self.repo} reports no default branch")
        return branch

    def branch_head(self, branch: str) -> str:
        response = self._request("GET", f"/git/ref/heads/{quote(branch, safe='/')}", allow=(404,))
        if response.status_code == 404:
            raise BaseBranchNotFound(f"Branch {branch} not found in {self.owner}/{self.repo}")
        return _sha(_object(response, f"ref heads/{branch}").get("object"), f"ref heads/{branch}")

    def commit_tree(self, commit_sha: str) -> str:
        data = _object(self._request("GET", f"/git/commits/{commit_sha}"), f"commit {commit_sha}")
        return _sha(data.get("tree"), f"commit {commit_sha}")

    def read_tree(self, tree_sha: str) -> Optional[Dict[str, TreeEntry]]:
        response = self._request("GET", f"/git/trees/{tree_sha}", params={"recursive": "1"})
        data = _object(response, f"tree {tree_sha}")
        if data.get("truncated"):
            self.logger.warning("Tree %s listing is truncated; writing every generated file", tree_sha)
            return None
        items = data.get("tree", [])
        if not isinstance(items, list):
            raise HostError(f"Host response for tree {tree_sha} has no entry list")
        entries: Dict[str, TreeEntry] = {}
        for item in items:
            if not isinstance(item, dict) or not isinstance(item.get("path"), str):
                continue
            entries[item["path"]] = TreeEntry(
                path=item["path"],
                sha=item.get("sha"),
                mode=str(item.get("mode", "100644")),
                type=str(item.get("type", "blob")),
            )
        return entries

    def list_open_requests(self, base: str) -> List[ChangeRequest]:
        requests: List[ChangeRequest] = []
        per_page = 100
        for page in range(1, self._MAX_PULL_PAGES + 1):
            params = {"state": "open", "base": base, "per_page": str(per_page), "page": str(page)}
            items = _payload(self._request("GET", "/pulls", params=params), "pull request list")
            if not isinstance(items, list):
                raise HostError("Host response for pull request list is not a list")
            requests.extend(_change_request(item) for item in items if isinstance(item, dict))
            if len(items) < per_page:
                break
        return requests

    # ------------------------------------------------------------------
    # Writes

    def write_blob(self, content: str) -> str:
        data = self._write("/git/blobs", {"content": content, "encoding": "utf-8"}, "blob")
        return _sha(data, "blob")

    def write_tree(self, base_tree: str, entries: Sequence[TreeEntry]) -> str:
        payload = {
            "base_tree": base_tree,
            "tree": [
                {"path": entry.path, "mode": entry.mode, "type": entry.type, "sha": entry.sha}
                for entry in entries
            ],
        }
        return _sha(self._write("/git/trees", payload, "tree"), "tree")

    def write_commit(self, message: str, tree: str, parents: Sequence[str]) -> str:
        payload = {"message": message, "tree": tree, "parents": list(parents)}
        return _sha(self._write("/git/commits", payload, "commit"), "commit")

    def create_branch(self, branch: str, commit_sha: str) -> None:
        response = self._request(
            "POST",
            "/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": commit_sha},
            allow=(422,),
        )
        if response.status_code == 422:
            if "already exists" in _message(response).lower():
                raise BranchNameCollision(branch)
            raise HostWriteError(f"Cannot create branch {branch}: {_message(response)}")

    def delete_branch(self, branch: str) -> None:
        self._request(
            "DELETE", f"/git/refs/heads/{quote(branch, safe='/')}", allow=(404, 422)
        )

    def open_request(self, head: str, base: str, title: str, body: str) -> ChangeRequest:
        response = self._request(
            "POST",
            "/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
            allow=(422,),
        )
        if response.status_code == 422:
            # A retried create may already have opened the request.
            for existing in self.list_open_requests(base):
                if existing.branch == head:
                    return existing
            raise HostWriteError(f"Cannot open change request for {head}: {_message(response)}")
        return _change_request(_object(response, f"pull request for {head}"))

    def close_request(self, number: int, comment: str) -> None:
        self._request("POST", f"/issues/{number}/comments", json={"body": comment})
        self._request("PATCH", f"/pulls/{number}", json={"state": "closed"})

    def add_labels(self, number: int, labels: Sequence[str]) -> None:
        self._request("POST", f"/issues/{number}/labels", json={"labels": list(labels)})

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    # Helpers

    def _write(self, path: str, payload: Mapping[str, Any], label: str) -> Any:
        try:
            return _object(self._request("POST", path, json=payload), label)
        except HostUnavailable as exc:
            raise ObjectWriteFailed(f"Writing {label} failed after {self.max_retries} attempts: {exc}") from exc

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
        allow: Iterable[int] = (),
    ) -> httpx.Response:
        retrying = Retrying(
            retry=retry_if_exception_type(HostUnavailable),
            wait=wait_exponential(multiplier=self.backoff, max=self.max_backoff),
            stop=stop_after_attempt(self.max_retries),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(self._send, method, path, json=json, params=params, allow=tuple(allow))

    def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any,
        params: Mapping[str, str] | None,
        allow: Sequence[int],
    ) -> httpx.Response:
        url = f"{self.api_url}/repos/{self.owner}/{self.repo}{path}"
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = self._client.request(method, url, json=json, params=params, headers=headers)
        except httpx.TransportError as exc:
            raise HostUnavailable(f"{method} {path or '/'} failed: {exc}") from exc

        status = response.status_code
        if status in allow or status < 400:
            return response
        if status == 429 or status >= 500 or _rate_limited(response):
            raise HostUnavailable(f"{method} {path or '/'} returned {status}")
        if status in (401, 403):
            raise PermissionDenied(f"{method} {path or '/'} denied ({status}): {_message(response)}")
        if status == 404:
            raise PermissionDenied(
                f"{self.owner}/{self.repo}{path} not found or not accessible with the configured token"
            )
        raise HostError(f"{method} {path or '/'} returned {status}: {_message(response)}")

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            "Host request attempt %d/%d failed: %s; retrying",
            retry_state.attempt_number,
            self.max_retries,
            exc,
        )


def _rate_limited(response: httpx.Response) -> bool:
    return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"


def _message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return ""


def _payload(response: httpx.Response, label: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise HostError(
            f"Host response for {label} is not JSON (status {response.status_code})"
        ) from exc


def _object(response: httpx.Response, label: str) -> Dict[str, Any]:
    data = _payload(response, label)
    if not isinstance(data, dict):
        raise HostError(f"Host response for {label} is not a JSON object")
    return data


def _sha(data: Any, label: str) -> str:
    sha = data.get("sha") if isinstance(data, dict) else None
    if not isinstance(sha, str) or not sha:
        raise HostError(f"Host response for {label} carries no sha")
    return sha


def _change_request(data: Mapping[str, Any]) -> ChangeRequest:
    number = data.get("number")
    if isinstance(number, bool) or not isinstance(number, int):
        raise HostError("Host response for a pull request carries no number")
    head = data.get("head") if isinstance(data.get("head"), dict) else {}
    base = data.get("base") if isinstance(data.get("base"), dict) else {}
    return ChangeRequest(
        number=number,
        url=str(data.get("html_url", "")),
        branch=str(head.get("ref", "")),
        base=str(base.get("ref", "")),
        title=str(data.get("title") or ""),
        body=str(data.get("body") or ""),
    )


__all__ = ["GitHubHost", "VersionControlHost", "git_blob_sha"]
