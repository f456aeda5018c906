"""Tests for the design API client."""

from __future__ import annotations

from typing import List

import httpx
import pytest

from figsync.design.client import DesignClient
from figsync.errors import MalformedResponse, NotFound, Unauthorized, UpstreamUnavailable
from tests._fixtures.design_builder import two_screen_document


def _client(handler, *, token: str | None = "secret", max_retries: int = 3) -> tuple[DesignClient, List[float]]:
    sleeps: List[float] = []
    client = DesignClient(
        token,
        api_url="https://design.test",
        max_retries=max_retries,
        backoff=0,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
    )
    return client, sleeps


def test_fetch_sends_token_and_parses_document() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=two_screen_document())

    client, _ = _client(handler)
    doc = client.fetch("abc/123")

    assert doc.id == "abc/123"
    assert len(doc.pages[0].children) == 2
    assert seen[0].url.raw_path == b"/v1/files/abc%2F123"
    assert seen[0].headers["X-Figma-Token"] == "secret"


def test_fetch_retries_transient_failures() -> None:
    statuses = iter([503, 429])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses, 200)
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json=two_screen_document())

    client, sleeps = _client(handler)
    doc = client.fetch("abc123")

    assert doc.name == "Design"
    assert len(sleeps) == 2


def test_fetch_gives_up_after_max_retries() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("boom", request=request)

    client, _ = _client(handler, max_retries=2)

    with pytest.raises(UpstreamUnavailable):
        client.fetch("abc123")
    assert len(calls) == 2


@pytest.mark.parametrize(
    ("status", "error"),
    [(401, Unauthorized), (403, Unauthorized), (404, NotFound), (400, MalformedResponse)],
)
def test_fetch_does_not_retry_permanent_failures(status: int, error: type) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status, json={"err": "nope"})

    client, sleeps = _client(handler)

    with pytest.raises(error):
        client.fetch("abc123")
    assert len(calls) == 1
    assert sleeps == []


def test_fetch_rejects_non_json_body() -> None:
    client, _ = _client(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(MalformedResponse):
        client.fetch("abc123")


def test_fetch_without_token_is_unauthorized() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("request should not be sent")

    client, _ = _client(handler, token=None)

    with pytest.raises(Unauthorized):
        client.fetch("abc123")
