"""HTTP client for the design-tool files API."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import MalformedResponse, NotFound, Unauthorized, UpstreamUnavailable
from ..logging import get_logger
from ..models import DesignDocument
from .document import parse_document


class DesignClient:
    """Fetches design documents, retrying transient upstream failures.

    Unauthorized and missing documents fail immediately; rate limiting, 5xx
    responses and transport errors are retried with bounded exponential
    backoff. Nothing is cached: every call reads the current document.
    """

    DEFAULT_API_URL = "https://api.figma.com"

    def __init__(
        self,
        token: Optional[str],
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        max_retries: int = 4,
        backoff: float = 1.0,
        max_backoff: float = 30.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self.max_backoff = max_backoff
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None
        self._sleep = sleep
        self.logger = get_logger("design.client")

    def fetch(self, document_id: str) -> DesignDocument:
        """Return the current design document for ``document_id``."""
        if not self.token:
            raise Unauthorized("No design-tool token configured")
        retrying = Retrying(
            retry=retry_if_exception_type(UpstreamUnavailable),
            wait=wait_exponential(multiplier=self.backoff, max=self.max_backoff),
            stop=stop_after_attempt(self.max_retries),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        payload = retrying(self._get_file, document_id)
        document = parse_document(document_id, payload)
        self.logger.info("Fetched design document %s (%s)", document_id, document.name)
        return document

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "DesignClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Helpers

    def _get_file(self, document_id: str) -> Any:
        url = f"{self.api_url}/v1/files/{quote(document_id, safe='')}"
        try:
            response = self._client.get(url, headers={"X-Figma-Token": self.token or ""})
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(f"Design API request failed: {exc}") from exc

        status = response.status_code
        if status in (401, 403):
            raise Unauthorized(f"Design API rejected the token ({status})")
        if status == 404:
            raise NotFound(f"Design document {document_id} not found")
        if status == 429 or status >= 500:
            raise UpstreamUnavailable(f"Design API unavailable ({status})")
        if status >= 400:
            raise MalformedResponse(f"Design API returned unexpected status {status}")

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponse("Design API returned a non-JSON body") from exc

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            "Design API attempt %d/%d failed: %s; retrying",
            retry_state.attempt_number,
            self.max_retries,
            exc,
        )


__all__ = ["DesignClient"]
