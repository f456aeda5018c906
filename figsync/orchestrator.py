"""Pipeline orchestration for design-to-pull-request synchronization."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import ContextManager, Dict, Iterator, Optional

from .config import FigSyncConfig
from .design.client import DesignClient
from .errors import ConfigError, HostError, SnapshotStateError, SyncError
from .generate import CodeGenerator, resolve_policy
from .git.builder import SnapshotBuilder
from .git.host import GitHubHost, VersionControlHost
from .git.publisher import ChangePublisher
from .logging import get_logger
from .models import (
    DesignDocument,
    FailedResult,
    GeneratedFileSet,
    NoOpResult,
    PublishedResult,
    SyncResult,
)
from .normalize import Normalizer
from .snapshot.diff import SnapshotDiffer
from .snapshot.store import InMemorySnapshotStore, JsonSnapshotStore, SnapshotStore

# Webhook events that never change generated output.
IGNORED_EVENTS = frozenset({"PING", "FILE_COMMENT", "FILE_DELETE"})


class Orchestrator:
    """Coordinates fetch, normalize, generate, diff, build and publish for one document.

    Collaborators not passed in are built from the configuration on first use,
    so a generate-only run never needs host credentials.
    """

    def __init__(
        self,
        config: FigSyncConfig | None = None,
        *,
        design_client: DesignClient | None = None,
        normalizer: Normalizer | None = None,
        generator: CodeGenerator | None = None,
        differ: SnapshotDiffer | None = None,
        store: SnapshotStore | None = None,
        host: VersionControlHost | None = None,
        builder: SnapshotBuilder | None = None,
        publisher: ChangePublisher | None = None,
    ) -> None:
        self.config = config or FigSyncConfig(root=Path.cwd())
        self.normalizer = normalizer or Normalizer()
        self.differ = differ or SnapshotDiffer()
        self._design_client = design_client
        self._generator = generator
        self._store = store
        self._host = host
        self._builder = builder
        self._publisher = publisher
        self._document_locks: Dict[str, threading.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._locks_guard = threading.Lock()
        self.logger = get_logger("orchestrator")

    # ------------------------------------------------------------------
    # Entry points

    def synchronize(
        self,
        document_id: Optional[str] = None,
        *,
        event: Optional[str] = None,
        force: bool = False,
    ) -> SyncResult:
        """Publish the generated files for a design document as a change request.

        Returns :class:`PublishedResult` when a request was opened,
        :class:`NoOpResult` when nothing needed publishing, and
        :class:`FailedResult` carrying the typed error otherwise.
        """
        doc_id = document_id or self.config.design.file_id
        if not doc_id:
            return FailedResult(document_id="", error=ConfigError("No design document id configured"))
        if event and event.strip().upper() in IGNORED_EVENTS:
            self.logger.info("Ignoring %s event for %s", event, doc_id)
            return NoOpResult(document_id=doc_id, reason=f"event {event.strip().upper()} ignored")

        with self._run_guard(doc_id):
            try:
                return self._synchronize(doc_id, force=force)
            except SyncError as exc:
                self._log_exception(f"Sync failed for {doc_id}", exc)
                return FailedResult(document_id=doc_id, error=exc)

    def render(self, document_id: Optional[str] = None) -> GeneratedFileSet:
        """Fetch a document and return its generated files without touching the host."""
        doc_id = document_id or self.config.design.file_id
        if not doc_id:
            raise ConfigError("No design document id configured")
        return self.render_document(self.design_client.fetch(doc_id))

    def render_document(self, document: DesignDocument) -> GeneratedFileSet:
        tree = self.normalizer.normalize(document)
        return self.generator.generate(tree)

    # ------------------------------------------------------------------
    # Collaborators

    @property
    def design_client(self) -> DesignClient:
        if self._design_client is None:
            design = self.config.design
            self._design_client = DesignClient(
                design.token,
                api_url=design.api_url,
                timeout=design.timeout,
                max_retries=design.max_retries,
                backoff=design.backoff,
            )
        return self._design_client

    @property
    def generator(self) -> CodeGenerator:
        if self._generator is None:
            settings = self.config.generate
            try:
                policy = resolve_policy(settings.policy)
            except (ValueError, TypeError, RuntimeError) as exc:
                raise ConfigError(f"Cannot use generation policy {settings.policy!r}: {exc}") from exc
            self._generator = CodeGenerator(policy, settings.target_prefix)
        return self._generator

    @property
    def store(self) -> SnapshotStore:
        if self._store is None:
            path = self.config.state.path
            self._store = JsonSnapshotStore(path) if path else InMemorySnapshotStore()
        return self._store

    @property
    def host(self) -> VersionControlHost:
        if self._host is None:
            settings = self.config.host
            if not settings.owner or not settings.repo:
                raise ConfigError("host.owner and host.repo must be configured to publish")
            self._host = GitHubHost(
                settings.owner,
                settings.repo,
                settings.token,
                api_url=settings.api_url,
                timeout=settings.timeout,
                max_retries=settings.max_retries,
                backoff=settings.backoff,
            )
        return self._host

    @property
    def builder(self) -> SnapshotBuilder:
        if self._builder is None:
            publish = self.config.publish
            self._builder = SnapshotBuilder(
                self.host,
                branch_prefix=publish.branch_prefix,
                commit_message=publish.commit_message,
                blob_workers=publish.blob_workers,
            )
        return self._builder

    @property
    def publisher(self) -> ChangePublisher:
        if self._publisher is None:
            publish = self.config.publish
            self._publisher = ChangePublisher(
                self.host,
                labels=publish.labels,
                update_existing=publish.update_existing,
            )
        return self._publisher

    # ------------------------------------------------------------------
    # Internals

    def _synchronize(self, doc_id: str, *, force: bool) -> SyncResult:
        self.logger.info("Starting sync for design document %s", doc_id)
        document = self.design_client.fetch(doc_id)
        tree = self.normalizer.normalize(document)
        files = self.generator.generate(tree)
        self.logger.debug("Generated %d files (snapshot %s)", len(files), files.provenance[:12])

        previous = self.store.get(doc_id)
        delta = self.differ.compute(files, previous)
        if delta.noop and not force:
            self.logger.info("Generated files for %s unchanged since last publish; skipping", doc_id)
            return NoOpResult(document_id=doc_id, reason="generated files unchanged since last publish")

        base_branch = self.config.host.base_branch or self.host.default_branch()
        graph = self.builder.build(doc_id, files, delta, base_branch)
        if graph is None:
            if self.publisher.update_existing:
                self.publisher.close_stale(
                    base_branch,
                    self.builder.branch_pattern(doc_id),
                    f"Closed: `{base_branch}` already matches the design (snapshot `{files.provenance[:12]}`).",
                )
            self._remember(doc_id, files)
            return NoOpResult(document_id=doc_id, reason=f"{base_branch} already contains the generated files")

        try:
            request = self.publisher.publish(
                doc_id,
                graph,
                base_branch,
                delta,
                branch_pattern=self.builder.branch_pattern(doc_id),
                document_name=document.name,
                provenance=files.provenance,
            )
        except SyncError:
            self._discard_branch(graph.branch)
            raise

        self._remember(doc_id, files)
        self.logger.info("Sync for %s published %s (%s)", doc_id, request.url or f"#{request.number}", delta.summary())
        return PublishedResult(document_id=doc_id, change_request=request, delta=delta, graph=graph)

    def _run_guard(self, doc_id: str) -> ContextManager[None]:
        if self.config.publish.concurrency != "serialize":
            return nullcontext()
        return self._document_lock(doc_id)

    @contextmanager
    def _document_lock(self, doc_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._document_locks.setdefault(doc_id, threading.Lock())
            self._lock_users[doc_id] = self._lock_users.get(doc_id, 0) + 1
        try:
            if not lock.acquire(blocking=False):
                self.logger.info("Sync for %s already in flight; waiting for it to finish", doc_id)
                lock.acquire()
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._locks_guard:
                self._lock_users[doc_id] -= 1
                if not self._lock_users[doc_id]:
                    del self._lock_users[doc_id]
                    del self._document_locks[doc_id]

    def _remember(self, doc_id: str, files: GeneratedFileSet) -> None:
        try:
            self.store.put(doc_id, files)
        except SnapshotStateError as exc:
            self.logger.warning("Could not record snapshot for %s; the next run republishes it: %s", doc_id, exc)

    def _discard_branch(self, branch: str) -> None:
        try:
            self.host.delete_branch(branch)
        except HostError as exc:
            self.logger.warning("Could not delete branch %s after failed publish: %s", branch, exc)
        else:
            self.logger.info("Deleted branch %s after failed publish", branch)

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


__all__ = ["IGNORED_EVENTS", "Orchestrator"]
