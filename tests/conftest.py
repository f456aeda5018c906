from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Callable

import pytest

from figsync.config import FigSyncConfig
from figsync.generate import CodeGenerator, ReactPolicy
from figsync.git.builder import SnapshotBuilder
from figsync.orchestrator import Orchestrator
from figsync.snapshot.store import InMemorySnapshotStore
from tests._fixtures.design_builder import DOCUMENT_ID, two_screen_document
from tests._fixtures.fake_design import FakeDesignClient
from tests._fixtures.fake_host import FakeHost


@pytest.fixture
def fake_host() -> FakeHost:
    """A host whose main branch holds a single unrelated file."""
    return FakeHost({"README.md": "# app\n"})


@pytest.fixture
def design_client() -> FakeDesignClient:
    return FakeDesignClient({DOCUMENT_ID: two_screen_document()})


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def make_orchestrator(
    tmp_path: Path,
    fake_host: FakeHost,
    design_client: FakeDesignClient,
    fixed_clock: Callable[[], datetime],
) -> Callable[..., Orchestrator]:
    """Build an orchestrator wired to in-memory collaborators."""

    def factory(*, concurrency: str = "serialize", update_existing: bool = True, **overrides) -> Orchestrator:
        config = FigSyncConfig(root=tmp_path)
        config.design.file_id = DOCUMENT_ID
        config.publish.concurrency = concurrency
        config.publish.update_existing = update_existing
        config.publish.labels = ["design-sync"]
        host = overrides.pop("host", fake_host)
        wiring = {
            "design_client": design_client,
            "generator": CodeGenerator(ReactPolicy(), "apps/web"),
            "store": InMemorySnapshotStore(),
            "host": host,
            "builder": SnapshotBuilder(host, clock=fixed_clock),
        }
        wiring.update(overrides)
        return Orchestrator(config, **wiring)

    return factory
