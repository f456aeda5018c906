"""Persistence of the last published file set per design document."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Optional, Protocol

from ..errors import SnapshotStateError
from ..logging import get_logger
from ..models import GeneratedFileSet

_STORE_VERSION = 1


class SnapshotStore(Protocol):
    """Keyed by document id; holds the file set behind the last published request."""

    def get(self, document_id: str) -> Optional[GeneratedFileSet]:
        ...

    def put(self, document_id: str, file_set: GeneratedFileSet) -> None:
        ...


class InMemorySnapshotStore:
    """Process-local store, mostly for tests and one-shot runs."""

    def __init__(self) -> None:
        self._entries: Dict[str, GeneratedFileSet] = {}
        self._lock = threading.Lock()

    def get(self, document_id: str) -> Optional[GeneratedFileSet]:
        with self._lock:
            return self._entries.get(document_id)

    def put(self, document_id: str, file_set: GeneratedFileSet) -> None:
        with self._lock:
            self._entries[document_id] = file_set


class JsonSnapshotStore:
    """Stores published snapshots in a versioned JSON file.

    Unreadable or foreign-version files are treated as empty rather than
    fatal, so a corrupted state file only costs one redundant publish.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._entries: Dict[str, Dict[str, object]] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("snapshot.store")
        self._load()

    def get(self, document_id: str) -> Optional[GeneratedFileSet]:
        with self._lock:
            entry = self._entries.get(document_id)
        if not entry:
            return None
        files = entry.get("files")
        provenance = entry.get("provenance")
        if not isinstance(files, dict) or not isinstance(provenance, str):
            return None
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in files.items()):
            return None
        return GeneratedFileSet(files=files, provenance=provenance)

    def put(self, document_id: str, file_set: GeneratedFileSet) -> None:
        with self._lock:
            self._entries[document_id] = {
                "provenance": file_set.provenance,
                "files": dict(file_set.files),
                "updated_at": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            }
            try:
                self._persist()
            except OSError as exc:
                raise SnapshotStateError(f"Cannot write snapshot state {self._path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Internal helpers

    def _load(self) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.warning("Ignoring unreadable snapshot state %s: %s", self._path, exc)
            return
        if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
            self.logger.warning("Ignoring snapshot state %s with unknown version", self._path)
            return
        entries = data.get("entries")
        if not isinstance(entries, dict):
            return
        self._entries = {
            key: raw
            for key, raw in entries.items()
            if isinstance(key, str) and isinstance(raw, dict)
        }

    def _persist(self) -> None:
        payload = {"version": _STORE_VERSION, "entries": self._entries}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", dir=str(self._path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


__all__ = ["InMemorySnapshotStore", "JsonSnapshotStore", "SnapshotStore"]
