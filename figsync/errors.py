"""Typed failures surfaced by the synchronization pipeline."""

from __future__ import annotations

from typing import Optional


class SyncError(RuntimeError):
    """Base class for every failure a sync run reports to its trigger."""

    kind = "sync_error"


class ConfigError(SyncError):
    """Raised when the configuration file cannot be parsed."""

    kind = "config_error"


# ----------------------------------------------------------------------
# Design document source


class UpstreamFetchError(SyncError):
    """The design document could not be fetched or understood."""

    kind = "upstream_fetch_error"


class Unauthorized(UpstreamFetchError):
    kind = "unauthorized"


class NotFound(UpstreamFetchError):
    kind = "not_found"


class UpstreamUnavailable(UpstreamFetchError):
    """Transient failure (rate limit, 5xx, network); safe to retry."""

    kind = "upstream_unavailable"


class MalformedResponse(UpstreamFetchError):
    kind = "malformed_response"


# ----------------------------------------------------------------------
# Generation


class GenerationError(SyncError):
    """The intermediate tree or generated output is structurally invalid."""

    kind = "generation_error"

    def __init__(self, message: str, *, node_id: Optional[str] = None) -> None:
        if node_id is not None:
            message = f"{message} (node {node_id})"
        super().__init__(message)
        self.node_id = node_id


# ----------------------------------------------------------------------
# Snapshot state


class SnapshotStateError(SyncError):
    """The last-published snapshot could not be written to disk."""

    kind = "snapshot_state_error"


# ----------------------------------------------------------------------
# Version-control host


class PublishConflictError(SyncError):
    """Informational: the base branch moved while a snapshot was being built."""

    kind = "publish_conflict"


class BaseBranchMoved(PublishConflictError):
    def __init__(self, branch: str, resolved: str, current: str) -> None:
        super().__init__(
            f"Base branch {branch} moved from {resolved[:12]} to {current[:12]} during publish"
        )
        self.branch = branch
        self.resolved = resolved
        self.current = current


class HostError(SyncError):
    kind = "host_error"


class HostUnavailable(HostError):
    """Transient host failure (rate limit, 5xx, network); safe to retry."""

    kind = "host_unavailable"


class PermissionDenied(HostError):
    kind = "permission_denied"


class BaseBranchNotFound(HostError):
    kind = "base_branch_not_found"


class HostWriteError(HostError):
    kind = "host_write_error"


class ObjectWriteFailed(HostWriteError):
    kind = "object_write_failed"


class BranchNameCollision(HostWriteError):
    kind = "branch_name_collision"

    def __init__(self, branch: str) -> None:
        super().__init__(f"Branch {branch} already exists")
        self.branch = branch


__all__ = [
    "BaseBranchMoved",
    "BaseBranchNotFound",
    "BranchNameCollision",
    "ConfigError",
    "GenerationError",
    "HostError",
    "HostUnavailable",
    "HostWriteError",
    "MalformedResponse",
    "NotFound",
    "ObjectWriteFailed",
    "PermissionDenied",
    "PublishConflictError",
    "SnapshotStateError",
    "SyncError",
    "Unauthorized",
    "UpstreamFetchError",
    "UpstreamUnavailable",
]
