"""Version-control publishing: host access, snapshot commits and change requests."""

from .builder import SnapshotBuilder, document_slug
from .host import GitHubHost, VersionControlHost, git_blob_sha
from .publisher import ChangePublisher

__all__ = [
    "ChangePublisher",
    "GitHubHost",
    "SnapshotBuilder",
    "VersionControlHost",
    "document_slug",
    "git_blob_sha",
]
