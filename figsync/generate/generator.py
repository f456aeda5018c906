"""Applies a generation policy and the target prefix to produce a file set."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Dict

from ..errors import GenerationError
from ..logging import get_logger
from ..models import GeneratedFileSet, IntermediateTree
from .base import GenerationPolicy


class CodeGenerator:
    """Pure mapping from an intermediate tree to a :class:`GeneratedFileSet`."""

    def __init__(self, policy: GenerationPolicy, target_prefix: str = "") -> None:
        self.policy = policy
        self.target_prefix = target_prefix.strip().strip("/")
        if self.target_prefix:
            _validate_path(self.target_prefix)
        self.logger = get_logger("generate")

    def generate(self, tree: IntermediateTree) -> GeneratedFileSet:
        rendered = self.policy.render(tree)
        files: Dict[str, str] = {}
        for relative, content in rendered.items():
            if not isinstance(content, str):
                raise GenerationError(f"Policy produced non-text content for {relative!r}")
            path = self._target_path(relative)
            if path in files:
                raise GenerationError(f"Policy produced {path!r} more than once")
            files[path] = content
        self.logger.debug(
            "Policy %s generated %d files for %s",
            self.policy.name or self.policy.__class__.__name__,
            len(files),
            tree.document_id,
        )
        return GeneratedFileSet(files=files, provenance=tree.digest)

    def _target_path(self, relative: str) -> str:
        cleaned = relative.replace("\\", "/").strip()
        _validate_path(cleaned)
        normalized = str(PurePosixPath(cleaned))
        if self.target_prefix:
            return f"{self.target_prefix}/{normalized}"
        return normalized


def _validate_path(path: str) -> None:
    if not path or path.startswith("/"):
        raise GenerationError(f"Generated path {path!r} must be relative and non-empty")
    parts = PurePosixPath(path).parts
    if any(part in {"..", "."} for part in parts) or ".git" in parts:
        raise GenerationError(f"Generated path {path!r} escapes the target directory")


__all__ = ["CodeGenerator"]
