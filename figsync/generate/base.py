"""Base classes for generation policy plugins."""

from abc import ABC, abstractmethod
from typing import Mapping

from ..models import IntermediateTree


class GenerationPolicy(ABC):
    """Contract for rule sets that turn an intermediate tree into source files.

    Implementations must be pure: the same tree always yields the same
    mapping, and no I/O happens during rendering. Paths are relative to the
    configured target prefix.
    """

    name: str = ""

    @abstractmethod
    def render(self, tree: IntermediateTree) -> Mapping[str, str]:
        """Return ``relative path -> file content`` for the tree."""
