"""Generation policies and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Dict, Iterable

from .base import GenerationPolicy
from .generator import CodeGenerator
from .react import ReactPolicy

_ENTRY_POINT_GROUP = "figsync.policies"

_BUILTIN_FACTORIES: Dict[str, Callable[[], GenerationPolicy]] = {
    "react": ReactPolicy,
}


def available_policies() -> list[str]:
    names = set(_BUILTIN_FACTORIES)
    names.update(entry.name.lower() for entry in _iter_entry_points())
    return sorted(names)


def resolve_policy(name: str) -> GenerationPolicy:
    """Instantiate the generation policy registered under ``name``."""
    key = name.strip().lower()
    factory = _BUILTIN_FACTORIES.get(key)
    if factory is not None:
        return factory()

    for entry in _iter_entry_points():
        if entry.name.lower() != key:
            continue
        try:
            loaded = entry.load()
        except Exception as exc:
            raise RuntimeError(f"Failed to load generation policy '{name}': {exc}") from exc
        return _coerce_policy(loaded)

    raise ValueError(
        f"Unknown generation policy '{name}'. Available: {', '.join(available_policies())}"
    )


def _coerce_policy(obj: object) -> GenerationPolicy:
    if isinstance(obj, GenerationPolicy):
        return obj
    if isinstance(obj, type) and issubclass(obj, GenerationPolicy):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, GenerationPolicy):
            return instance
    raise TypeError("Generation policy entry point must be a GenerationPolicy subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "CodeGenerator",
    "GenerationPolicy",
    "ReactPolicy",
    "available_policies",
    "resolve_policy",
]
