"""Tests for the code generator and policy discovery."""

from __future__ import annotations

from typing import Mapping

import pytest

from figsync.errors import GenerationError
from figsync.generate import CodeGenerator, GenerationPolicy, ReactPolicy, available_policies, resolve_policy
from figsync.models import IntermediateTree


class StaticPolicy(GenerationPolicy):
    name = "static"

    def __init__(self, files: Mapping[str, object]) -> None:
        self.files = files

    def render(self, tree: IntermediateTree) -> Mapping[str, str]:
        return self.files  # type: ignore[return-value]


def _tree(digest: str = "d" * 64) -> IntermediateTree:
    return IntermediateTree(document_id="doc", document_name="Doc", nodes=(), tokens={}, digest=digest)


def test_generate_applies_target_prefix_and_orders_paths() -> None:
    generator = CodeGenerator(StaticPolicy({"src/b.ts": "b", "src/a.ts": "a"}), "/apps/web/")

    result = generator.generate(_tree())

    assert result.paths == ["apps/web/src/a.ts", "apps/web/src/b.ts"]
    assert result.provenance == "d" * 64


def test_generate_without_prefix_keeps_relative_paths() -> None:
    result = CodeGenerator(StaticPolicy({"tokens.json": "{}"})).generate(_tree())

    assert result.paths == ["tokens.json"]


@pytest.mark.parametrize(
    "path",
    ["", "/etc/passwd", "../outside.ts", "src/../../x.ts", ".git/config", "src/.git/hooks"],
)
def test_generate_rejects_paths_outside_target(path: str) -> None:
    generator = CodeGenerator(StaticPolicy({path: "x"}), "apps/web")

    with pytest.raises(GenerationError):
        generator.generate(_tree())


def test_generate_rejects_colliding_paths() -> None:
    generator = CodeGenerator(StaticPolicy({"src/a.ts": "1", "src\\a.ts": "2"}))

    with pytest.raises(GenerationError, match="more than once"):
        generator.generate(_tree())


def test_generate_rejects_non_text_content() -> None:
    with pytest.raises(GenerationError, match="non-text"):
        CodeGenerator(StaticPolicy({"a.bin": b"\x00"})).generate(_tree())


def test_invalid_target_prefix_is_rejected() -> None:
    with pytest.raises(GenerationError):
        CodeGenerator(ReactPolicy(), "../elsewhere")


def test_resolve_policy_returns_builtin() -> None:
    assert isinstance(resolve_policy("React"), ReactPolicy)
    assert "react" in available_policies()


def test_resolve_policy_rejects_unknown_name() -> None:
    with pytest.raises(ValueError, match="Unknown generation policy"):
        resolve_policy("vue-nonexistent")


class _EntryPoint:
    def __init__(self, name: str, load) -> None:
        self.name = name
        self.load = load


def _missing_module():
    raise ImportError("No module named 'figsync_vue'")


def test_resolve_policy_reports_plugins_that_fail_to_load(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("figsync.generate._iter_entry_points", lambda: [_EntryPoint("vue", _missing_module)])

    with pytest.raises(RuntimeError, match="Failed to load generation policy 'vue'"):
        resolve_policy("vue")


def test_resolve_policy_rejects_plugins_of_the_wrong_type(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("figsync.generate._iter_entry_points", lambda: [_EntryPoint("vue", lambda: 42)])

    with pytest.raises(TypeError, match="GenerationPolicy"):
        resolve_policy("vue")
