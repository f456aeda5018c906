"""Reference generation policy emitting React/TypeScript modules."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from ..models import IntermediateNode, IntermediateTree
from .base import GenerationPolicy

TOKENS_PATH = "src/tokens.json"
GENERATED_DIR = "src/generated"
MANIFEST_PATH = f"{GENERATED_DIR}/screens.map.ts"
INDEX_PATH = f"{GENERATED_DIR}/index.ts"

_WORD_PATTERN = re.compile(r"[A-Za-z0-9]+")
# Lowercased component names that would shadow the generated index and manifest modules.
_RESERVED_COMPONENTS = frozenset({"index", "screensmap"})
_INDENT = "  "


class ReactPolicy(GenerationPolicy):
    """Renders design tokens, a screen manifest, one TSX module per screen and an index."""

    name = "react"

    def render(self, tree: IntermediateTree) -> Mapping[str, str]:
        screens = tree.screens
        components = assign_component_names([screen.name for screen in screens])
        header = _header(tree.document_name)

        files: Dict[str, str] = {
            TOKENS_PATH: json.dumps(tree.tokens, indent=2, sort_keys=True, ensure_ascii=False) + "\n",
            MANIFEST_PATH: self._render_manifest(header, screens),
            INDEX_PATH: self._render_index(header, components),
        }
        for screen, component in zip(screens, components):
            files[f"{GENERATED_DIR}/{component}.tsx"] = self._render_screen(header, screen, component)
        return files

    @staticmethod
    def _render_manifest(header: str, screens: Sequence[IntermediateNode]) -> str:
        names = json.dumps([screen.name for screen in screens], indent=2, ensure_ascii=False)
        return f"{header}\nexport const screens = {names} as const;\n"

    @staticmethod
    def _render_index(header: str, components: Sequence[str]) -> str:
        lines = [header, ""]
        lines.extend(f'export {{ default as {name} }} from "./{name}";' for name in components)
        lines.append('export { screens } from "./screens.map";')
        lines.append('export { default as tokens } from "../tokens.json";')
        return "\n".join(lines) + "\n"

    def _render_screen(self, header: str, screen: IntermediateNode, component: str) -> str:
        lines = [
            header,
            f"// Screen: {_comment_safe(screen.name) or '(unnamed)'} ({screen.id})",
            "",
            f"export default function {component}() {{",
            "  return (",
        ]
        lines.extend(render_jsx(screen, depth=2))
        lines.extend(["  );", "}"])
        return "\n".join(lines) + "\n"


def assign_component_names(names: Sequence[str]) -> List[str]:
    """Map screen names to unique component identifiers by order of appearance.

    ``["Home", "Home", "Settings"]`` becomes ``["Home", "Home2", "Settings"]``.
    Uniqueness is case-insensitive so file names never clash on
    case-insensitive file systems, and the names of the generated index and
    manifest modules are never handed out.
    """
    taken: set[str] = set(_RESERVED_COMPONENTS)
    result: List[str] = []
    for name in names:
        base = component_identifier(name)
        candidate = base
        suffix = 2
        while candidate.lower() in taken:
            candidate = f"{base}{suffix}"
            suffix += 1
        taken.add(candidate.lower())
        result.append(candidate)
    return result


def component_identifier(name: str) -> str:
    words = _WORD_PATTERN.findall(name)
    identifier = "".join(word[:1].upper() + word[1:] for word in words)
    if not identifier:
        return "Screen"
    if identifier[0].isdigit():
        return f"Screen{identifier}"
    return identifier


def render_jsx(node: IntermediateNode, depth: int) -> List[str]:
    indent = _INDENT * depth
    tag, props = _element(node)
    opening = f"{indent}<{tag}{props}"

    if node.kind == "text":
        text = json.dumps(node.attributes.get("text", ""), ensure_ascii=False)
        return [f"{opening}>{{{text}}}</{tag}>"]
    if not node.children:
        return [f"{opening} />"]

    lines = [f"{opening}>"]
    for child in node.children:
        lines.extend(render_jsx(child, depth + 1))
    lines.append(f"{indent}</{tag}>")
    return lines


def _element(node: IntermediateNode) -> Tuple[str, str]:
    attrs = node.attributes
    props = [f"data-node-id={json.dumps(node.id, ensure_ascii=False)}"]
    if node.kind == "instance" and attrs.get("component"):
        props.append(f"data-component={json.dumps(attrs['component'], ensure_ascii=False)}")
    style = _style(node)
    if style:
        props.append(f"style={{{{ {style} }}}}")
    tag = {"text": "span", "vector": "svg"}.get(node.kind, "div")
    if tag == "svg":
        props.append('aria-hidden="true"')
    return tag, " " + " ".join(props)


def _style(node: IntermediateNode) -> str:
    attrs = node.attributes
    entries: List[Tuple[str, Any]] = []
    if "width" in attrs:
        entries.append(("width", attrs["width"]))
    if "height" in attrs and node.kind != "text":
        entries.append(("height", attrs["height"]))
    if "layout" in attrs:
        entries.append(("display", "flex"))
        entries.append(("flexDirection", attrs["layout"]))
        if attrs.get("gap"):
            entries.append(("gap", attrs["gap"]))
    if "padding" in attrs:
        entries.append(("padding", " ".join(f"{value}px" for value in attrs["padding"])))
    if "radius" in attrs:
        entries.append(("borderRadius", attrs["radius"]))
    if "fill" in attrs:
        key = {"text": "color", "vector": "fill"}.get(node.kind, "background")
        entries.append((key, attrs["fill"]))
    if "stroke" in attrs:
        entries.append(("border", f"1px solid {attrs['stroke']}"))
    if "opacity" in attrs:
        entries.append(("opacity", attrs["opacity"]))
    for key in ("fontFamily", "fontSize", "fontWeight", "textAlign"):
        if key in attrs:
            entries.append((key, attrs[key]))
    if "lineHeight" in attrs:
        entries.append(("lineHeight", f"{attrs['lineHeight']}px"))
    return ", ".join(f"{key}: {json.dumps(value, ensure_ascii=False)}" for key, value in entries)


def _header(document_name: str) -> str:
    return f"// Generated by figsync from {_comment_safe(document_name)}. Do not edit by hand."


def _comment_safe(text: str) -> str:
    return " ".join(text.split())


__all__ = [
    "INDEX_PATH",
    "MANIFEST_PATH",
    "ReactPolicy",
    "TOKENS_PATH",
    "assign_component_names",
    "component_identifier",
    "render_jsx",
]
