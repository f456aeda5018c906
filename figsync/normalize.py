"""Normalization of design documents into the generator-facing intermediate tree.

Traversal policy
----------------
* Only the first page of the document is normalized. Its top-level children
  whose kind is in :data:`SCREEN_KINDS` are classified as screens.
* Nodes are visited depth-first and sibling order is preserved.
* Hidden nodes are dropped together with their whole subtree.
* Nodes whose kind is not in :data:`SUPPORTED_KINDS` are dropped, but their
  children are still visited and take the dropped node's place in the
  parent's child list. Supported content nested inside an unsupported
  container (a section, a component set, an unknown node type) survives.
* Attributes are reduced to a fixed whitelist with rounded numeric values,
  so cosmetic noise in the payload does not change the tree digest.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from .errors import GenerationError
from .logging import get_logger
from .models import DesignDocument, DesignNode, IntermediateNode, IntermediateTree

SUPPORTED_KINDS = frozenset(
    {"frame", "group", "component", "instance", "text", "vector", "rectangle"}
)
SCREEN_KINDS = frozenset({"frame"})

_LAYOUT_DIRECTIONS = {"HORIZONTAL": "row", "VERTICAL": "column"}
_TEXT_ALIGN = {"LEFT": "left", "CENTER": "center", "RIGHT": "right", "JUSTIFIED": "justify"}


class Normalizer:
    """Converts a :class:`DesignDocument` into an :class:`IntermediateTree`."""

    def __init__(
        self,
        supported_kinds: Iterable[str] = SUPPORTED_KINDS,
        screen_kinds: Iterable[str] = SCREEN_KINDS,
    ) -> None:
        self.supported_kinds = frozenset(supported_kinds)
        self.screen_kinds = frozenset(screen_kinds)
        self.logger = get_logger("normalize")

    def normalize(self, document: DesignDocument) -> IntermediateTree:
        seen: Set[str] = set()
        _check_structure(document.root, seen, set())
        component_names = _component_names(document.metadata)

        nodes: List[IntermediateNode] = []
        if document.pages:
            page = document.pages[0]
            for child in page.children:
                is_screen = child.visible and child.kind in self.screen_kinds
                nodes.extend(self._normalize(child, component_names, screen=is_screen))
        else:
            self.logger.warning("Design document %s has no pages", document.id)

        tokens = extract_tokens(document, nodes)
        digest = tree_digest(document.id, document.name, nodes, tokens)
        screens = sum(1 for node in nodes if node.screen)
        self.logger.debug(
            "Normalized %s: %d top-level nodes, %d screens, digest %s",
            document.id,
            len(nodes),
            screens,
            digest[:12],
        )
        return IntermediateTree(
            document_id=document.id,
            document_name=document.name,
            nodes=tuple(nodes),
            tokens=tokens,
            digest=digest,
        )

    def _normalize(
        self,
        node: DesignNode,
        component_names: Mapping[str, str],
        *,
        screen: bool = False,
    ) -> Tuple[IntermediateNode, ...]:
        if not node.visible:
            return ()
        children: List[IntermediateNode] = []
        for child in node.children:
            children.extend(self._normalize(child, component_names))
        if node.kind not in self.supported_kinds:
            return tuple(children)
        return (
            IntermediateNode(
                id=node.id,
                kind=node.kind,
                name=node.name.strip(),
                attributes=normalize_attributes(node, component_names),
                children=tuple(children),
                screen=screen,
            ),
        )


def _check_structure(node: DesignNode, seen: Set[str], path: Set[str]) -> None:
    if node.id in path:
        raise GenerationError("Design tree contains a cycle", node_id=node.id)
    if node.id in seen:
        raise GenerationError("Design tree repeats a node id", node_id=node.id)
    seen.add(node.id)
    path.add(node.id)
    for child in node.children:
        _check_structure(child, seen, path)
    path.discard(node.id)


def _component_names(metadata: Mapping[str, Any]) -> Dict[str, str]:
    components = metadata.get("components")
    if not isinstance(components, dict):
        return {}
    names: Dict[str, str] = {}
    for component_id, info in components.items():
        if isinstance(info, dict) and isinstance(info.get("name"), str):
            names[str(component_id)] = info["name"]
    return names


# ----------------------------------------------------------------------
# Attributes


def normalize_attributes(node: DesignNode, component_names: Mapping[str, str]) -> Dict[str, Any]:
    raw = node.attributes
    attrs: Dict[str, Any] = {}

    box = raw.get("absoluteBoundingBox")
    if isinstance(box, dict):
        attrs["width"] = _number(box.get("width"))
        attrs["height"] = _number(box.get("height"))

    layout = _LAYOUT_DIRECTIONS.get(str(raw.get("layoutMode", "")))
    if layout:
        attrs["layout"] = layout
        attrs["gap"] = _number(raw.get("itemSpacing"))
    padding = [
        _number(raw.get(key)) or 0
        for key in ("paddingTop", "paddingRight", "paddingBottom", "paddingLeft")
    ]
    if any(padding):
        attrs["padding"] = padding

    attrs["radius"] = _number(raw.get("cornerRadius"))
    attrs["fill"] = _first_solid_color(raw.get("fills"))
    attrs["stroke"] = _first_solid_color(raw.get("strokes"))
    opacity = _number(raw.get("opacity"))
    if opacity is not None and opacity < 1:
        attrs["opacity"] = opacity

    if node.kind == "text":
        characters = raw.get("characters")
        attrs["text"] = characters if isinstance(characters, str) else ""
        style = raw.get("style")
        if isinstance(style, dict):
            attrs["fontFamily"] = style.get("fontFamily") if isinstance(style.get("fontFamily"), str) else None
            attrs["fontSize"] = _number(style.get("fontSize"))
            attrs["fontWeight"] = _number(style.get("fontWeight"))
            attrs["lineHeight"] = _number(style.get("lineHeightPx"))
            attrs["textAlign"] = _TEXT_ALIGN.get(str(style.get("textAlignHorizontal", "")))

    if node.kind == "instance":
        component_id = raw.get("componentId")
        if isinstance(component_id, str):
            attrs["component"] = component_names.get(component_id, component_id)

    return {key: value for key, value in sorted(attrs.items()) if value is not None}


def _number(value: Any) -> Optional[float | int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    rounded = round(float(value), 2)
    if rounded.is_integer():
        return int(rounded)
    return rounded


def _first_solid_color(paints: Any) -> Optional[str]:
    if not isinstance(paints, list):
        return None
    for paint in paints:
        if not isinstance(paint, dict) or paint.get("visible") is False:
            continue
        if paint.get("type") != "SOLID":
            continue
        color = paint.get("color")
        if isinstance(color, dict):
            opacity = paint.get("opacity", 1)
            return color_to_hex(color, opacity if isinstance(opacity, (int, float)) else 1)
    return None


def color_to_hex(color: Mapping[str, Any], opacity: float = 1) -> str:
    """Render a 0..1 RGBA color as ``#rrggbb`` or ``#rrggbbaa``."""

    def channel(name: str, default: float = 0.0) -> int:
        value = color.get(name, default)
        if not isinstance(value, (int, float)):
            value = default
        return max(0, min(255, int(round(float(value) * 255))))

    alpha_raw = color.get("a", 1)
    alpha = (alpha_raw if isinstance(alpha_raw, (int, float)) else 1) * opacity
    text = f"#{channel('r'):02x}{channel('g'):02x}{channel('b'):02x}"
    if alpha < 1:
        text += f"{max(0, min(255, int(round(alpha * 255)))):02x}"
    return text


# ----------------------------------------------------------------------
# Tokens


def extract_tokens(document: DesignDocument, nodes: Iterable[IntermediateNode]) -> Dict[str, Any]:
    """Derive shared design values from document metadata and the normalized tree."""
    styles = document.metadata.get("styles")
    style_usage = _first_style_usage(document.root)

    colors: Dict[str, str] = {}
    typography: Dict[str, Dict[str, Any]] = {}
    if isinstance(styles, dict):
        ordered = sorted(
            (
                (str(info.get("name", "")), str(style_id), info)
                for style_id, info in styles.items()
                if isinstance(info, dict)
            ),
        )
        for name, style_id, info in ordered:
            if not name:
                continue
            style_type = info.get("styleType")
            user = style_usage.get(style_id)
            if user is None:
                continue
            if style_type == "FILL" and name not in colors:
                color = _first_solid_color(user.attributes.get("fills"))
                if color:
                    colors[name] = color
            elif style_type == "TEXT" and name not in typography:
                font = user.attributes.get("style")
                if isinstance(font, dict):
                    entry = {
                        "fontFamily": font.get("fontFamily") if isinstance(font.get("fontFamily"), str) else None,
                        "fontSize": _number(font.get("fontSize")),
                        "fontWeight": _number(font.get("fontWeight")),
                        "lineHeight": _number(font.get("lineHeightPx")),
                    }
                    typography[name] = {k: v for k, v in entry.items() if v is not None}

    spacing: Set[float] = set()
    radii: Set[float] = set()
    for top in nodes:
        for node in top.walk():
            gap = node.attributes.get("gap")
            if isinstance(gap, (int, float)) and gap > 0:
                spacing.add(gap)
            for value in node.attributes.get("padding", ()):
                if value > 0:
                    spacing.add(value)
            radius = node.attributes.get("radius")
            if isinstance(radius, (int, float)) and radius > 0:
                radii.add(radius)

    variables: Dict[str, Any] = {}
    raw_variables = document.metadata.get("variables")
    if isinstance(raw_variables, dict):
        for name in sorted(raw_variables, key=str):
            value = raw_variables[name]
            if isinstance(value, (str, int, float, bool)):
                variables[str(name)] = value

    return {
        "colors": colors,
        "typography": typography,
        "spacing": sorted(spacing),
        "radii": sorted(radii),
        "variables": variables,
    }


def _first_style_usage(root: DesignNode) -> Dict[str, DesignNode]:
    usage: Dict[str, DesignNode] = {}
    for node in _walk_design(root):
        refs = node.attributes.get("styles")
        if not isinstance(refs, dict):
            continue
        for style_id in refs.values():
            if isinstance(style_id, str) and style_id not in usage:
                usage[style_id] = node
    return usage


def _walk_design(node: DesignNode) -> Iterator[DesignNode]:
    yield node
    for child in node.children:
        yield from _walk_design(child)


def tree_digest(
    document_id: str,
    document_name: str,
    nodes: Iterable[IntermediateNode],
    tokens: Mapping[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "document": document_id,
            "name": document_name,
            "nodes": [node.to_dict() for node in nodes],
            "tokens": tokens,
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


__all__ = [
    "Normalizer",
    "SCREEN_KINDS",
    "SUPPORTED_KINDS",
    "color_to_hex",
    "extract_tokens",
    "normalize_attributes",
    "tree_digest",
]
