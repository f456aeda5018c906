"""Parsing of raw design-tool payloads into design documents."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Set

from ..errors import MalformedResponse
from ..models import DesignDocument, DesignNode

# Design-tool node types mapped onto the kinds the pipeline reasons about.
NODE_KINDS: Dict[str, str] = {
    "DOCUMENT": "document",
    "CANVAS": "page",
    "FRAME": "frame",
    "GROUP": "group",
    "SECTION": "section",
    "COMPONENT": "component",
    "COMPONENT_SET": "component_set",
    "INSTANCE": "instance",
    "TEXT": "text",
    "RECTANGLE": "rectangle",
    "VECTOR": "vector",
    "BOOLEAN_OPERATION": "vector",
    "ELLIPSE": "vector",
    "LINE": "vector",
    "STAR": "vector",
    "REGULAR_POLYGON": "vector",
    "SLICE": "slice",
}

_STRUCTURAL_KEYS = {"id", "type", "name", "visible", "children"}
_METADATA_KEYS = ("styles", "components", "componentSets", "variables", "version", "lastModified")


def kind_for_type(node_type: str) -> str:
    return NODE_KINDS.get(node_type.upper(), "unknown")


def parse_document(document_id: str, payload: Any) -> DesignDocument:
    """Build a :class:`DesignDocument` from a files API response body."""
    if not isinstance(payload, dict):
        raise MalformedResponse("Design document response is not a JSON object")
    root_payload = payload.get("document")
    if not isinstance(root_payload, dict):
        raise MalformedResponse("Design document response has no 'document' node")
    if root_payload.get("type") != "DOCUMENT":
        raise MalformedResponse(
            f"Design document root has type {root_payload.get('type')!r}, expected 'DOCUMENT'"
        )

    seen: Set[str] = set()
    root = _parse_node(root_payload, seen, path="document")
    metadata = {key: payload[key] for key in _METADATA_KEYS if key in payload}
    name = payload.get("name")
    return DesignDocument(
        id=document_id,
        name=name if isinstance(name, str) else document_id,
        root=root,
        metadata=metadata,
    )


def _parse_node(payload: Any, seen: Set[str], *, path: str) -> DesignNode:
    if not isinstance(payload, dict):
        raise MalformedResponse(f"Node at {path} is not an object")
    node_id = payload.get("id")
    node_type = payload.get("type")
    if not isinstance(node_id, str) or not node_id:
        raise MalformedResponse(f"Node at {path} is missing an id")
    if not isinstance(node_type, str) or not node_type:
        raise MalformedResponse(f"Node {node_id} is missing a type")
    if node_id in seen:
        raise MalformedResponse(f"Node id {node_id} appears more than once")
    seen.add(node_id)

    raw_children = payload.get("children", [])
    if not isinstance(raw_children, list):
        raise MalformedResponse(f"Node {node_id} has non-list children")
    children = tuple(
        _parse_node(child, seen, path=f"{node_id}/{index}")
        for index, child in enumerate(raw_children)
    )

    name = payload.get("name")
    visible = payload.get("visible", True)
    attributes: Mapping[str, Any] = {
        key: value for key, value in payload.items() if key not in _STRUCTURAL_KEYS
    }
    return DesignNode(
        id=node_id,
        kind=kind_for_type(node_type),
        type=node_type,
        name=name if isinstance(name, str) else "",
        visible=visible is not False,
        attributes=attributes,
        children=children,
    )


__all__ = ["NODE_KINDS", "kind_for_type", "parse_document"]
