"""Layout node vocabulary for Forge specs.

A layout is a list of nodes. A node is either a container (row, columns,
grid, tabs, stack) holding one level of leaf children, or a leaf component.
Nodes are plain JSON dicts as they arrive over the wire.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

CONTAINER_KINDS = frozenset({"row", "columns", "grid", "tabs", "stack"})

LEAF_KINDS = frozenset(
    {
        "heading",
        "text",
        "badge",
        "divider",
        "card",
        "card_list",
        "table",
        "slider",
        "text_input",
        "select",
        "toggle",
        "button",
        "progress_bar",
        "meter",
        "scoreable_item",
        "argument_pair",
    }
)

# Leaves that only draw text and are never addressed by id.
STATIC_KINDS = frozenset({"heading", "text", "badge", "divider"})


def node_kind(node: Any) -> str:
    """Return the node's kind tag.

    Specs written against the original widget vocabulary carry the tag
    under ``type``; ``kind`` takes precedence when both are present.
    """
    if not isinstance(node, dict):
        return ""
    kind = node.get("kind", node.get("type"))
    return kind if isinstance(kind, str) else ""


def node_id(node: Any) -> str | None:
    """Return the node's id, or None if it has none."""
    if not isinstance(node, dict):
        return None
    value = node.get("id")
    if value is None or value == "":
        return None
    return str(value)


def is_container(node: Any) -> bool:
    """True iff the node's kind is one of the five container kinds."""
    return node_kind(node) in CONTAINER_KINDS


def children_of(node: Any) -> list[dict[str, Any]]:
    """Children of a container; empty for leaves and malformed containers."""
    if not is_container(node):
        return []
    children = node.get("children")
    if not isinstance(children, list):
        return []
    return [child for child in children if isinstance(child, dict)]


def iter_nodes(layout: list[dict[str, Any]]) -> Iterator[dict[str, Any]]:
    """Yield root nodes and container children in document order."""
    for node in layout:
        if not isinstance(node, dict):
            continue
        yield node
        yield from children_of(node)


def find_nodes(layout: list[dict[str, Any]], target_id: str) -> list[dict[str, Any]]:
    """All nodes (root or nested) whose id equals target_id."""
    return [node for node in iter_nodes(layout) if node_id(node) == target_id]


def node_title(node: dict[str, Any]) -> str:
    """Best human-readable name for a node, used in messages."""
    for field in ("title", "label", "text"):
        value = node.get(field)
        if isinstance(value, str) and value:
            return value
    return node_id(node) or node_kind(node) or "component"
