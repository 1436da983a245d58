"""Pure tree operations over a Forge layout.

Each function takes a layout (list of nodes) and returns a new list. The
input list and the nodes in it are never mutated. Addressing is by node id,
at the root level or one level down inside a container's children.

Duplicate ids are not disambiguated: remove and patch apply to every node
carrying a matching id.
"""

from __future__ import annotations

import logging
from typing import Any

from .nodes import is_container, node_id

logger = logging.getLogger(__name__)

Layout = list[dict[str, Any]]

OPERATIONS = ("add", "remove", "patch")


def add_nodes(layout: Layout, nodes: list[dict[str, Any]] | None) -> Layout:
    """Append nodes at the root level, in order, without id dedup."""
    if not nodes:
        return list(layout)
    return [*layout, *(n for n in nodes if isinstance(n, dict))]


def remove_nodes(layout: Layout, ids: list[str] | None) -> Layout:
    """Drop every root node or container child whose id is in ids.

    Containers left without children stay in place.
    """
    if not ids:
        return list(layout)
    id_set = {str(i) for i in ids}
    result: Layout = []
    for node in layout:
        if node_id(node) in id_set:
            continue
        if is_container(node) and isinstance(node.get("children"), list):
            kept = [c for c in node["children"] if node_id(c) not in id_set]
            if len(kept) != len(node["children"]):
                node = {**node, "children": kept}
        result.append(node)

    missing = id_set - _present_ids(layout)
    if missing:
        logger.debug("remove: no node matches ids %s", sorted(missing))
    return result


def _changes_by_id(patches: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Fold patch entries into one change set per id.

    Later entries win field by field. An ``id`` key inside changes is
    dropped so a patch can never re-address its own target.
    """
    merged: dict[str, dict[str, Any]] = {}
    for entry in patches:
        if not isinstance(entry, dict):
            continue
        target = entry.get("id")
        changes = entry.get("changes")
        if target is None or not isinstance(changes, dict):
            continue
        cleaned = {k: v for k, v in changes.items() if k != "id"}
        if "id" in changes:
            logger.debug("patch: ignoring id rename inside changes for %s", target)
        merged.setdefault(str(target), {}).update(cleaned)
    return merged


def _apply_changes(node: dict[str, Any], change_map: dict[str, dict[str, Any]]) -> dict[str, Any]:
    changes = change_map.get(node_id(node) or "")
    if changes is None:
        return node
    return {**node, **changes}


def patch_nodes(layout: Layout, patches: list[dict[str, Any]] | None) -> Layout:
    """Shallow-merge changes onto every node whose id matches a patch entry.

    Field-level overwrite: an object-valued field in changes replaces the
    node's field wholesale.
    """
    if not patches:
        return list(layout)
    change_map = _changes_by_id(patches)
    if not change_map:
        return list(layout)

    result: Layout = []
    for node in layout:
        patched = _apply_changes(node, change_map)
        if is_container(patched) and isinstance(patched.get("children"), list):
            children = [_apply_changes(c, change_map) for c in patched["children"]]
            if any(a is not b for a, b in zip(children, patched["children"])):
                patched = {**patched, "children": children}
        result.append(patched)

    missing = set(change_map) - _present_ids(layout)
    if missing:
        logger.debug("patch: no node matches ids %s", sorted(missing))
    return result


def apply_operation(
    layout: Layout,
    operation: str,
    *,
    components: list[dict[str, Any]] | None = None,
    ids: list[str] | None = None,
    patches: list[dict[str, Any]] | None = None,
) -> Layout:
    """Run one update operation against a layout."""
    if operation == "add":
        return add_nodes(layout, components)
    if operation == "remove":
        return remove_nodes(layout, ids)
    if operation == "patch":
        return patch_nodes(layout, patches)
    raise ValueError(f"Unknown update operation: {operation!r}")


def _present_ids(layout: Layout) -> set[str]:
    present: set[str] = set()
    for node in layout:
        nid = node_id(node)
        if nid:
            present.add(nid)
        if is_container(node) and isinstance(node.get("children"), list):
            present.update(cid for cid in map(node_id, node["children"]) if cid)
    return present
