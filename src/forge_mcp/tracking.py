"""Compact refs and snapshot diffing for rendered boards."""

from __future__ import annotations

from typing import Any


REF_PREFIX = "@e"


class RefManager:
    """Numbers control keys in draw order: the Nth key drawn is ``@eN``.

    A render can ``rollback`` to an earlier ``mark`` so a leaf that fails
    halfway leaves no refs behind.
    """

    def __init__(self) -> None:
        self._keys: list[str] = []
        self._positions: dict[str, int] = {}

    def reset(self) -> None:
        """Forget every ref. Call at the start of each snapshot."""
        self._keys.clear()
        self._positions.clear()

    def mark(self) -> int:
        return len(self._keys)

    def rollback(self, mark: int) -> None:
        """Drop refs assigned after ``mark``."""
        for key in self._keys[mark:]:
            del self._positions[key]
        del self._keys[mark:]

    def assign(self, key: str) -> str:
        if key not in self._positions:
            self._positions[key] = len(self._keys)
            self._keys.append(key)
        return f"{REF_PREFIX}{self._positions[key] + 1}"

    def lookup(self, key: str) -> str | None:
        position = self._positions.get(key)
        return None if position is None else f"{REF_PREFIX}{position + 1}"

    def resolve(self, ref_or_key: str) -> str:
        """Resolve @eN to its control key, or pass through anything else."""
        if not ref_or_key.startswith(REF_PREFIX):
            return ref_or_key
        number = ref_or_key[len(REF_PREFIX):]
        if number.isdigit() and 0 < int(number) <= len(self._keys):
            return self._keys[int(number) - 1]
        raise ValueError(f"Unknown ref {ref_or_key}. Take a new snapshot to refresh refs.")


class DiffTracker:
    """Tracks rendered node state between snapshots for diffing."""

    TRACKED_PROPS = ("kind", "label", "value", "pending")

    def __init__(self) -> None:
        self._last_elements: dict[str, dict[str, Any]] | None = None

    def reset(self) -> None:
        self._last_elements = None

    def update_and_diff(self, elements: list[dict[str, Any]]) -> dict[str, Any] | None:
        """Store snapshot, return diff against previous (or None if first)."""
        new_map = {el["key"]: el for el in elements if el.get("key")}
        diff = None
        if self._last_elements is not None:
            diff = self._compute(self._last_elements, new_map)
        self._last_elements = new_map
        return diff

    def _compute(
        self, old: dict[str, dict[str, Any]], new: dict[str, dict[str, Any]]
    ) -> dict[str, Any]:
        appeared = [key for key in new if key not in old]
        disappeared = [key for key in old if key not in new]
        modified: list[dict[str, Any]] = []
        for key in new:
            if key in old:
                changes = self._prop_changes(old[key], new[key])
                if changes:
                    modified.append({"key": key, "changes": changes})
        return {
            "appeared": appeared,
            "disappeared": disappeared,
            "modified": modified,
        }

    def _prop_changes(
        self, old_el: dict[str, Any], new_el: dict[str, Any]
    ) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        for prop in self.TRACKED_PROPS:
            old_val = old_el.get(prop)
            new_val = new_el.get(prop)
            if old_val != new_val:
                changes[prop] = {"from": old_val, "to": new_val}
        return changes


def format_diff(diff: dict[str, Any], rm: RefManager) -> str:
    """Format a board diff for display."""
    appeared = diff.get("appeared", [])
    disappeared = diff.get("disappeared", [])
    modified = diff.get("modified", [])

    if not appeared and not disappeared and not modified:
        return "No changes detected."

    def _label(key: str) -> str:
        ref = rm.lookup(key)
        return f"{ref} ({key})" if ref else key

    lines = ["Board Diff:"]
    if appeared:
        lines.append(f"Appeared ({len(appeared)}): {', '.join(map(_label, appeared))}")
    if disappeared:
        lines.append(
            f"Disappeared ({len(disappeared)}): {', '.join(map(_label, disappeared))}"
        )
    if modified:
        lines.append(f"Modified ({len(modified)}):")
        for m in modified:
            change_parts = [
                f"{prop} {vals['from']!r} -> {vals['to']!r}"
                for prop, vals in m["changes"].items()
            ]
            lines.append(f"  {_label(m['key'])}: {', '.join(change_parts)}")
    return "\n".join(lines)
