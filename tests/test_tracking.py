"""Tests for compact refs, board diffing, and diff formatting."""

from __future__ import annotations

from typing import Any

import pytest  # type: ignore[import-not-found]

from forge_mcp.tracking import DiffTracker, RefManager, format_diff

# =============================================================================
# Sample data helpers
# =============================================================================


def _el(
    key: str,
    kind: str = "slider",
    label: str = "",
    value: Any = None,
    pending: bool = False,
) -> dict[str, Any]:
    """Build a rendered element dict."""
    return {"key": key, "kind": kind, "label": label, "value": value, "pending": pending}


# =============================================================================
# RefManager
# =============================================================================


class TestRefManager:
    def test_assign_sequential(self) -> None:
        rm = RefManager()
        assert rm.assign("price") == "@e1"
        assert rm.assign("quality") == "@e2"
        assert rm.assign("action:0") == "@e3"

    def test_assign_idempotent(self) -> None:
        rm = RefManager()
        ref = rm.assign("price")
        assert rm.assign("price") == ref

    def test_resolve_ref(self) -> None:
        rm = RefManager()
        rm.assign("verdict-btn")
        assert rm.resolve("@e1") == "verdict-btn"

    def test_resolve_passthrough(self) -> None:
        rm = RefManager()
        assert rm.resolve("weights.price") == "weights.price"

    def test_resolve_unknown_ref_raises(self) -> None:
        rm = RefManager()
        with pytest.raises(ValueError, match="Unknown ref @e99"):
            rm.resolve("@e99")

    def test_lookup(self) -> None:
        rm = RefManager()
        rm.assign("a")
        assert rm.lookup("a") == "@e1"
        assert rm.lookup("b") is None

    def test_rollback_to_mark(self) -> None:
        rm = RefManager()
        rm.assign("a")
        mark = rm.mark()
        rm.assign("b")
        rm.assign("c")
        rm.rollback(mark)
        assert rm.lookup("b") is None
        assert rm.assign("d") == "@e2"
        with pytest.raises(ValueError):
            rm.resolve("@e3")

    def test_malformed_ref(self) -> None:
        rm = RefManager()
        rm.assign("a")
        for ref in ("@e0", "@ex", "@e"):
            with pytest.raises(ValueError, match="Unknown ref"):
                rm.resolve(ref)

    def test_reset(self) -> None:
        rm = RefManager()
        rm.assign("a")
        rm.assign("b")
        rm.reset()
        assert rm.assign("c") == "@e1"
        with pytest.raises(ValueError):
            rm.resolve("@e2")


# =============================================================================
# DiffTracker
# =============================================================================


class TestDiffTracker:
    def test_first_snapshot_returns_none(self) -> None:
        dt = DiffTracker()
        assert dt.update_and_diff([_el("a"), _el("b")]) is None

    def test_no_changes(self) -> None:
        dt = DiffTracker()
        elements = [_el("a"), _el("b")]
        dt.update_and_diff(elements)
        diff = dt.update_and_diff(elements)
        assert diff == {"appeared": [], "disappeared": [], "modified": []}

    def test_appeared_and_disappeared(self) -> None:
        dt = DiffTracker()
        dt.update_and_diff([_el("a"), _el("b")])
        diff = dt.update_and_diff([_el("b"), _el("c")])
        assert diff is not None
        assert diff["appeared"] == ["c"]
        assert diff["disappeared"] == ["a"]

    def test_modified_value(self) -> None:
        dt = DiffTracker()
        dt.update_and_diff([_el("price", value=5)])
        diff = dt.update_and_diff([_el("price", value=8)])
        assert diff is not None
        assert diff["modified"] == [{"key": "price", "changes": {"value": {"from": 5, "to": 8}}}]

    def test_modified_pending(self) -> None:
        dt = DiffTracker()
        dt.update_and_diff([_el("btn", kind="button")])
        diff = dt.update_and_diff([_el("btn", kind="button", pending=True)])
        assert diff is not None
        assert diff["modified"][0]["changes"]["pending"] == {"from": False, "to": True}

    def test_elements_without_key_ignored(self) -> None:
        dt = DiffTracker()
        dt.update_and_diff([{"kind": "text"}])
        diff = dt.update_and_diff([{"kind": "text", "label": "x"}])
        assert diff == {"appeared": [], "disappeared": [], "modified": []}

    def test_reset_forgets_baseline(self) -> None:
        dt = DiffTracker()
        dt.update_and_diff([_el("a")])
        dt.reset()
        assert dt.update_and_diff([_el("b")]) is None


# =============================================================================
# format_diff
# =============================================================================


class TestFormatDiff:
    def test_no_changes(self) -> None:
        diff: dict[str, list[Any]] = {"appeared": [], "disappeared": [], "modified": []}
        assert format_diff(diff, RefManager()) == "No changes detected."

    def test_appeared_with_ref(self) -> None:
        rm = RefManager()
        rm.assign("user-1")
        diff = {"appeared": ["user-1"], "disappeared": [], "modified": []}
        result = format_diff(diff, rm)
        assert result.startswith("Board Diff:")
        assert "Appeared (1)" in result
        assert "@e1 (user-1)" in result

    def test_disappeared_without_ref(self) -> None:
        diff = {"appeared": [], "disappeared": ["c1"], "modified": []}
        result = format_diff(diff, RefManager())
        assert "Disappeared (1): c1" in result

    def test_modified(self) -> None:
        diff = {
            "appeared": [],
            "disappeared": [],
            "modified": [{"key": "price", "changes": {"value": {"from": 5, "to": 8}}}],
        }
        result = format_diff(diff, RefManager())
        assert "Modified (1):" in result
        assert "price: value 5 -> 8" in result
