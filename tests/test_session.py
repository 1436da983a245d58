"""Tests for the workspace session lifecycle."""

from __future__ import annotations

from typing import Any

import pytest  # type: ignore[import-not-found]

from forge_mcp.session import SessionPhase, WorkspaceSession

# =============================================================================
# Sample data helpers
# =============================================================================


def _spec(title: str = "Pick a city", *layout: dict[str, Any]) -> dict[str, Any]:
    return {
        "title": title,
        "layout": list(layout) or [{"kind": "card", "id": "c1", "title": "Paris"}],
    }


def _verdict(**extra: Any) -> dict[str, Any]:
    return {"winner": "Paris", "confidence": 80, "reasoning": "Food.", "next_steps": ["Go"], **extra}


def _rendered() -> WorkspaceSession:
    session = WorkspaceSession("s1")
    session.apply(_spec())
    return session


# =============================================================================
# Render / update / conclude scenarios
# =============================================================================


class TestScenarios:
    def test_render_creates_tree_with_empty_state(self) -> None:
        session = WorkspaceSession()
        outcome = session.apply(_spec())
        assert outcome.applied
        assert session.layout == [{"kind": "card", "id": "c1", "title": "Paris"}]
        assert session.state == {}
        assert session.phase is SessionPhase.RENDERED
        assert session.active

    def test_patch_then_remove(self) -> None:
        session = _rendered()
        session.apply({"operation": "patch", "patches": [{"id": "c1", "changes": {"title": "Lyon"}}]})
        assert session.layout == [{"kind": "card", "id": "c1", "title": "Lyon"}]
        assert not any(n.get("id") == "c2" for n in session.layout)
        assert session.phase is SessionPhase.MUTATED

        session.apply({"operation": "remove", "ids": ["c1"]})
        assert session.layout == []

    def test_same_title_keeps_state(self) -> None:
        session = _rendered()
        session.set_state("weights.price", 8)
        outcome = session.apply(_spec("Pick a city", {"kind": "divider"}))
        assert not outcome.reset_state
        assert session.state == {"weights.price": 8}
        assert session.layout == [{"kind": "divider"}]

    def test_new_title_resets_state(self) -> None:
        session = _rendered()
        session.set_state("weights.price", 8)
        outcome = session.apply(_spec("Pick a job"))
        assert outcome.reset_state
        assert session.state == {}


# =============================================================================
# Title change semantics
# =============================================================================


class TestTitleReset:
    def test_new_title_clears_state_and_verdict(self) -> None:
        session = _rendered()
        session.set_state("flag", True)
        session.apply(_verdict())
        assert session.verdict is not None

        session.apply(_spec("B"))
        assert session.state == {}
        assert session.verdict is None
        assert session.phase is SessionPhase.RENDERED

    def test_same_title_keeps_state_and_verdict(self) -> None:
        session = _rendered()
        session.set_state("flag", True)
        session.apply(_verdict())

        session.apply(_spec("Pick a city", {"kind": "text", "text": "new layout"}))
        assert session.state == {"flag": True}
        assert session.verdict is not None
        assert session.phase is SessionPhase.CONCLUDED

    def test_new_title_clears_view_state(self) -> None:
        session = _rendered()
        session.view.selected_tabs["tabs@0"] = 1
        session.view.expanded.add("c1")
        session.apply(_spec("B"))
        assert session.view.selected_tabs == {}
        assert session.view.expanded == set()

    def test_render_copies_spec(self) -> None:
        spec = _spec()
        session = WorkspaceSession()
        session.apply(spec)
        session.apply({"operation": "patch", "patches": [{"id": "c1", "changes": {"title": "X"}}]})
        assert spec["layout"][0]["title"] == "Paris"

    def test_missing_layout_becomes_empty(self) -> None:
        session = WorkspaceSession()
        session.apply({"spec": {"title": "T", "layout": None}})
        assert session.layout == []


# =============================================================================
# Updates and verdicts
# =============================================================================


class TestUpdatesAndVerdicts:
    def test_update_without_spec_is_not_applied(self) -> None:
        session = WorkspaceSession()
        outcome = session.apply({"operation": "add", "components": [{"kind": "card", "id": "x"}]})
        assert not outcome.applied
        assert session.spec is None
        assert session.phase is SessionPhase.EMPTY

    def test_update_keeps_state(self) -> None:
        session = _rendered()
        session.set_state("weights.price", 3)
        session.apply({"operation": "add", "components": [{"kind": "card", "id": "c2"}]})
        assert session.state == {"weights.price": 3}
        assert [n["id"] for n in session.layout] == ["c1", "c2"]

    def test_conclude_clamps_confidence(self) -> None:
        session = _rendered()
        session.apply(_verdict(confidence=250))
        assert session.verdict is not None
        assert session.verdict["confidence"] == 100
        session.apply(_verdict(confidence=0))
        assert session.verdict["confidence"] == 1
        assert session.phase is SessionPhase.CONCLUDED

    def test_conclude_without_spec_is_kept(self) -> None:
        session = WorkspaceSession()
        outcome = session.apply({"verdict": _verdict()})
        assert outcome.applied
        assert session.verdict is not None
        assert session.phase is SessionPhase.EMPTY

    def test_first_render_clears_early_verdict(self) -> None:
        session = WorkspaceSession()
        session.apply({"verdict": _verdict()})
        outcome = session.apply({"title": "Pick a city", "layout": []})
        assert outcome.reset_state
        assert session.verdict is None
        assert session.phase is SessionPhase.RENDERED

    def test_conclude_leaves_spec_and_state(self) -> None:
        session = _rendered()
        session.set_state("a", 1)
        layout = session.layout
        session.apply(_verdict())
        assert session.layout == layout
        assert session.state == {"a": 1}

    def test_unrecognized_changes_nothing(self) -> None:
        session = _rendered()
        outcome = session.apply({"hello": "world"})
        assert not outcome.applied
        assert session.layout == [{"kind": "card", "id": "c1", "title": "Paris"}]
        assert session.last_unrecognized is not None

    def test_delivery_clears_pending_flag(self) -> None:
        session = _rendered()
        session.pending_tools.add("forge_update")
        session.apply({"operation": "add", "components": []}, source_tool="forge_update")
        assert "forge_update" not in session.pending_tools


# =============================================================================
# Interaction state
# =============================================================================


class TestInteractionState:
    def test_set_and_get(self) -> None:
        session = _rendered()
        session.set_state("weights.price", 8)
        assert session.get_state("weights.price") == 8
        assert session.get_state("missing", "d") == "d"

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            _rendered().set_state("", 1)

    def test_dismiss_removes_and_marks(self) -> None:
        session = _rendered()
        session.dismiss("c1")
        assert session.layout == []
        assert session.state["dismissed.c1"] is True

    def test_notices_drain(self) -> None:
        session = _rendered()
        session.notify("boom")
        notices = session.drain_notices()
        assert [n.text for n in notices] == ["boom"]
        assert session.drain_notices() == []


# =============================================================================
# Persistence records
# =============================================================================


class TestRecords:
    def test_round_trip(self) -> None:
        session = _rendered()
        session.set_state("weights.price", 8)
        session.apply(_verdict())
        session.view.expanded.add("c1")

        restored = WorkspaceSession.from_record(session.to_record(), "s2")
        assert restored.session_id == "s2"
        assert restored.spec == session.spec
        assert restored.state == {"weights.price": 8}
        assert restored.verdict == session.verdict
        assert restored.view.expanded == set()
        assert restored.phase is SessionPhase.CONCLUDED

    def test_record_has_no_view_state(self) -> None:
        assert set(_rendered().to_record()) == {"spec", "widgetState", "verdict"}
