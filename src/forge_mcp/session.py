"""Workspace session: the live spec, its interaction state, and the verdict.

One ``WorkspaceSession`` exists per active board. The host owns it and
passes it explicitly to the renderer and dispatcher. All mutation happens
synchronously inside a single event, so no locking is done here.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .directives import (
    ConcludeDirective,
    Directive,
    RenderDirective,
    UpdateDirective,
    classify,
)
from .patch import apply_operation, remove_nodes
from .state import WidgetState, dismissed_key

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    EMPTY = "empty"
    RENDERED = "rendered"
    MUTATED = "mutated"
    CONCLUDED = "concluded"


@dataclass
class ViewState:
    """View-local UI state. Never persisted, never sent to tools."""

    selected_tabs: dict[str, int] = field(default_factory=dict)
    expanded: set[str] = field(default_factory=set)

    def clear(self) -> None:
        self.selected_tabs.clear()
        self.expanded.clear()


@dataclass
class Notice:
    """Transient, non-blocking message for the user."""

    text: str
    level: str = "warning"
    created_at: float = field(default_factory=time.time)


@dataclass
class ApplyOutcome:
    directive: Directive
    applied: bool
    message: str = ""
    reset_state: bool = False


def _normalize_verdict(raw: dict[str, Any]) -> dict[str, Any]:
    try:
        confidence = int(round(float(raw.get("confidence", 50))))
    except (TypeError, ValueError):
        confidence = 50
    steps = raw.get("next_steps") or []
    if not isinstance(steps, list):
        steps = [steps]
    return {
        "winner": str(raw.get("winner", "")),
        "confidence": min(100, max(1, confidence)),
        "reasoning": str(raw.get("reasoning", "")),
        "next_steps": [str(s) for s in steps],
    }


class WorkspaceSession:
    """Aggregate of spec, WidgetState, verdict and view state."""

    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id
        self.spec: dict[str, Any] | None = None
        self.state: WidgetState = {}
        self.verdict: dict[str, Any] | None = None
        self.view = ViewState()
        self.phase = SessionPhase.EMPTY
        self.pending_tools: set[str] = set()
        self.notices: list[Notice] = []
        self.last_unrecognized: str | None = None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self.spec is not None

    @property
    def title(self) -> str | None:
        return self.spec.get("title") if self.spec else None

    @property
    def layout(self) -> list[dict[str, Any]]:
        if not self.spec:
            return []
        return self.spec["layout"]

    # -------------------------------------------------------------------------
    # Directives
    # -------------------------------------------------------------------------

    def apply(self, payload: Any, source_tool: str | None = None) -> ApplyOutcome:
        """Classify an inbound payload and apply it."""
        if source_tool:
            self.pending_tools.discard(source_tool)
        directive = classify(payload)
        if isinstance(directive, RenderDirective):
            return self.apply_render(directive)
        if isinstance(directive, UpdateDirective):
            return self.apply_update(directive)
        if isinstance(directive, ConcludeDirective):
            return self.apply_conclude(directive)

        self.last_unrecognized = directive.reason
        logger.warning("Ignoring unrecognized directive: %s", directive.reason)
        return ApplyOutcome(directive, applied=False, message=directive.reason)

    def apply_render(self, directive: RenderDirective) -> ApplyOutcome:
        spec = copy.deepcopy(directive.spec)
        if not isinstance(spec.get("layout"), list):
            spec["layout"] = []
        new_title = spec.get("title")
        reset = self.spec is None or new_title != self.spec.get("title")
        if reset:
            self.state = {}
            self.verdict = None
            self.view.clear()
            logger.info("New problem %r: workspace state reset", new_title)
        self.spec = spec
        self.phase = SessionPhase.CONCLUDED if self.verdict else SessionPhase.RENDERED
        self.last_unrecognized = None
        return ApplyOutcome(directive, applied=True, message="rendered", reset_state=reset)

    def apply_update(self, directive: UpdateDirective) -> ApplyOutcome:
        if self.spec is None:
            logger.warning("Ignoring %s update: no active spec", directive.operation)
            return ApplyOutcome(directive, applied=False, message="no active spec to update")
        self.spec = {
            **self.spec,
            "layout": apply_operation(
                self.spec["layout"],
                directive.operation,
                components=copy.deepcopy(directive.components),
                ids=directive.ids,
                patches=copy.deepcopy(directive.patches),
            ),
        }
        if self.phase is SessionPhase.RENDERED:
            self.phase = SessionPhase.MUTATED
        return ApplyOutcome(directive, applied=True, message=f"{directive.operation} applied")

    def apply_conclude(self, directive: ConcludeDirective) -> ApplyOutcome:
        self.verdict = _normalize_verdict(directive.verdict)
        if self.spec is not None:
            self.phase = SessionPhase.CONCLUDED
        return ApplyOutcome(directive, applied=True, message="verdict set")

    # -------------------------------------------------------------------------
    # Interaction state
    # -------------------------------------------------------------------------

    def set_state(self, key: str, value: Any) -> None:
        if not key:
            raise ValueError("State key must be a non-empty string")
        self.state[key] = value

    def get_state(self, key: str, default: Any = None) -> Any:
        return self.state.get(key, default)

    def dismiss(self, target_id: str) -> None:
        """Remove a node from the tree and flag it dismissed."""
        if self.spec is not None:
            self.spec = {**self.spec, "layout": remove_nodes(self.spec["layout"], [target_id])}
        self.state[dismissed_key(target_id)] = True

    def notify(self, text: str, level: str = "warning") -> None:
        self.notices.append(Notice(text=text, level=level))

    def drain_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        """Durable state tuple. View state is not part of it."""
        return {
            "spec": copy.deepcopy(self.spec),
            "widgetState": copy.deepcopy(self.state),
            "verdict": copy.deepcopy(self.verdict),
        }

    @classmethod
    def from_record(
        cls, record: dict[str, Any], session_id: str | None = None
    ) -> WorkspaceSession:
        session = cls(session_id=session_id)
        spec = record.get("spec")
        if isinstance(spec, dict):
            session.apply_render(RenderDirective(spec=spec))
        session.state = dict(record.get("widgetState") or {})
        verdict = record.get("verdict")
        if isinstance(verdict, dict):
            session.apply_conclude(ConcludeDirective(verdict=verdict))
        return session
