"""Tests for the action dispatcher."""

from __future__ import annotations

import asyncio
from typing import Any

from forge_mcp.dispatch import ActionDispatcher
from forge_mcp.session import WorkspaceSession

# =============================================================================
# Sample data helpers
# =============================================================================


class RecordingOutbound:
    """Outbound that records calls and can be told to fail."""

    def __init__(self, fail_calls: bool = False, fail_messages: bool = False) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.messages: list[str] = []
        self.fail_calls = fail_calls
        self.fail_messages = fail_messages

    async def call_tool(self, name: str, args: dict[str, Any]) -> Any:
        if self.fail_calls:
            raise ConnectionError("host unreachable")
        self.calls.append((name, args))
        return None

    async def send_message(self, text: str) -> None:
        if self.fail_messages:
            raise ConnectionError("chat closed")
        self.messages.append(text)


def _session(**spec: Any) -> WorkspaceSession:
    session = WorkspaceSession("s1")
    session.apply(
        {
            "title": "Pick a city",
            "layout": spec.pop("layout", [{"kind": "card", "id": "c1", "title": "Paris"}]),
            **spec,
        }
    )
    return session


def _dispatcher(
    session: WorkspaceSession, outbound: RecordingOutbound | None = None
) -> tuple[ActionDispatcher, RecordingOutbound]:
    outbound = outbound or RecordingOutbound()
    return ActionDispatcher(session, outbound, clock=lambda: 1700000000.5), outbound


# =============================================================================
# call_tool clicks
# =============================================================================


class TestCallToolClick:
    def test_state_args_collected_by_prefix(self) -> None:
        session = _session()
        session.set_state("weights.price", 8)
        session.set_state("notes", "x")
        dispatcher, outbound = _dispatcher(session)
        button = {
            "kind": "button",
            "label": "Score",
            "action": "call_tool",
            "toolName": "score_options",
            "toolArgs": {"mode": "fast"},
            "toolArgsFromState": ["weights"],
        }

        result = asyncio.run(dispatcher.click(button))

        assert result.dispatched
        name, args = outbound.calls[0]
        assert name == "score_options"
        assert args["mode"] == "fast"
        assert args["_stateArgs"] == {"weights.price": 8}
        assert args["_widgetState"] == {"weights.price": 8, "notes": "x"}
        assert "score_options" in session.pending_tools

    def test_tool_args_not_mutated(self) -> None:
        session = _session()
        dispatcher, outbound = _dispatcher(session)
        button = {"label": "Go", "action": "call_tool", "toolName": "t", "toolArgs": {"a": 1}}
        asyncio.run(dispatcher.click(button))
        assert button["toolArgs"] == {"a": 1}

    def test_duplicate_click_while_pending(self) -> None:
        session = _session()
        dispatcher, outbound = _dispatcher(session)
        button = {"label": "Go", "action": "call_tool", "toolName": "slow_tool"}

        first = asyncio.run(dispatcher.click(button))
        second = asyncio.run(dispatcher.click(button))

        assert first.dispatched
        assert not second.dispatched
        assert "already running" in second.description
        assert len(outbound.calls) == 1

    def test_failure_becomes_notice_and_clears_pending(self) -> None:
        session = _session()
        dispatcher, _ = _dispatcher(session, RecordingOutbound(fail_calls=True))
        button = {"label": "Go", "action": "call_tool", "toolName": "remote"}

        result = asyncio.run(dispatcher.click(button))

        assert not result.dispatched
        assert "remote" not in session.pending_tools
        notices = session.drain_notices()
        assert len(notices) == 1
        assert "host unreachable" in notices[0].text

    def test_disabled_and_missing_tool(self) -> None:
        dispatcher, outbound = _dispatcher(_session())
        assert not asyncio.run(dispatcher.click({"label": "X", "disabled": True})).dispatched
        assert not asyncio.run(dispatcher.click({"label": "X", "action": "call_tool"})).dispatched
        assert outbound.calls == []


# =============================================================================
# follow_up clicks
# =============================================================================


class TestFollowUpClick:
    def test_message_includes_state_summary(self) -> None:
        session = _session()
        session.set_state("weights.price", 8)
        session.set_state("flag", True)
        session.set_state("dismissed.c9", True)
        session.set_state("empty", "")
        dispatcher, outbound = _dispatcher(session)

        asyncio.run(dispatcher.click({"label": "Explain", "action": "follow_up", "message": "Why?"}))

        message = outbound.messages[0]
        assert message.startswith("Why?")
        assert "User inputs: weights > price: 8; flag: Yes" in message
        assert "dismissed" not in message
        assert "forge_update" in message

    def test_adds_processing_card(self) -> None:
        session = _session()
        dispatcher, outbound = _dispatcher(session)

        asyncio.run(dispatcher.click({"label": "Explain", "action": "follow_up"}))

        name, args = outbound.calls[0]
        assert name == "forge_update"
        assert args["operation"] == "add"
        card = args["components"][0]
        assert card["id"] == "action-1700000000500"
        assert card["title"] == "Explain: Processing..."
        assert card["dismissible"] is True

    def test_default_message(self) -> None:
        dispatcher, outbound = _dispatcher(_session())
        asyncio.run(dispatcher.click({"action": "follow_up"}))
        assert outbound.messages[0].startswith("Analyze")


# =============================================================================
# Footer & text input
# =============================================================================


class TestSubmissions:
    def test_footer_adds_user_card(self) -> None:
        session = _session(footer={"type": "missing_input", "action": "call_tool"})
        dispatcher, outbound = _dispatcher(session)

        result = asyncio.run(dispatcher.submit_footer("  Visa rules  "))

        assert result.dispatched
        name, args = outbound.calls[0]
        assert name == "forge_update"
        assert args["components"] == [
            {"kind": "card", "id": "user-1700000000500", "title": "Visa rules", "dismissible": True}
        ]
        assert outbound.messages == []

    def test_footer_follow_up_notifies(self) -> None:
        session = _session(footer={"type": "missing_input", "action": "follow_up"})
        dispatcher, outbound = _dispatcher(session)
        asyncio.run(dispatcher.submit_footer("Visa rules"))
        assert len(outbound.messages) == 1
        assert '"Visa rules"' in outbound.messages[0]

    def test_blank_footer_ignored(self) -> None:
        dispatcher, outbound = _dispatcher(_session())
        result = asyncio.run(dispatcher.submit_footer("   "))
        assert not result.dispatched
        assert outbound.calls == []

    def test_text_input_add_factor(self) -> None:
        session = _session()
        session.set_state("extra", "Weather")
        dispatcher, outbound = _dispatcher(session)
        node = {"kind": "text_input", "stateKey": "extra", "submitAction": "add_factor"}
        asyncio.run(dispatcher.submit_text_input(node))
        assert outbound.calls[0][1]["components"][0]["title"] == "Weather"

    def test_text_input_follow_up(self) -> None:
        session = _session()
        session.set_state("q", "trains?")
        dispatcher, outbound = _dispatcher(session)
        node = {"kind": "text_input", "stateKey": "q", "submitAction": "follow_up", "submitMessage": "Question"}
        asyncio.run(dispatcher.submit_text_input(node))
        assert outbound.messages == ["Question: trains?"]

    def test_text_input_default(self) -> None:
        session = _session()
        session.set_state("notes", "hot")
        dispatcher, outbound = _dispatcher(session)
        node = {"kind": "text_input", "stateKey": "notes", "placeholder": "Add a note..."}
        asyncio.run(dispatcher.submit_text_input(node))
        assert outbound.messages == ['I filled in "Add a note...": hot']

    def test_text_input_empty_ignored(self) -> None:
        dispatcher, outbound = _dispatcher(_session())
        result = asyncio.run(dispatcher.submit_text_input({"kind": "text_input", "stateKey": "x"}))
        assert not result.dispatched


# =============================================================================
# Dismiss
# =============================================================================


class TestDismiss:
    def test_dual_effect_and_message(self) -> None:
        session = _session()
        dispatcher, outbound = _dispatcher(session)

        asyncio.run(dispatcher.dismiss("c1"))

        assert session.layout == []
        assert session.state["dismissed.c1"] is True
        assert outbound.messages == [
            'I dismissed "Paris" from my analysis. How does this change things?'
        ]

    def test_silent_dismiss(self) -> None:
        session = _session()
        dispatcher, outbound = _dispatcher(session)
        asyncio.run(dispatcher.dismiss("c1", notify=False))
        assert outbound.messages == []
        assert session.state["dismissed.c1"] is True

    def test_message_failure_keeps_dismissal(self) -> None:
        session = _session()
        dispatcher, _ = _dispatcher(session, RecordingOutbound(fail_messages=True))
        result = asyncio.run(dispatcher.dismiss("c1"))
        assert result.dispatched
        assert session.layout == []
        assert "chat closed" in session.drain_notices()[0].text
