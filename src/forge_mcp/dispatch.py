"""Action dispatcher: turns user interactions into outbound calls.

Clicks, footer submissions, text-input submissions and dismissals are
translated into ``call_tool`` / ``send_message`` requests on an ``Outbound``
collaborator. Results are not awaited as UI state; they come back later as
new directives on the session. Delivery failures never propagate: they are
recorded as notices on the session.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .nodes import find_nodes, node_kind, node_title
from .session import WorkspaceSession
from .state import STATE_ARGS_KEY, WIDGET_STATE_KEY, collect_by_prefix, summarize_state

logger = logging.getLogger(__name__)

UPDATE_TOOL = "forge_update"
DEFAULT_FOLLOW_UP = "Analyze"
FOLLOW_UP_INSTRUCTION = (
    "IMPORTANT: Use forge_update to add results as new components in the "
    "workspace, then summarize in chat."
)


class Outbound(Protocol):
    """Where dispatched tool calls and conversational messages go."""

    async def call_tool(self, name: str, args: dict[str, Any]) -> Any: ...

    async def send_message(self, text: str) -> None: ...


@dataclass
class DispatchResult:
    dispatched: bool
    description: str


class ActionDispatcher:
    """Dispatches interactions for one session."""

    def __init__(
        self,
        session: WorkspaceSession,
        outbound: Outbound,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session = session
        self.outbound = outbound
        self._clock = clock

    def _stamp(self) -> int:
        return int(self._clock() * 1000)

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def _call(self, name: str, args: dict[str, Any]) -> bool:
        if name in self.session.pending_tools:
            logger.info("Dropping duplicate %s call: already pending", name)
            return False
        self.session.pending_tools.add(name)
        try:
            await self.outbound.call_tool(name, args)
        except Exception as e:
            logger.warning("Tool call %s failed: %s", name, e)
            self.session.pending_tools.discard(name)
            self.session.notify(f"Could not reach {name}: {e}")
            return False
        return True

    async def _send(self, text: str) -> bool:
        try:
            await self.outbound.send_message(text)
        except Exception as e:
            logger.warning("Follow-up message failed: %s", e)
            self.session.notify(f"Could not send message: {e}")
            return False
        return True

    async def _add_card(self, card: dict[str, Any], commentary: str) -> bool:
        return await self._call(
            UPDATE_TOOL,
            {"operation": "add", "components": [card], "commentary": commentary},
        )

    # -------------------------------------------------------------------------
    # Interactions
    # -------------------------------------------------------------------------

    def tool_args(self, node: dict[str, Any]) -> dict[str, Any]:
        """Arguments for a call_tool button or action.

        ``toolArgs`` are copied; prefixes in ``toolArgsFromState`` collect
        matching WidgetState entries under ``_stateArgs``; the whole
        WidgetState rides along under ``_widgetState``.
        """
        args = copy.deepcopy(node.get("toolArgs") or {})
        prefixes = node.get("toolArgsFromState")
        if isinstance(prefixes, list):
            args[STATE_ARGS_KEY] = collect_by_prefix(self.session.state, prefixes)
        args[WIDGET_STATE_KEY] = copy.deepcopy(self.session.state)
        return args

    async def click(self, node: dict[str, Any]) -> DispatchResult:
        """Handle a click on a button node or a spec-level action."""
        if node.get("disabled"):
            return DispatchResult(False, "button is disabled")
        action = node.get("action")
        label = str(node.get("label") or "")

        if action == "call_tool":
            tool = node.get("toolName")
            if not tool:
                return DispatchResult(False, f'"{label}" has no toolName')
            if tool in self.session.pending_tools:
                return DispatchResult(False, f"{tool} is already running")
            sent = await self._call(tool, self.tool_args(node))
            return DispatchResult(sent, f"called {tool}" if sent else f"{tool} failed")

        if action == "follow_up":
            message = str(node.get("message") or label or DEFAULT_FOLLOW_UP)
            summary = summarize_state(self.session.state)
            parts = [message]
            if summary:
                parts.append(f"User inputs: {summary}")
            parts.append(FOLLOW_UP_INSTRUCTION)
            sent = await self._send("\n\n".join(parts))
            await self._add_card(
                {
                    "kind": "card",
                    "id": f"action-{self._stamp()}",
                    "title": f"{label or DEFAULT_FOLLOW_UP}: Processing...",
                    "detail": summary or "Waiting for AI response in chat.",
                    "dismissible": True,
                },
                f"User clicked: {label}",
            )
            return DispatchResult(sent, "follow-up sent" if sent else "follow-up failed")

        return DispatchResult(False, f"unsupported action {action!r}")

    async def submit_footer(self, text: str, notify: bool = False) -> DispatchResult:
        """Add the user's "what am I missing" text to the board as a card."""
        text = text.strip()
        if not text:
            return DispatchResult(False, "empty submission ignored")
        added = await self._add_card(
            {"kind": "card", "id": f"user-{self._stamp()}", "title": text, "dismissible": True},
            f'User added: "{text}"',
        )
        footer = (self.session.spec or {}).get("footer") or {}
        if notify or footer.get("action") == "follow_up":
            lead = footer.get("message") or "I added a consideration"
            await self._send(f'{lead}: "{text}". Please factor it into the analysis.')
        return DispatchResult(added, "consideration added" if added else "could not add consideration")

    async def submit_text_input(self, node: dict[str, Any]) -> DispatchResult:
        """Submit the current value of a text_input node."""
        state_key = node.get("stateKey")
        value = str(self.session.state.get(state_key) or "").strip() if state_key else ""
        if not value:
            return DispatchResult(False, "empty input ignored")

        submit_action = node.get("submitAction")
        if submit_action == "add_factor":
            added = await self._add_card(
                {"kind": "card", "id": f"user-{self._stamp()}", "title": value, "dismissible": True},
                f'User added: "{value}"',
            )
            return DispatchResult(added, "factor added" if added else "could not add factor")

        if submit_action == "follow_up":
            message = node.get("submitMessage")
            text = f"{message}: {value}" if message else value
        else:
            text = f'I filled in "{node.get("placeholder") or state_key}": {value}'
        sent = await self._send(text)
        return DispatchResult(sent, "message sent" if sent else "message failed")

    async def dismiss(
        self, target_id: str, title: str | None = None, notify: bool = True
    ) -> DispatchResult:
        """Hide a node: remove it from the tree and set its dismissal marker."""
        if title is None:
            matches = find_nodes(self.session.layout, target_id)
            title = node_title(matches[0]) if matches else target_id
            if matches:
                logger.debug("Dismissing %s node %s", node_kind(matches[0]), target_id)
        self.session.dismiss(target_id)
        if notify:
            await self._send(
                f'I dismissed "{title}" from my analysis. How does this change things?'
            )
        return DispatchResult(True, f'dismissed "{title}"')
