"""MCP Server for Forge - interactive decision boards driven by an agent.

This server provides tools for:
- Rendering a board from a declarative spec and patching it in place
- Recording a verdict for the current analysis
- Interacting with the board (set values, switch tabs, click, dismiss, submit)
- Snapshots with compact refs, diffs between snapshots, and a PNG preview
- Saving and restoring sessions, and calling tools on connected servers
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from .client import ConnectedToolClient, result_payload
from .config import ForgeConfig
from .dispatch import ActionDispatcher
from .identity import get_user_id
from .nodes import find_nodes, is_container, iter_nodes, node_id
from .preview import render_preview
from .render import FOOTER_KEY, Control, RenderResult, controls_of, render_board
from .session import WorkspaceSession
from .state import STATE_ARGS_KEY, WIDGET_STATE_KEY, dismissed_key, summarize_state
from .store import LoadStatus, SessionStore, create_store
from .tracking import DiffTracker, RefManager, format_diff

config = ForgeConfig.from_env()

# Configure logging
logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# MCP Server instance
server = Server("forge-mcp")

DIRECTIVE_TOOLS = ("forge_view", "forge_update", "forge_conclude")


def directive_payload(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Wrap directive tool arguments in the envelope the classifier expects."""
    if name == "forge_view":
        return {"action": "render", "spec": arguments.get("spec")}
    if name == "forge_update":
        return {
            "action": "update",
            "operation": arguments.get("operation"),
            "components": arguments.get("components"),
            "ids": arguments.get("ids"),
            "patches": arguments.get("patches"),
        }
    if name == "forge_conclude":
        return {
            "action": "conclude",
            "verdict": {
                "winner": arguments.get("winner", ""),
                "confidence": arguments.get("confidence", 50),
                "reasoning": arguments.get("reasoning", ""),
                "next_steps": arguments.get("next_steps", []),
            },
        }
    raise ValueError(f"{name} is not a directive tool")


def verdict_request(args: dict[str, Any]) -> str:
    """Message asking the agent for a verdict, with the inputs a button passed."""
    inputs = args.get(STATE_ARGS_KEY) or args.get(WIDGET_STATE_KEY) or {}
    summary = summarize_state(inputs)
    text = "The user asked for a verdict. Call forge_conclude with your recommendation."
    return f"{text}\n\nUser inputs: {summary}" if summary else text


# =============================================================================
# Host: sessions, refs, outbox, connected servers
# =============================================================================


class HostOutbound:
    """Outbound side of the dispatcher for a running host.

    Directive tools loop straight back into the session. Any other tool is
    proxied to a connected server and its result applied as a directive.
    Messages are queued for the agent.
    """

    def __init__(self, host: ForgeHost) -> None:
        self.host = host

    async def call_tool(self, name: str, args: dict[str, Any]) -> Any:
        session = self.host.session
        if name == "forge_conclude" and not args.get("winner"):
            # No winner yet: ask the agent for a verdict instead.
            await self.send_message(verdict_request(args))
            return None
        if name in DIRECTIVE_TOOLS:
            return session.apply(directive_payload(name, args), source_tool=name)

        client = self.host.connected_for(name)
        tool = name.split(".", 1)[1] if name.startswith(f"{client.name}.") else name
        response = await client.call_tool(tool, args)
        if not response.success:
            raise RuntimeError(response.error or f"{name} failed")
        return session.apply(result_payload(response.data), source_tool=name)

    async def send_message(self, text: str) -> None:
        logger.info("Queued follow-up message (%d chars)", len(text))
        self.host.outbox.append(text)


class ForgeHost:
    """Everything the tools share between calls."""

    def __init__(self, store: SessionStore | None = None, cfg: ForgeConfig | None = None) -> None:
        self.config = cfg or config
        self.store = store or create_store(self.config.store_path)
        self.sessions: dict[str, WorkspaceSession] = {}
        self.current_id = ""
        self.refs = RefManager()
        self.diff = DiffTracker()
        self.outbox: list[str] = []
        self.connected: dict[str, ConnectedToolClient] = {}
        self.new_session()

    @property
    def session(self) -> WorkspaceSession:
        return self.sessions[self.current_id]

    def new_session(self, session: WorkspaceSession | None = None) -> WorkspaceSession:
        session = session or WorkspaceSession()
        if not session.session_id:
            session.session_id = uuid.uuid4().hex
        self.sessions[session.session_id] = session
        self.current_id = session.session_id
        self.refs.reset()
        self.diff.reset()
        return session

    def dispatcher(self) -> ActionDispatcher:
        return ActionDispatcher(self.session, HostOutbound(self))

    def connected_for(self, tool: str) -> ConnectedToolClient:
        """Connected server for a tool name: ``server.tool`` or the only one."""
        prefix = tool.split(".", 1)[0]
        if "." in tool and prefix in self.connected:
            return self.connected[prefix]
        if len(self.connected) == 1:
            return next(iter(self.connected.values()))
        raise LookupError(f"No connected server provides tool {tool!r}")

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render(self, agent_mode: bool = True) -> RenderResult:
        if agent_mode:
            self.refs.reset()
            return render_board(self.session, self.refs)
        return render_board(self.session)

    def find_control(self, target: str) -> Control | None:
        key = self.refs.resolve(target)
        controls = render_board(self.session).controls
        for node in iter_nodes(self.session.layout):
            # Leaves in unselected tabs are not drawn but stay addressable.
            if node_id(node) and node_id(node) not in controls and not is_container(node):
                for control in controls_of(self.session, node).values():
                    controls.setdefault(control.key, control)
        if key in controls:
            return controls[key]
        for control in controls.values():
            if control.state_key == key:
                return control
        return None

    def require_control(self, target: str) -> Control:
        control = self.find_control(target)
        if control is None:
            raise ValueError(
                f"No control {target!r} on the board. Take a new snapshot to see controls."
            )
        return control

    def drain_messages(self) -> list[str]:
        lines = [f"Message to agent: {text}" for text in self.outbox]
        self.outbox.clear()
        for notice in self.session.drain_notices():
            lines.append(f"Notice ({notice.level}): {notice.text}")
        return lines


host: ForgeHost | None = None


def get_host() -> ForgeHost:
    """Get or create the shared host."""
    global host
    if host is None:
        host = ForgeHost()
    return host


# =============================================================================
# Value coercion for set_state
# =============================================================================


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on", "1"):
            return True
        if lowered in ("false", "no", "off", "0", ""):
            return False
        raise ValueError(f"Expected a boolean, got {value!r}")
    return bool(value)


def coerce_control_value(control: Control, value: Any) -> Any:
    """Convert a tool-supplied value to what the control stores."""
    if control.bounds is not None:
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{control.label} expects a number, got {value!r}") from None
        low, high = control.bounds
        number = float(min(high, max(low, number)))
        return int(number) if number.is_integer() else number
    if control.kind == "toggle":
        return _parse_bool(value)
    if control.kind == "select":
        options = [opt.get("value") for opt in control.node.get("options") or []]
        for option in options:
            if option == value or str(option) == str(value):
                return option
        raise ValueError(f"{value!r} is not an option of {control.label}: {options}")
    return "" if value is None else str(value)


# =============================================================================
# Tool definitions
# =============================================================================

TOOLS = [
    types.Tool(
        name="forge_view",
        description="""Generate an interactive workspace for a decision, analysis, brainstorm, or thinking task.

You design the board by passing a JSON spec:
{
  "title": "The question or task",
  "subtitle": "Brief context (optional)",
  "icon": "emoji (optional)",
  "badge": "Mode label like 'Comparison Matrix' (optional)",
  "layout": [ ...component nodes... ],
  "actions": [ ...action buttons... ],
  "footer": { "type": "missing_input", "placeholder": "What am I missing?", "action": "call_tool", "toolName": "forge_update" }
}

Containers (hold children, max 1 level deep): row, columns, grid, stack, tabs.
- { "kind": "columns", "columns": 2, "gap": 16, "children": [...] }
- { "kind": "tabs", "tabLabels": ["Tab1","Tab2"], "children": [...] } - children split evenly across tabs

Leaves: heading, text, badge, divider, card, card_list, table, slider,
text_input, select, toggle, button, progress_bar, meter, scoreable_item,
argument_pair. The kind may also be given as "type".

STATE KEYS: inputs bind to stateKey. Sliders write state[stateKey] = value.
Composites write state[stateKey + "." + id]. Buttons and actions pass state
to tools via toolArgsFromState prefixes.

A spec with a new title starts a new problem and clears the user's inputs.
Rendering the same title again keeps them.""",
        inputSchema={
            "type": "object",
            "properties": {
                "spec": {
                    "description": "The board spec (object, or JSON text)",
                },
                "analysis": {
                    "type": "string",
                    "description": "2-3 sentence text analysis for the conversation",
                },
            },
            "required": ["spec"],
        },
    ),
    types.Tool(
        name="forge_update",
        description="""Update the current board by adding, removing, or modifying components.

Operations:
- "add": Append component nodes to the layout. Provide components.
- "remove": Remove components by id. Provide ids.
- "patch": Update fields of existing components by id. Provide patches of {id, changes}.

User inputs on the board are kept across updates.""",
        inputSchema={
            "type": "object",
            "properties": {
                "operation": {
                    "type": "string",
                    "enum": ["add", "remove", "patch"],
                    "description": "What kind of update",
                },
                "components": {
                    "description": "For 'add': array of component nodes",
                },
                "ids": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "For 'remove': component ids to remove",
                },
                "patches": {
                    "description": "For 'patch': array of {id, changes}",
                },
                "commentary": {
                    "type": "string",
                    "description": "Brief commentary about this update",
                },
            },
            "required": ["operation"],
        },
    ),
    types.Tool(
        name="forge_conclude",
        description=(
            "Record a conclusion or verdict for the current analysis. Reference the "
            "factors the user weighted highest or interacted with most. The board "
            "shows it as a verdict panel."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "winner": {
                    "type": "string",
                    "description": "The recommended option, decision, or top priority",
                },
                "confidence": {
                    "type": "number",
                    "minimum": 1,
                    "maximum": 100,
                    "description": "Confidence percentage",
                },
                "reasoning": {
                    "type": "string",
                    "description": "3-4 sentence personalized recommendation",
                },
                "next_steps": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Concrete next steps",
                },
            },
            "required": ["winner", "confidence", "reasoning"],
        },
    ),
    types.Tool(
        name="forge_apply",
        description="""Apply a raw directive payload in any accepted shape.

Accepts a spec, {spec: ...} (possibly nested or JSON text), an update
{operation, components/ids/patches}, or a verdict. Unrecognized payloads
are reported and change nothing.""",
        inputSchema={
            "type": "object",
            "properties": {
                "payload": {"description": "Directive payload (object or JSON text)"},
            },
            "required": ["payload"],
        },
    ),
    types.Tool(
        name="forge_snapshot",
        description="""Draw the current board.

Use agent_mode=true for compact refs (@e1, @e2) on interactive controls.
Use refs in forge_set_state, forge_click, forge_dismiss and friends.
Use include_image=true to also get a PNG preview.""",
        inputSchema={
            "type": "object",
            "properties": {
                "agent_mode": {
                    "type": "boolean",
                    "description": "Compact refs (@e1, @e2) for interactive controls.",
                    "default": True,
                },
                "include_image": {
                    "type": "boolean",
                    "description": "Also return a PNG preview of the board.",
                    "default": False,
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="forge_diff",
        description=(
            "Show what changed on the board since the previous forge_snapshot: "
            "controls that appeared, disappeared, or changed value."
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="forge_set_state",
        description=(
            "Set the value of an input control (slider, select, toggle, text_input, "
            "scored item, argument strength). Target is a ref (@e3), a node id, or "
            "a raw state key."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "target": {"type": "string", "description": "Ref, node id, or state key"},
                "value": {"description": "New value"},
            },
            "required": ["target", "value"],
        },
    ),
    types.Tool(
        name="forge_select_tab",
        description="Switch a tabs container to the tab at index (0-based).",
        inputSchema={
            "type": "object",
            "properties": {
                "target": {"type": "string", "description": "Ref or id of the tabs container"},
                "index": {"type": "integer", "description": "Tab index"},
            },
            "required": ["target", "index"],
        },
    ),
    types.Tool(
        name="forge_expand",
        description="Show or hide the detail of a card or scored item.",
        inputSchema={
            "type": "object",
            "properties": {
                "target": {"type": "string", "description": "Ref or id of the card"},
            },
            "required": ["target"],
        },
    ),
    types.Tool(
        name="forge_click",
        description=(
            "Click a button or a bottom action (action:<index>). Clicking a "
            "text_input submits its current value."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "target": {"type": "string", "description": "Ref, id, or action:<index>"},
            },
            "required": ["target"],
        },
    ),
    types.Tool(
        name="forge_dismiss",
        description="Dismiss a card, scored item, or argument. It disappears from the board.",
        inputSchema={
            "type": "object",
            "properties": {
                "target": {"type": "string", "description": "Ref or id"},
                "notify": {
                    "type": "boolean",
                    "description": "Send a follow-up message about the dismissal.",
                    "default": True,
                },
            },
            "required": ["target"],
        },
    ),
    types.Tool(
        name="forge_submit",
        description="Submit text through the board's \"What am I missing?\" footer.",
        inputSchema={
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "The consideration to add"},
                "notify": {
                    "type": "boolean",
                    "description": "Also ask the agent to incorporate it.",
                    "default": False,
                },
            },
            "required": ["text"],
        },
    ),
    types.Tool(
        name="forge_messages",
        description="Drain follow-up messages and notices produced by board interactions.",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="forge_save",
        description="Save the current board, user inputs, and verdict. Returns the session id.",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="forge_load",
        description="Restore a saved session by id.",
        inputSchema={
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "Session id from forge_save"},
            },
            "required": ["session_id"],
        },
    ),
    types.Tool(
        name="forge_sessions",
        description="List your saved sessions, most recently updated first.",
        inputSchema={
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "description": "Max sessions to list"},
            },
            "required": [],
        },
    ),
    types.Tool(
        name="forge_connect",
        description="Register a connected tool server reachable over HTTP JSON-RPC.",
        inputSchema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name to register the server under"},
                "url": {"type": "string", "description": "JSON-RPC endpoint URL"},
            },
            "required": ["name", "url"],
        },
    ),
    types.Tool(
        name="forge_connected_call",
        description="Call a tool on a connected server and return its raw result.",
        inputSchema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Connected server name"},
                "tool": {"type": "string", "description": "Tool to call"},
                "arguments": {"type": "object", "description": "Tool arguments"},
            },
            "required": ["name", "tool"],
        },
    ),
]


@server.list_tools()  # type: ignore
async def list_tools() -> list[types.Tool]:
    """List available Forge tools."""
    return TOOLS


def _text(text: str) -> types.TextContent:
    return types.TextContent(type="text", text=text)


def _with_messages(forge: ForgeHost, contents: list[Any]) -> list[Any]:
    messages = forge.drain_messages()
    if messages:
        contents.append(_text("\n".join(messages)))
    return contents


@server.call_tool()  # type: ignore
async def call_tool(
    name: str, arguments: dict[str, Any]
) -> list[types.TextContent | types.ImageContent]:
    """Handle tool calls."""
    forge = get_host()
    arguments = arguments or {}
    user_id = get_user_id(arguments.get("_context"), forge.config.user_id)

    try:
        # Directives
        if name in DIRECTIVE_TOOLS or name == "forge_apply":
            had_board = forge.session.spec is not None
            if name == "forge_apply":
                outcome = forge.session.apply(arguments.get("payload"))
                lead = ""
            else:
                outcome = forge.session.apply(directive_payload(name, arguments), source_tool=name)
                lead = (
                    arguments.get("analysis")
                    or arguments.get("commentary")
                    or arguments.get("reasoning")
                    or ""
                )
            if not outcome.applied:
                return [_text(f"Not applied ({outcome.directive.kind}): {outcome.message}")]
            contents: list[Any] = [_text(lead)] if lead else []
            if outcome.reset_state and had_board:
                contents.append(_text("New problem: previous inputs and verdict cleared."))
            contents.append(_text(forge.render().text))
            return _with_messages(forge, contents)

        # Snapshot & diff
        elif name == "forge_snapshot":
            agent_mode = arguments.get("agent_mode", True)
            include_image = arguments.get("include_image", False)
            result = forge.render(agent_mode)
            forge.diff.update_and_diff(result.elements)
            lines = list(result.lines)
            if result.failures:
                lines.append(f"\n({len(result.failures)} component(s) failed to render)")
            contents = [_text("\n".join(lines))]
            if include_image:
                accent = ((forge.session.spec or {}).get("theme") or {}).get("accent")
                contents.append(
                    types.ImageContent(
                        type="image", data=render_preview(result, accent), mimeType="image/png"
                    )
                )
            return _with_messages(forge, contents)

        elif name == "forge_diff":
            result = render_board(forge.session)
            diff = forge.diff.update_and_diff(result.elements)
            if diff is None:
                return [_text("No previous snapshot. Baseline stored; call forge_diff again after changes.")]
            return [_text(format_diff(diff, forge.refs))]

        # Interaction
        elif name == "forge_set_state":
            target = arguments["target"]
            value = arguments.get("value")
            control = forge.find_control(target)
            if control is not None and control.state_key:
                key = control.state_key
                value = coerce_control_value(control, value)
            elif target.startswith("@e") or find_nodes(forge.session.layout, target):
                raise ValueError(f"{target} is not an input control")
            else:
                key = target
            forge.session.set_state(key, value)
            return [_text(f"Set {key} = {value!r}"), _text(forge.render().text)]

        elif name == "forge_select_tab":
            control = forge.require_control(arguments["target"])
            if control.kind != "tabs":
                raise ValueError(f"{arguments['target']} is a {control.kind}, not a tabs container")
            labels = control.node.get("tabLabels") or []
            index = int(arguments["index"])
            if not 0 <= index < len(labels):
                raise ValueError(f"Tab index {index} out of range (0-{len(labels) - 1})")
            forge.session.view.selected_tabs[control.key] = index
            return [_text(f"Selected tab {labels[index]!r}"), _text(forge.render().text)]

        elif name == "forge_expand":
            control = forge.require_control(arguments["target"])
            expanded = forge.session.view.expanded
            if control.key in expanded:
                expanded.discard(control.key)
                verb = "Collapsed"
            else:
                expanded.add(control.key)
                verb = "Expanded"
            return [_text(f"{verb} {control.label!r}"), _text(forge.render().text)]

        elif name == "forge_click":
            control = forge.require_control(arguments["target"])
            dispatcher = forge.dispatcher()
            if control.kind in ("button", "action"):
                dispatched = await dispatcher.click(control.node)
            elif control.kind == "text_input":
                dispatched = await dispatcher.submit_text_input(control.node)
            elif control.key == FOOTER_KEY:
                raise ValueError("Use forge_submit to send text through the footer")
            else:
                raise ValueError(f"{control.label!r} ({control.kind}) is not clickable")
            return _with_messages(
                forge, [_text(dispatched.description), _text(forge.render().text)]
            )

        elif name == "forge_dismiss":
            target = arguments["target"]
            notify = arguments.get("notify", True)
            dispatcher = forge.dispatcher()
            control = forge.find_control(target)
            if control is not None and control.dismiss_id:
                if control.dismiss_scope:
                    forge.session.set_state(dismissed_key(control.dismiss_scope), True)
                dispatched = await dispatcher.dismiss(control.dismiss_id, control.label, notify)
            elif control is None and any(
                node.get("dismissible") for node in find_nodes(forge.session.layout, target)
            ):
                dispatched = await dispatcher.dismiss(target, notify=notify)
            else:
                raise ValueError(f"{target} cannot be dismissed")
            return _with_messages(
                forge, [_text(dispatched.description), _text(forge.render().text)]
            )

        elif name == "forge_submit":
            if forge.session.spec is None:
                return [_text("No board yet. Call forge_view first.")]
            dispatched = await forge.dispatcher().submit_footer(
                arguments.get("text", ""), notify=arguments.get("notify", False)
            )
            return _with_messages(
                forge, [_text(dispatched.description), _text(forge.render().text)]
            )

        elif name == "forge_messages":
            messages = forge.drain_messages()
            return [_text("\n".join(messages) if messages else "No pending messages.")]

        # Persistence
        elif name == "forge_save":
            session = forge.session
            if session.spec is None:
                return [_text("Nothing to save: no board yet.")]
            record = session.to_record()
            session_id = forge.store.save(
                user_id,
                session.session_id,
                session.title or "",
                record["spec"],
                record["widgetState"],
                record["verdict"],
            )
            return [_text(f"Saved session {session_id}")]

        elif name == "forge_load":
            session_id = arguments["session_id"]
            loaded = forge.store.load(user_id, session_id)
            if loaded.status is LoadStatus.NOT_FOUND:
                return [_text(f"Session {session_id} not found.")]
            if loaded.status is LoadStatus.ACCESS_DENIED:
                return [_text(f"Access denied: session {session_id} belongs to another user.")]
            forge.new_session(WorkspaceSession.from_record(loaded.record or {}, session_id))
            return [_text(f"Loaded session {session_id}"), _text(forge.render().text)]

        elif name == "forge_sessions":
            limit = int(arguments.get("limit") or forge.config.session_list_limit)
            summaries = forge.store.list(user_id, limit)
            if not summaries:
                return [_text("No saved sessions.")]
            lines = [f"Sessions ({len(summaries)}):"]
            for s in summaries:
                lines.append(f"  {s.session_id}  {s.title}  (updated {s.updated_at})")
            return [_text("\n".join(lines))]

        # Connected servers
        elif name == "forge_connect":
            server_name = arguments["name"]
            client = ConnectedToolClient(
                server_name, arguments["url"], timeout=forge.config.connected_timeout
            )
            response = await client.list_tools()
            if not response.success:
                await client.close()
                return [_text(f"Could not connect to {server_name}: {response.error}")]
            previous = forge.connected.pop(server_name, None)
            if previous is not None:
                await previous.close()
            forge.connected[server_name] = client
            tools = [t.get("name", "?") for t in (response.data or {}).get("tools", [])]
            return [_text(f"Connected {server_name} ({len(tools)} tools): {', '.join(tools)}")]

        elif name == "forge_connected_call":
            server_name = arguments["name"]
            client = forge.connected.get(server_name)
            if client is None:
                return [_text(f"Unknown connected server: {server_name}")]
            response = await client.call_tool(arguments["tool"], arguments.get("arguments") or {})
            if not response.success:
                return [_text(f"Error: {response.error}")]
            return [_text(json.dumps(response.data, indent=2))]

        else:
            return [_text(f"Unknown tool: {name}")]

    except Exception as e:
        logger.exception(f"Error calling tool {name}")
        return [_text(f"Error: {str(e)}")]


async def main() -> None:
    """Run the MCP server."""
    logger.info("Starting Forge MCP server")

    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def run() -> None:
    """Entry point for the MCP server."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
