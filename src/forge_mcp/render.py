"""Text renderer for Forge boards.

Walks the layout top to bottom and draws a compact, agent-readable board.
Each leaf kind has a ``LeafRenderer``; each container kind has a
``ContainerLayoutStrategy``. Interactive parts of the board are registered
as ``Control`` entries so later interaction tools can address them by ref
(@e1), node id, or derived key.

A leaf renderer that raises is replaced by a placeholder line and the rest
of the board still renders.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from .nodes import children_of, is_container, node_id, node_kind
from .session import WorkspaceSession
from .state import composite_key, is_dismissed, resolve_value
from .tracking import RefManager

logger = logging.getLogger(__name__)

DEFAULT_GAP = 16
STACK_GAP = 12
DEFAULT_COLUMNS = 2
BAR_WIDTH = 10
ARGUMENT_STRENGTH_BOUNDS = (1.0, 10.0)

FOOTER_KEY = "footer"


@dataclass
class Control:
    """An addressable interactive part of the rendered board."""

    key: str
    kind: str
    label: str
    node: dict[str, Any]
    state_key: str | None = None
    value: Any = None
    dismiss_id: str | None = None
    dismiss_scope: str | None = None
    bounds: tuple[float, float] | None = None
    ref: str | None = None


@dataclass
class RenderResult:
    lines: list[str] = field(default_factory=list)
    controls: dict[str, Control] = field(default_factory=dict)
    elements: list[dict[str, Any]] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def find_control(self, key: str) -> Control | None:
        return self.controls.get(key)


class RenderContext:
    """Per-render inputs plus the result being built."""

    def __init__(
        self,
        session: WorkspaceSession,
        refs: RefManager | None = None,
    ) -> None:
        self.state = session.state
        self.view = session.view
        self.pending_tools = session.pending_tools
        self.refs = refs
        self.result = RenderResult()

    def add_control(self, control: Control) -> str:
        """Register a control, returning the ref prefix for its line."""
        if self.refs is not None:
            control.ref = self.refs.assign(control.key)
        self.result.controls[control.key] = control
        return f"{control.ref} " if control.ref else ""

    def add_element(
        self, key: str, kind: str, label: str, value: Any = None, pending: bool = False
    ) -> None:
        self.result.elements.append(
            {"key": key, "kind": kind, "label": label, "value": value, "pending": pending}
        )


# =============================================================================
# Helpers
# =============================================================================


def _as_number(value: Any, default: float = 0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return float(default)
    return number if math.isfinite(number) else float(default)


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _bar(pct: float, width: int = BAR_WIDTH) -> str:
    pct = min(100.0, max(0.0, pct))
    filled = round(pct / 100 * width)
    return "[" + "#" * filled + "-" * (width - filled) + "]"


def _split_bar(pct_left: int, width: int = BAR_WIDTH * 2) -> str:
    left = round(pct_left / 100 * width)
    return "|" + "<" * left + ">" * (width - left) + "|"


def _percent_split(left: float, right: float) -> tuple[int, int]:
    total = left + right or 1
    pct_left = round(left / total * 100)
    return pct_left, 100 - pct_left


def leaf_key(node: dict[str, Any], path: str) -> str:
    """Addressing key of a leaf: its id, or ``<kind>@<path>`` when it has none."""
    return node_id(node) or f"{node_kind(node) or 'node'}@{path}"


# =============================================================================
# Leaf renderers
# =============================================================================


class LeafRenderer:
    """Draws one leaf kind. Subclasses set ``kind`` and implement ``render``."""

    kind = ""

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        raise NotImplementedError


class NullRenderer(LeafRenderer):
    """Unknown kinds draw nothing but stay in the tree for patching."""

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        return []


class HeadingRenderer(LeafRenderer):
    kind = "heading"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        level = node.get("level", 2)
        level = level if level in (1, 2, 3) else 2
        return [f"{'#' * level} {node.get('text', '')}"]


class TextRenderer(LeafRenderer):
    kind = "text"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        text = str(node.get("text", ""))
        if node.get("size") == "lg":
            text = text.upper()
        return text.splitlines() or [""]


class BadgeRenderer(LeafRenderer):
    kind = "badge"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        return [f"[{node.get('text', '')}]"]


class DividerRenderer(LeafRenderer):
    kind = "divider"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        return ["-" * 40]


def _card_lines(
    ctx: RenderContext,
    key: str,
    item: dict[str, Any],
    kind: str,
    dismiss_id: str | None,
) -> list[str]:
    title = str(item.get("title", ""))
    detail = item.get("detail")
    prefix = ""
    if dismiss_id or detail:
        prefix = ctx.add_control(
            Control(key=key, kind=kind, label=title, node=item, dismiss_id=dismiss_id)
        )
    flags = []
    if dismiss_id:
        flags.append("dismissible")
    if detail and key not in ctx.view.expanded:
        flags.append("more")
    suffix = f" ({', '.join(flags)})" if flags else ""
    lines = [f"{prefix}[card] {title}{suffix}"]
    if detail and key in ctx.view.expanded:
        lines.extend(f"    {line}" for line in str(detail).splitlines())
    return lines


class CardRenderer(LeafRenderer):
    kind = "card"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        dismiss_id = node_id(node) if node.get("dismissible") else None
        ctx.add_element(key, self.kind, str(node.get("title", "")))
        return _card_lines(ctx, key, node, self.kind, dismiss_id)


class CardListRenderer(LeafRenderer):
    kind = "card_list"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        lines: list[str] = []
        for item in node.get("items") or []:
            item_id = node_id(item)
            if item_id and is_dismissed(ctx.state, item_id):
                continue
            item_key = item_id or f"{key}/{len(lines)}"
            dismiss_id = item_id if item.get("dismissible") else None
            ctx.add_element(item_key, "card", str(item.get("title", "")))
            lines.extend(_card_lines(ctx, item_key, item, "card", dismiss_id))
        return lines


class TableRenderer(LeafRenderer):
    kind = "table"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        headers = node.get("headers") or []
        if not headers:
            return []
        highlight = node.get("highlightKey")
        labels = []
        for h in headers:
            label = f"{h['emoji']} {h.get('label', '')}" if h.get("emoji") else str(h.get("label", ""))
            labels.append(f"*{label}*" if h.get("key") == highlight else label)
        lines = [
            "| " + " | ".join(labels) + " |",
            "|" + "|".join("---" for _ in headers) + "|",
        ]
        for row in node.get("rows") or []:
            cells = [str(row.get(h.get("key"), "")).replace("|", "\\|") for h in headers]
            lines.append("| " + " | ".join(cells) + " |")
        return lines


class SliderRenderer(LeafRenderer):
    kind = "slider"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        state_key = node.get("stateKey")
        low = _as_number(node.get("min"), 1)
        high = _as_number(node.get("max"), 10)
        value = _as_number(resolve_value(ctx.state, state_key, node.get("value")), low)
        label = str(node.get("label") or state_key or "Slider")
        prefix = ctx.add_control(
            Control(
                key=key,
                kind=self.kind,
                label=label,
                node=node,
                state_key=state_key,
                value=value,
                bounds=(low, high),
            )
        )
        ctx.add_element(key, self.kind, label, value)
        pct = (value - low) / (high - low) * 100 if high != low else 100
        ends = ""
        if node.get("lowLabel") or node.get("highLabel"):
            ends = f" {node.get('lowLabel', '')} .. {node.get('highLabel', '')}"
        return [
            f"{prefix}{label}: {_fmt_number(value)} {_bar(pct)} "
            f"({_fmt_number(low)}-{_fmt_number(high)}){ends}"
        ]


class TextInputRenderer(LeafRenderer):
    kind = "text_input"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        state_key = node.get("stateKey")
        value = resolve_value(ctx.state, state_key, "")
        label = str(node.get("placeholder") or state_key or "Input")
        prefix = ctx.add_control(
            Control(key=key, kind=self.kind, label=label, node=node, state_key=state_key, value=value)
        )
        ctx.add_element(key, self.kind, label, value)
        shown = f'"{value}"' if value else "(empty)"
        return [f"{prefix}{label}: {shown}"]


class SelectRenderer(LeafRenderer):
    kind = "select"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        state_key = node.get("stateKey")
        options = node.get("options") or []
        value = resolve_value(ctx.state, state_key, node.get("value", ""))
        label = str(node.get("label") or state_key or "Select")
        prefix = ctx.add_control(
            Control(key=key, kind=self.kind, label=label, node=node, state_key=state_key, value=value)
        )
        ctx.add_element(key, self.kind, label, value)
        choices = []
        for opt in options:
            text = str(opt.get("label", opt.get("value", "")))
            choices.append(f"({text})" if opt.get("value") == value else text)
        return [f"{prefix}{label}: {' | '.join(choices)}"]


class ToggleRenderer(LeafRenderer):
    kind = "toggle"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        state_key = node.get("stateKey")
        checked = bool(resolve_value(ctx.state, state_key, node.get("value", False)))
        label = str(node.get("label", state_key or ""))
        prefix = ctx.add_control(
            Control(key=key, kind=self.kind, label=label, node=node, state_key=state_key, value=checked)
        )
        ctx.add_element(key, self.kind, label, checked)
        return [f"{prefix}[{'x' if checked else ' '}] {label}"]


def is_pending(node: dict[str, Any], pending_tools: set[str]) -> bool:
    return node.get("action") == "call_tool" and node.get("toolName") in pending_tools


def button_line(
    prefix: str, node: dict[str, Any], pending_tools: set[str]
) -> str:
    label = str(node.get("label", ""))
    if node.get("icon"):
        label = f"{node['icon']} {label}"
    if is_pending(node, pending_tools):
        label = "Working..."
    flags = []
    if node.get("variant") and node.get("variant") != "primary":
        flags.append(str(node["variant"]))
    if node.get("disabled"):
        flags.append("disabled")
    suffix = f" ({', '.join(flags)})" if flags else ""
    return f"{prefix}<{label}>{suffix}"


class ButtonRenderer(LeafRenderer):
    kind = "button"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        label = str(node.get("label", ""))
        prefix = ""
        if not node.get("disabled"):
            prefix = ctx.add_control(Control(key=key, kind=self.kind, label=label, node=node))
        ctx.add_element(key, self.kind, label, pending=is_pending(node, ctx.pending_tools))
        return [button_line(prefix, node, ctx.pending_tools)]


class ProgressBarRenderer(LeafRenderer):
    kind = "progress_bar"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        value = min(100.0, max(0.0, _as_number(node.get("value"))))
        label = node.get("label")
        ctx.add_element(key, self.kind, str(label or ""), value)
        head = f"{label}: " if label else ""
        return [f"{head}{_bar(value)} {_fmt_number(value)}%"]


class MeterRenderer(LeafRenderer):
    kind = "meter"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        pct_left, pct_right = _percent_split(
            _as_number(node.get("leftValue")), _as_number(node.get("rightValue"))
        )
        return [
            f"{node.get('leftLabel', '')} {pct_left}% {_split_bar(pct_left)} "
            f"{pct_right}% {node.get('rightLabel', '')}"
        ]


class ScoreableItemRenderer(LeafRenderer):
    kind = "scoreable_item"

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        item_id = node_id(node) or key
        state_key = composite_key(str(node.get("stateKey", "scores")), item_id)
        low = _as_number(node.get("scoreMin"), 0)
        high = _as_number(node.get("scoreMax"), 100)
        score = _as_number(resolve_value(ctx.state, state_key, node.get("score")), low)
        title = str(node.get("title", ""))
        prefix = ctx.add_control(
            Control(
                key=key,
                kind=self.kind,
                label=title,
                node=node,
                state_key=state_key,
                value=score,
                dismiss_id=node_id(node) if node.get("dismissible") else None,
                bounds=(low, high),
            )
        )
        ctx.add_element(key, self.kind, title, score)
        pct = (score - low) / (high - low) * 100 if high != low else 100
        suffix = " (dismissible)" if node.get("dismissible") else ""
        lines = [f"{prefix}{title}: {_fmt_number(score)} {_bar(pct)}{suffix}"]
        if node.get("description"):
            lines.append(f"    {node['description']}")
        if node.get("reasoning") and key in ctx.view.expanded:
            lines.append(f"    Why: {node['reasoning']}")
        return lines


class ArgumentPairRenderer(LeafRenderer):
    kind = "argument_pair"

    def _side(
        self, node: dict[str, Any], ctx: RenderContext, side: str
    ) -> tuple[str, list[tuple[dict[str, Any], float, str]]]:
        prefix = str(node.get("stateKeyPrefix", "args"))
        data = node.get("sideA" if side == "a" else "sideB") or {}
        visible = []
        for arg in data.get("arguments") or []:
            arg_id = str(arg.get("id", ""))
            sub_id = composite_key(prefix, side, arg_id)
            if is_dismissed(ctx.state, sub_id):
                continue
            strength = _as_number(resolve_value(ctx.state, sub_id, arg.get("strength")), 5)
            visible.append((arg, strength, sub_id))
        return str(data.get("label", "Side A" if side == "a" else "Side B")), visible

    def render(self, node: dict[str, Any], ctx: RenderContext, key: str) -> list[str]:
        label_a, args_a = self._side(node, ctx, "a")
        label_b, args_b = self._side(node, ctx, "b")
        lines: list[str] = []
        if node.get("showMeter", True) is not False:
            pct_a, pct_b = _percent_split(
                sum(s for _, s, _ in args_a), sum(s for _, s, _ in args_b)
            )
            lines.append(f"{label_a} {pct_a}% {_split_bar(pct_a)} {pct_b}% {label_b}")
        for label, args in ((label_a, args_a), (label_b, args_b)):
            lines.append(f"{label}:")
            if not args:
                lines.append("  All arguments dismissed")
            for arg, strength, sub_id in args:
                title = str(arg.get("title", ""))
                arg_key = f"{key}/{sub_id}"
                prefix = ctx.add_control(
                    Control(
                        key=arg_key,
                        kind="argument",
                        label=title,
                        node=arg,
                        state_key=sub_id,
                        value=strength,
                        dismiss_id=str(arg.get("id", "")) if node.get("dismissible") else None,
                        dismiss_scope=sub_id,
                        bounds=ARGUMENT_STRENGTH_BOUNDS,
                    )
                )
                ctx.add_element(arg_key, "argument", title, strength)
                lines.append(f"  {prefix}{title}: {_fmt_number(strength)} {_bar(strength * 10)}")
        return lines


LEAF_RENDERERS: dict[str, LeafRenderer] = {
    r.kind: r
    for r in (
        HeadingRenderer(),
        TextRenderer(),
        BadgeRenderer(),
        DividerRenderer(),
        CardRenderer(),
        CardListRenderer(),
        TableRenderer(),
        SliderRenderer(),
        TextInputRenderer(),
        SelectRenderer(),
        ToggleRenderer(),
        ButtonRenderer(),
        ProgressBarRenderer(),
        MeterRenderer(),
        ScoreableItemRenderer(),
        ArgumentPairRenderer(),
    )
}

NULL_RENDERER = NullRenderer()


def renderer_for(kind: str) -> LeafRenderer:
    return LEAF_RENDERERS.get(kind, NULL_RENDERER)


def render_leaf(node: dict[str, Any], ctx: RenderContext, path: str) -> list[str]:
    """Render one leaf, isolating failures to a placeholder line."""
    kind = node_kind(node)
    key = leaf_key(node, path)
    controls_before = dict(ctx.result.controls)
    elements_before = len(ctx.result.elements)
    refs_before = ctx.refs.mark() if ctx.refs is not None else 0
    try:
        return renderer_for(kind).render(node, ctx, key)
    except Exception:
        logger.exception("Leaf %s (%s) failed to render", key, kind or "?")
        ctx.result.controls = controls_before
        del ctx.result.elements[elements_before:]
        if ctx.refs is not None:
            ctx.refs.rollback(refs_before)
        ctx.result.failures.append(kind or "?")
        return [f"[! {kind or 'component'} failed to render]"]


def controls_of(session: WorkspaceSession, node: dict[str, Any]) -> dict[str, Control]:
    """Controls a leaf registers when drawn, whether or not its tab is selected."""
    ctx = RenderContext(session)
    render_leaf(node, ctx, "detached")
    return ctx.result.controls


# =============================================================================
# Container layout strategies
# =============================================================================


class ContainerLayoutStrategy:
    """Lays out one container kind's children."""

    kind = ""
    default_gap = DEFAULT_GAP

    def gap(self, node: dict[str, Any]) -> int:
        gap = node.get("gap")
        return gap if isinstance(gap, int) and not isinstance(gap, bool) else self.default_gap

    def header(self, node: dict[str, Any], ctx: RenderContext, key: str) -> str:
        return f"{self.kind} (gap {self.gap(node)}):"

    def visible_children(
        self, node: dict[str, Any], ctx: RenderContext, key: str
    ) -> list[tuple[int, dict[str, Any]]]:
        return list(enumerate(children_of(node)))


class RowLayout(ContainerLayoutStrategy):
    kind = "row"


class StackLayout(ContainerLayoutStrategy):
    kind = "stack"
    default_gap = STACK_GAP


class ColumnsLayout(ContainerLayoutStrategy):
    kind = "columns"

    def header(self, node: dict[str, Any], ctx: RenderContext, key: str) -> str:
        columns = node.get("columns") or DEFAULT_COLUMNS
        return f"{self.kind} ({columns} cols, gap {self.gap(node)}):"


class GridLayout(ColumnsLayout):
    kind = "grid"


def tab_chunks(children: list[Any], label_count: int) -> list[list[Any]]:
    """Split children into contiguous chunks of ceil(n / labels), one per label."""
    labels = max(label_count, 1)
    per_tab = math.ceil(len(children) / labels) if children else 0
    if per_tab == 0:
        return [[] for _ in range(labels)]
    return [children[i * per_tab:(i + 1) * per_tab] for i in range(labels)]


class TabsLayout(ContainerLayoutStrategy):
    kind = "tabs"

    def _labels(self, node: dict[str, Any]) -> list[str]:
        labels = node.get("tabLabels")
        return [str(label) for label in labels] if isinstance(labels, list) else []

    def gap(self, node: dict[str, Any]) -> int:
        if not self._labels(node):
            return CONTAINER_LAYOUTS["stack"].gap(node)
        return super().gap(node)

    def selected(self, node: dict[str, Any], ctx: RenderContext, key: str) -> int:
        labels = self._labels(node)
        index = ctx.view.selected_tabs.get(key, 0)
        return index if 0 <= index < len(labels) else 0

    def header(self, node: dict[str, Any], ctx: RenderContext, key: str) -> str:
        labels = self._labels(node)
        if not labels:
            return f"stack (gap {self.gap(node)}):"
        active = self.selected(node, ctx, key)
        prefix = ctx.add_control(
            Control(key=key, kind=self.kind, label=" | ".join(labels), node=node, value=active)
        )
        tabs = " | ".join(f"[{label}]" if i == active else label for i, label in enumerate(labels))
        return f"{prefix}tabs: {tabs}"

    def visible_children(
        self, node: dict[str, Any], ctx: RenderContext, key: str
    ) -> list[tuple[int, dict[str, Any]]]:
        labels = self._labels(node)
        indexed = list(enumerate(children_of(node)))
        if not labels:
            return indexed
        return tab_chunks(indexed, len(labels))[self.selected(node, ctx, key)]


CONTAINER_LAYOUTS: dict[str, ContainerLayoutStrategy] = {
    s.kind: s for s in (RowLayout(), StackLayout(), ColumnsLayout(), GridLayout(), TabsLayout())
}


def container_key(node: dict[str, Any], index: int) -> str:
    return node_id(node) or f"{node_kind(node)}@{index}"


# =============================================================================
# Board
# =============================================================================


def _render_header(spec: dict[str, Any], lines: list[str]) -> None:
    title = str(spec.get("title", ""))
    lines.append(f"{spec['icon']} {title}" if spec.get("icon") else title)
    if spec.get("badge"):
        lines.append(f"[{str(spec['badge']).upper()}]")
    if spec.get("subtitle"):
        lines.append(str(spec["subtitle"]))
    lines.append("")


def _render_layout(layout: list[dict[str, Any]], ctx: RenderContext) -> None:
    lines = ctx.result.lines
    if not layout:
        lines.append("(No layout components to display)")
        return
    for index, node in enumerate(layout):
        if not isinstance(node, dict):
            continue
        if is_container(node):
            strategy = CONTAINER_LAYOUTS[node_kind(node)]
            key = container_key(node, index)
            lines.append(strategy.header(node, ctx, key))
            for child_index, child in strategy.visible_children(node, ctx, key):
                for line in render_leaf(child, ctx, f"{index}/{child_index}"):
                    lines.append(f"  {line}")
        else:
            lines.extend(render_leaf(node, ctx, str(index)))


def _render_footer(spec: dict[str, Any], ctx: RenderContext) -> None:
    footer = spec.get("footer")
    if not isinstance(footer, dict):
        return
    placeholder = str(footer.get("placeholder") or "What am I missing? Add a consideration...")
    prefix = ctx.add_control(Control(key=FOOTER_KEY, kind="footer", label=placeholder, node=footer))
    pending = " (adding...)" if "forge_update" in ctx.pending_tools else ""
    ctx.result.lines.extend(["", f"{prefix}+ {placeholder}{pending}"])


def action_key(action: dict[str, Any], index: int) -> str:
    return node_id(action) or f"action:{index}"


def _render_actions(spec: dict[str, Any], ctx: RenderContext) -> None:
    actions = spec.get("actions")
    if not isinstance(actions, list) or not actions:
        return
    parts = []
    for index, action in enumerate(actions):
        if not isinstance(action, dict):
            continue
        key = action_key(action, index)
        prefix = ctx.add_control(
            Control(key=key, kind="action", label=str(action.get("label", "")), node=action)
        )
        parts.append(button_line(prefix, action, ctx.pending_tools))
    ctx.result.lines.extend(["", "  ".join(parts)])


def render_verdict(verdict: dict[str, Any]) -> list[str]:
    lines = [
        f"Verdict: {verdict.get('winner', '')}",
        f"{verdict.get('confidence', '')}% confidence",
        str(verdict.get("reasoning", "")),
    ]
    steps = verdict.get("next_steps") or []
    if steps:
        lines.append("Next steps:")
        lines.extend(f"  {i}. {step}" for i, step in enumerate(steps, 1))
    return lines


def render_waiting(session: WorkspaceSession) -> RenderResult:
    result = RenderResult()
    result.lines.extend(
        [
            "Forge - Waiting for spec",
            "No valid spec has been received yet.",
        ]
    )
    if session.last_unrecognized:
        result.lines.append(f"Last payload ignored: {session.last_unrecognized}")
    if session.verdict:
        result.lines.append("")
        result.lines.extend(render_verdict(session.verdict))
    return result


def render_board(session: WorkspaceSession, refs: RefManager | None = None) -> RenderResult:
    """Draw the whole board for a session.

    Args:
        session: The workspace to draw.
        refs: When given, interactive controls get compact refs (@e1, ...)
            and the caller can resolve them for follow-up interactions.
    """
    if session.spec is None:
        return render_waiting(session)

    ctx = RenderContext(session, refs)
    spec = session.spec
    _render_header(spec, ctx.result.lines)
    _render_layout(spec.get("layout") or [], ctx)
    _render_footer(spec, ctx)
    _render_actions(spec, ctx)
    if session.verdict:
        ctx.result.lines.append("")
        ctx.result.lines.extend(render_verdict(session.verdict))
    return ctx.result
