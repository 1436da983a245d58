"""WidgetState helpers.

WidgetState is a flat dict of dotted keys to JSON scalars. It lives beside
the board spec, never inside it. Two key conventions are reserved:

- ``dismissed.<id>`` marks a node the user hid.
- ``<prefix>.<subId>`` holds per-child values of composite leaves.
"""

from __future__ import annotations

from typing import Any

WidgetState = dict[str, Any]

DISMISSED_PREFIX = "dismissed."

# Reserved tool argument names attached by the action dispatcher.
STATE_ARGS_KEY = "_stateArgs"
WIDGET_STATE_KEY = "_widgetState"


def dismissed_key(target_id: str) -> str:
    return f"{DISMISSED_PREFIX}{target_id}"


def composite_key(prefix: str, *parts: str) -> str:
    """Join a composite prefix with child ids: ``scores`` + ``f1`` -> ``scores.f1``."""
    return ".".join([prefix, *parts])


def is_dismissed(state: WidgetState, target_id: str) -> bool:
    return bool(state.get(dismissed_key(target_id)))


def resolve_value(state: WidgetState, key: str | None, default: Any) -> Any:
    """State value for key, falling back to the node's literal default."""
    if not key:
        return default
    value = state.get(key)
    return default if value is None else value


def collect_by_prefix(state: WidgetState, prefixes: list[str]) -> WidgetState:
    """Collect entries whose key equals a prefix or starts with ``prefix.``.

    >>> collect_by_prefix({"weights.price": 8, "notes": "x"}, ["weights"])
    {'weights.price': 8}
    """
    collected: WidgetState = {}
    for prefix in prefixes:
        if not prefix:
            continue
        for key, value in state.items():
            if key == prefix or key.startswith(prefix + "."):
                collected[key] = value
    return collected


def format_state_value(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)


def summarize_state(state: WidgetState) -> str:
    """Human-readable summary used in follow-up messages.

    Dismissal markers and empty values are skipped, dotted keys read as
    ``a > b`` and booleans as Yes/No.
    """
    entries = []
    for key, value in state.items():
        if key.startswith(DISMISSED_PREFIX):
            continue
        if value is None or value == "":
            continue
        label = " > ".join(key.split("."))
        entries.append(f"{label}: {format_state_value(value)}")
    return "; ".join(entries)
