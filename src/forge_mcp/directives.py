"""Classification of inbound directive payloads.

Payloads reach the board in several historical shapes: a board spec itself,
that spec wrapped under ``spec`` (once or twice, possibly JSON-encoded), an
``action``-tagged envelope, or a JSON string of any of those. ``classify``
is the single decision table that maps all of them to one directive.

Priority order:

1. textual payload -> decode and recurse
2. payload has ``title`` and ``layout`` -> render
3. nested ``spec`` resolves to ``title`` + ``layout`` -> render
4. payload has an ``operation`` of add/remove/patch -> update
5. verdict-shaped object (``winner`` + ``reasoning``) -> conclude
6. anything else -> unrecognized
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from .patch import OPERATIONS


@dataclass(frozen=True)
class RenderDirective:
    spec: dict[str, Any]
    kind: str = "render"


@dataclass(frozen=True)
class UpdateDirective:
    operation: str
    components: list[dict[str, Any]] = field(default_factory=list)
    ids: list[str] = field(default_factory=list)
    patches: list[dict[str, Any]] = field(default_factory=list)
    kind: str = "update"


@dataclass(frozen=True)
class ConcludeDirective:
    verdict: dict[str, Any]
    kind: str = "conclude"


@dataclass(frozen=True)
class Unrecognized:
    reason: str
    kind: str = "unrecognized"


Directive = Union[RenderDirective, UpdateDirective, ConcludeDirective, Unrecognized]


def _try_decode(value: Any) -> Any:
    """JSON-decode textual values; return anything else unchanged."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value


def _is_spec(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("title")) and "layout" in value


def _nested_spec(payload: dict[str, Any]) -> dict[str, Any] | None:
    inner = _try_decode(payload.get("spec"))
    if _is_spec(inner):
        return inner
    if isinstance(inner, dict):
        innermost = _try_decode(inner.get("spec"))
        if _is_spec(innermost):
            return innermost
    return None


def _is_verdict(value: Any) -> bool:
    return isinstance(value, dict) and "winner" in value and "reasoning" in value


def _as_list(value: Any) -> list[Any]:
    value = _try_decode(value)
    if isinstance(value, list):
        return value
    return []


def classify(payload: Any) -> Directive:
    """Map a raw payload to exactly one directive."""
    if isinstance(payload, str):
        decoded = _try_decode(payload)
        if decoded is payload:
            return Unrecognized("payload is text but not valid JSON")
        return classify(decoded)

    if not isinstance(payload, dict):
        return Unrecognized(f"payload is {type(payload).__name__}, expected an object")

    if _is_spec(payload):
        return RenderDirective(spec=payload)

    inner = _nested_spec(payload)
    if inner is not None:
        return RenderDirective(spec=inner)

    operation = payload.get("operation")
    if operation is not None:
        if operation not in OPERATIONS:
            return Unrecognized(f"unknown operation {operation!r}")
        return UpdateDirective(
            operation=operation,
            components=[c for c in _as_list(payload.get("components")) if isinstance(c, dict)],
            ids=[str(i) for i in _as_list(payload.get("ids"))],
            patches=[p for p in _as_list(payload.get("patches")) if isinstance(p, dict)],
        )

    if _is_verdict(payload):
        return ConcludeDirective(verdict=payload)
    verdict = _try_decode(payload.get("verdict"))
    if _is_verdict(verdict):
        return ConcludeDirective(verdict=verdict)

    keys = ", ".join(sorted(str(k) for k in payload)) or "none"
    return Unrecognized(f"no render, update or conclude shape (keys: {keys})")
