"""Caller identity for session ownership."""

from __future__ import annotations

from typing import Any

ANONYMOUS = "anonymous"


def get_user_id(context: dict[str, Any] | None = None, default: str | None = None) -> str | None:
    """Return the caller's user id, or None when nobody is signed in.

    Looks at ``context["user_id"]`` first (the ``_context`` argument a host
    may attach to tool calls), then ``default``, which the server fills from
    ``ForgeConfig.user_id``. Never raises.
    """
    if isinstance(context, dict):
        value = context.get("user_id")
        if isinstance(value, str) and value.strip():
            return value.strip()
    if isinstance(default, str) and default.strip():
        return default.strip()
    return None
