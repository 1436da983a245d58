"""Environment-driven configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CONNECTED_TIMEOUT = 30.0
DEFAULT_SESSION_LIST_LIMIT = 20


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass
class ForgeConfig:
    store_path: str | None = None
    user_id: str | None = None
    connected_timeout: float = DEFAULT_CONNECTED_TIMEOUT
    log_level: str = "INFO"
    session_list_limit: int = DEFAULT_SESSION_LIST_LIMIT

    @classmethod
    def from_env(cls) -> ForgeConfig:
        """Read FORGE_* environment variables, falling back to defaults."""
        return cls(
            store_path=os.environ.get("FORGE_STORE_PATH") or None,
            user_id=os.environ.get("FORGE_USER_ID") or None,
            connected_timeout=_env_float("FORGE_CONNECTED_TIMEOUT", DEFAULT_CONNECTED_TIMEOUT),
            log_level=os.environ.get("FORGE_LOG_LEVEL", "INFO").upper(),
            session_list_limit=_env_int("FORGE_SESSION_LIST_LIMIT", DEFAULT_SESSION_LIST_LIMIT),
        )
