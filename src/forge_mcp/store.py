"""Session persistence.

Stores the durable tuple ``(spec, widgetState, verdict)`` per session,
owned by a user id. Loading somebody else's session is reported as
``ACCESS_DENIED`` rather than raised.
"""

from __future__ import annotations

import copy
import itertools
import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from .identity import ANONYMOUS

logger = logging.getLogger(__name__)


class LoadStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"


@dataclass
class LoadResult:
    status: LoadStatus
    record: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status is LoadStatus.OK


@dataclass
class SessionSummary:
    session_id: str
    title: str
    created_at: str
    updated_at: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _owner(user_id: str | None) -> str:
    return user_id or ANONYMOUS


class SessionStore:
    """In-process session store. Subclasses add durability via ``_persist``."""

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._revisions = itertools.count(1)

    def _persist(self) -> None:
        """Hook called after every write."""

    def save(
        self,
        user_id: str | None,
        session_id: str | None,
        title: str,
        spec: dict[str, Any] | None,
        widget_state: dict[str, Any],
        verdict: dict[str, Any] | None,
    ) -> str:
        """Create or overwrite a session and return its id.

        Raises:
            PermissionError: ``session_id`` belongs to another user.
        """
        owner = _owner(user_id)
        with self._lock:
            existing = self._sessions.get(session_id) if session_id else None
            if existing is not None and existing["owner"] != owner:
                raise PermissionError(f"Session {session_id} belongs to another user")
            session_id = session_id or uuid.uuid4().hex
            now = _now()
            self._sessions[session_id] = {
                "owner": owner,
                "title": title,
                "created_at": existing["created_at"] if existing else now,
                "updated_at": now,
                "revision": next(self._revisions),
                "spec": copy.deepcopy(spec),
                "widgetState": copy.deepcopy(widget_state),
                "verdict": copy.deepcopy(verdict),
            }
            self._persist()
        logger.info("Saved session %s (%s) for %s", session_id, title, owner)
        return session_id

    def load(self, user_id: str | None, session_id: str) -> LoadResult:
        with self._lock:
            stored = self._sessions.get(session_id)
            if stored is None:
                return LoadResult(LoadStatus.NOT_FOUND)
            if stored["owner"] != _owner(user_id):
                logger.warning("User %s denied access to session %s", _owner(user_id), session_id)
                return LoadResult(LoadStatus.ACCESS_DENIED)
            record = {
                "spec": copy.deepcopy(stored["spec"]),
                "widgetState": copy.deepcopy(stored["widgetState"]),
                "verdict": copy.deepcopy(stored["verdict"]),
            }
        return LoadResult(LoadStatus.OK, record)

    def list(self, user_id: str | None, limit: int = 20) -> list[SessionSummary]:
        """The user's sessions, most recently updated first."""
        owner = _owner(user_id)
        with self._lock:
            owned = sorted(
                ((sid, s) for sid, s in self._sessions.items() if s["owner"] == owner),
                key=lambda item: (item[1]["updated_at"], item[1].get("revision", 0)),
                reverse=True,
            )
        return [
            SessionSummary(sid, s["title"], s["created_at"], s["updated_at"])
            for sid, s in owned[: max(limit, 0)]
        ]


class InMemorySessionStore(SessionStore):
    """Sessions live for the lifetime of the process."""


class JsonFileSessionStore(SessionStore):
    """Sessions kept in a single JSON file, rewritten on every save."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            self._sessions = dict(data.get("sessions") or {})
            start = max((s.get("revision", 0) for s in self._sessions.values()), default=0)
            self._revisions = itertools.count(start + 1)
            logger.info("Loaded %d sessions from %s", len(self._sessions), self.path)

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({"sessions": self._sessions}, f, indent=2)
        os.replace(tmp, self.path)


def create_store(path: str | None) -> SessionStore:
    if path:
        return JsonFileSessionStore(path)
    return InMemorySessionStore()
