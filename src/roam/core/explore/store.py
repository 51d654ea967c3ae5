from __future__ import annotations

import threading
import time

from .errors import SessionNotFoundError
from .session import ExplorationSession


class SessionStore:
    """Thread-safe registry of live sessions.

    The lock only guards the id -> session map. Each session's mutable state
    belongs to whichever loop holds that session's step lock.
    """

    def __init__(self, retention_seconds: float = 3600.0) -> None:
        self.retention_seconds = retention_seconds
        self._sessions: dict[str, ExplorationSession] = {}
        self._lock = threading.Lock()

    def add(self, session: ExplorationSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session

    def get(self, session_id: str) -> ExplorationSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def remove(self, session_id: str) -> ExplorationSession:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list(self) -> list[ExplorationSession]:
        with self._lock:
            return list(self._sessions.values())

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def expired(self, now: float | None = None) -> list[ExplorationSession]:
        """Sessions idle past the retention window and not currently stepping."""
        now = time.monotonic() if now is None else now
        with self._lock:
            candidates = list(self._sessions.values())
        return [
            s
            for s in candidates
            if now - s.last_activity > self.retention_seconds and not s.step_lock.locked()
        ]
