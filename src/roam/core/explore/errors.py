from __future__ import annotations


class ExplorationError(Exception):
    """Base class for errors surfaced to callers of the exploration API."""


class SessionNotFoundError(ExplorationError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class ConfigurationError(ExplorationError):
    """Rejected input: malformed start URL, bad step budget, bad policy."""


class SessionBusyError(ExplorationError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} is already executing a step")
        self.session_id = session_id


class SessionFinishedError(ExplorationError):
    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(f"Session {session_id} is {status}")
        self.session_id = session_id
        self.status = status


class BrowserClosedError(ExplorationError):
    """The driver no longer has a browser context for the session."""
