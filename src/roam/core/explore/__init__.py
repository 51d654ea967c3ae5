"""Autonomous web exploration engine.

Drives a browser session step by step: normalize the current page, pick the
most promising element not yet acted on, act, and escalate through scroll,
back and completion when the site stops yielding anything new.
"""

from __future__ import annotations

from .errors import (
    BrowserClosedError,
    ConfigurationError,
    ExplorationError,
    SessionBusyError,
    SessionFinishedError,
    SessionNotFoundError,
)
from .policy import ExplorationPolicy, FilterPolicy, ScoringWeights, StuckThresholds, UrlRules
from .runner import Explorer
from .session import RunSummary, SessionSnapshot, SessionStatus, StepRecord
from .store import SessionStore

__all__ = [
    "BrowserClosedError",
    "ConfigurationError",
    "ExplorationError",
    "ExplorationPolicy",
    "Explorer",
    "FilterPolicy",
    "RunSummary",
    "ScoringWeights",
    "SessionBusyError",
    "SessionFinishedError",
    "SessionNotFoundError",
    "SessionSnapshot",
    "SessionStatus",
    "SessionStore",
    "StepRecord",
    "StuckThresholds",
    "UrlRules",
]
