"""Session state owned by one exploration loop."""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .normalizer import NormalizedPageKey, PageState
from .registry import ElementRegistry


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.STOPPED, SessionStatus.ERROR)


@dataclass(frozen=True)
class StepRecord:
    step_number: int
    action: str  # click|type|scroll|back|navigate
    success: bool
    page_key: NormalizedPageKey
    resulting_url: str
    element_count_after: int
    stuck_counter: int
    target_fingerprint: str | None = None
    selector: str | None = None
    value: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    start_url: str
    current_url: str
    status: str
    finish_reason: str | None
    step_count: int
    successful_steps: int
    stuck_counter: int
    visited_pages: int
    acted_on_current_page: int
    acted_total: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RunSummary:
    session_id: str
    records: list[StepRecord]
    steps_completed: int
    successful_steps: int
    status: str
    finish_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "records": [r.to_dict() for r in self.records],
            "steps_completed": self.steps_completed,
            "successful_steps": self.successful_steps,
            "status": self.status,
            "finish_reason": self.finish_reason,
        }


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ExplorationSession:
    start_url: str
    start_host: str | None
    session_id: str = field(default_factory=new_session_id)
    current_url: str = ""
    status: SessionStatus = SessionStatus.IDLE
    finish_reason: str | None = None
    step_count: int = 0
    successful_steps: int = 0
    stuck_counter: int = 0
    registry: ElementRegistry = field(default_factory=ElementRegistry)
    history: list[StepRecord] = field(default_factory=list)
    visited: set[NormalizedPageKey] = field(default_factory=set)
    seen_fingerprints: dict[NormalizedPageKey, set[str]] = field(default_factory=dict)
    page: PageState | None = None
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    stop_reason: str = "stopped"
    stop_event: threading.Event = field(default_factory=threading.Event, repr=False)
    step_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        if not self.current_url:
            self.current_url = self.start_url

    def observe(self, page: PageState) -> None:
        """Fold a freshly captured page into the visited/seen bookkeeping."""
        self.page = page
        self.current_url = page.url
        self.visited.add(page.key)
        self.seen_fingerprints.setdefault(page.key, set()).update(page.fingerprints)

    def append(self, record: StepRecord) -> None:
        self.history.append(record)
        self.step_count += 1
        if record.success:
            self.successful_steps += 1
        self.last_activity = time.monotonic()

    def finish(self, status: SessionStatus, reason: str | None = None) -> None:
        self.status = status
        self.finish_reason = reason

    def request_stop(self, reason: str = "stopped") -> None:
        """Ask the run loop to finish with ``reason`` at its next step boundary."""
        if not self.stop_event.is_set():
            self.stop_reason = reason
            self.stop_event.set()

    def snapshot(self) -> SessionSnapshot:
        current_key = self.page.key if self.page else None
        return SessionSnapshot(
            session_id=self.session_id,
            start_url=self.start_url,
            current_url=self.current_url,
            status=self.status.value,
            finish_reason=self.finish_reason,
            step_count=self.step_count,
            successful_steps=self.successful_steps,
            stuck_counter=self.stuck_counter,
            visited_pages=len(self.visited),
            acted_on_current_page=self.registry.count_on(current_key) if current_key else 0,
            acted_total=self.registry.total(),
        )
