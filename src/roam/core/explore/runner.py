"""Step executor and autonomous run loop.

``Explorer`` is the only writer of session state. One step is:

    current page -> decide (blank page / off-site / recovery / prioritizer)
    -> dispatch -> register target -> re-snapshot -> assess progress
    -> append StepRecord -> publish event

Steps of one session are serialized by the session's step lock; sessions are
independent and can be driven from different threads at the same time.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from ...config.settings import Settings
from ...config.settings import settings as default_settings
from ..ir.model import Action, Back, DispatchResult, Navigate, Scroll, action_name, target_of
from .driver import BrowserDriver
from .errors import (
    BrowserClosedError,
    ConfigurationError,
    SessionBusyError,
    SessionFinishedError,
    SessionNotFoundError,
)
from .normalizer import PageState, host_of, normalize_page, normalize_url, same_site
from .policy import ExplorationPolicy
from .prioritizer import choose_action
from .session import (
    ExplorationSession,
    RunSummary,
    SessionSnapshot,
    SessionStatus,
    StepRecord,
)
from .store import SessionStore
from .stuck import StuckDetector

logger = logging.getLogger(__name__)


def validate_start_url(start_url: str) -> str:
    if not isinstance(start_url, str) or not start_url.strip():
        raise ConfigurationError("startUrl is required")
    url = start_url.strip()
    try:
        parts = urlsplit(url)
        _ = parts.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid URL format: {e}") from None
    if parts.scheme.lower() not in ("http", "https"):
        raise ConfigurationError(f"Invalid URL format: unsupported scheme {parts.scheme!r}")
    if not parts.hostname:
        raise ConfigurationError("Invalid URL format: missing host")
    return url


class Explorer:
    def __init__(
        self,
        driver: BrowserDriver,
        store: SessionStore | None = None,
        bus: Any | None = None,
        policy: ExplorationPolicy | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.policy = (policy or ExplorationPolicy()).validate()
        self.driver = driver
        self.store = store or SessionStore(self.settings.session_retention_seconds)
        self.bus = bus
        self.detector = StuckDetector(self.policy.thresholds)

    # --- lifecycle ----------------------------------------------------------

    def start(self, start_url: str) -> str:
        url = validate_start_url(start_url)
        self.purge_expired()

        session = ExplorationSession(start_url=url, start_host=host_of(url))
        sid = session.session_id
        try:
            self.driver.open(sid, url)
        except Exception:
            logger.exception(f"Failed to open browser context for {url}")
            with suppress(Exception):
                self.driver.close(sid)
            raise
        self.store.add(session)

        try:
            page = self._capture(session)
        except BrowserClosedError as e:
            logger.warning(f"Browser closed while capturing initial state of {sid}: {e}")
            page = None
        if page is not None:
            session.observe(page)

        logger.info(f"Exploration session {sid} started at {url}")
        return sid

    def step(self, session_id: str) -> StepRecord:
        session = self.store.get(session_id)
        if not session.step_lock.acquire(blocking=False):
            raise SessionBusyError(session_id)
        try:
            if session.status is SessionStatus.RUNNING:
                raise SessionBusyError(session_id)
            self._ensure_open(session)
            session.status = SessionStatus.RUNNING
            try:
                record = self._advance(session)
            finally:
                if session.status is SessionStatus.RUNNING:
                    session.status = SessionStatus.IDLE
            self._emit(session, record, done=session.status.terminal)
            return record
        finally:
            session.step_lock.release()

    def run(self, session_id: str, max_steps: int) -> RunSummary:
        if max_steps < 1:
            raise ConfigurationError("maxSteps must be at least 1")
        session = self.store.get(session_id)

        if not session.step_lock.acquire(blocking=False):
            raise SessionBusyError(session_id)
        try:
            if session.status is SessionStatus.RUNNING:
                raise SessionBusyError(session_id)
            self._ensure_open(session)
            session.status = SessionStatus.RUNNING
        finally:
            session.step_lock.release()

        logger.info(f"Autonomous run of {session_id} started (max_steps={max_steps})")
        records: list[StepRecord] = []
        try:
            while len(records) < max_steps:
                with session.step_lock:
                    if session.status.terminal:
                        break
                    if session.stop_event.is_set():
                        session.finish(SessionStatus.STOPPED, session.stop_reason)
                        break
                    record = self._advance(session)
                    last = len(records) + 1 >= max_steps
                    self._emit(session, record, done=last or session.status.terminal)
                records.append(record)
                if session.status.terminal:
                    break
        except Exception:
            logger.exception(f"Run loop of {session_id} failed")
            session.finish(SessionStatus.ERROR, "internal_error")
            raise
        finally:
            if session.status is SessionStatus.RUNNING:
                session.status = SessionStatus.IDLE

        logger.info(
            f"Autonomous run of {session_id} finished: {len(records)} steps, "
            f"status={session.status.value}, reason={session.finish_reason}"
        )
        return RunSummary(
            session_id=session_id,
            records=records,
            steps_completed=len(records),
            successful_steps=sum(1 for r in records if r.success),
            status=session.status.value,
            finish_reason=session.finish_reason,
        )

    def stop(self, session_id: str) -> SessionSnapshot:
        """Ask the session's loop to stop at the next step boundary."""
        session = self.store.get(session_id)
        session.request_stop()
        if session.step_lock.acquire(blocking=False):
            try:
                if session.status is SessionStatus.IDLE:
                    session.finish(SessionStatus.STOPPED, session.stop_reason)
            finally:
                session.step_lock.release()
        logger.info(f"Stop requested for session {session_id}")
        return session.snapshot()

    def stats(self, session_id: str) -> SessionSnapshot:
        return self.store.get(session_id).snapshot()

    def history(self, session_id: str) -> list[StepRecord]:
        return list(self.store.get(session_id).history)

    def list_sessions(self) -> list[SessionSnapshot]:
        self.purge_expired()
        return [s.snapshot() for s in self.store.list()]

    def end(self, session_id: str) -> SessionSnapshot:
        session = self.store.get(session_id)
        session.request_stop("ended")
        # Waits for an in-flight step; the run loop exits at its next boundary.
        with session.step_lock:
            if not session.status.terminal:
                session.finish(SessionStatus.STOPPED, "ended")
            final = session.snapshot()
            with suppress(SessionNotFoundError):
                self.store.remove(session_id)

        try:
            self.driver.close(session_id)
        except Exception as e:
            logger.warning(f"Failed to close browser context of {session_id}: {e}")

        if self.settings.archive_sessions:
            self._archive(session)
        if self.bus is not None:
            with suppress(Exception):
                self.bus.close_channel(session_id)

        logger.info(
            f"Session {session_id} ended: {final.step_count} steps, "
            f"{final.visited_pages} pages visited"
        )
        return final

    def purge_expired(self) -> list[str]:
        purged: list[str] = []
        for session in self.store.expired():
            with suppress(SessionNotFoundError):
                self.end(session.session_id)
                purged.append(session.session_id)
        if purged:
            logger.info(f"Purged {len(purged)} expired exploration sessions")
        return purged

    # --- step internals -----------------------------------------------------

    def _ensure_open(self, session: ExplorationSession) -> None:
        if session.stop_event.is_set() and not session.status.terminal:
            session.finish(SessionStatus.STOPPED, session.stop_reason)
        if session.status.terminal:
            raise SessionFinishedError(session.session_id, session.status.value)

    def _capture(self, session: ExplorationSession) -> PageState | None:
        try:
            snap = self.driver.snapshot(session.session_id)
        except BrowserClosedError:
            raise
        except Exception as e:
            logger.warning(f"Snapshot failed for session {session.session_id}: {e}")
            return None
        return normalize_page(
            snap.url, snap.elements, self.policy.url_rules, self.policy.filters
        )

    def _decide(self, session: ExplorationSession, page: PageState | None) -> Action:
        url = page.url if page is not None else session.current_url
        if urlsplit(url).scheme.lower() not in ("http", "https"):
            logger.info(
                f"Session {session.session_id} is on {url or 'an empty page'}, "
                f"returning to {session.start_url}"
            )
            return Navigate(session.start_url)

        if page is None:
            page_key = normalize_url(url, self.policy.url_rules)
            return self._recover(session, page_key, has_fresh=False)

        if self.policy.stay_on_domain and not same_site(host_of(page.url), session.start_host):
            logger.info(f"Session {session.session_id} left {session.start_host}, going back")
            return Back()

        acted = session.registry.acted_on(page.key)
        has_fresh = any(c.fingerprint not in acted for c in page.candidates)
        recovery = self._recover(session, page.key, has_fresh)
        if recovery is not None:
            return recovery

        choice = choose_action(
            page.candidates, acted, self.policy.weights, session.start_host
        )
        if choice is None:
            return self._recover(session, page.key, has_fresh=False)
        logger.debug(
            f"Selected {action_name(choice.action)} on {choice.element.selector} "
            f"(score={choice.score:.2f})"
        )
        return choice.action

    def _recover(
        self, session: ExplorationSession, page_key: str, has_fresh: bool
    ) -> Action | None:
        action = self.detector.recovery(session.stuck_counter, has_fresh)
        if isinstance(action, Back) and page_key == normalize_url(
            session.start_url, self.policy.url_rules
        ):
            # Nothing behind the start page but a blank tab; keep scrolling instead.
            return Scroll()
        return action

    def _dispatch(self, session: ExplorationSession, action: Action) -> DispatchResult:
        try:
            return self.driver.dispatch(session.session_id, action)
        except BrowserClosedError:
            raise
        except Exception as e:
            logger.warning(
                f"Dispatch of {action_name(action)} failed in session {session.session_id}: {e}"
            )
            return DispatchResult(success=False, error=str(e))

    def _advance(self, session: ExplorationSession) -> StepRecord:
        lost: BrowserClosedError | None = None

        before = session.page
        if before is None:
            try:
                before = self._capture(session)
            except BrowserClosedError as e:
                lost = e
            if before is not None:
                session.observe(before)

        page_key = (
            before.key
            if before is not None
            else normalize_url(session.current_url, self.policy.url_rules)
        )
        acted_before = session.registry.acted_on(page_key)

        action = self._decide(session, before)
        if lost is None:
            try:
                result = self._dispatch(session, action)
            except BrowserClosedError as e:
                lost = e
        if lost is not None:
            result = DispatchResult(success=False, error=str(lost))

        target = target_of(action)
        if target is not None:
            # Registered even on failure so a broken element is not retried forever.
            session.registry.record(page_key, target)

        visited = frozenset(session.visited)
        after: PageState | None = None
        if lost is None:
            try:
                after = self._capture(session)
            except BrowserClosedError as e:
                lost = e
        if after is not None:
            known = frozenset(session.seen_fingerprints.get(after.key, ()))
            acted_after = session.registry.acted_on(after.key)
        else:
            known = frozenset()
            acted_after = frozenset()

        progress = self.detector.assess(
            before,
            after,
            acted_before,
            acted_after,
            visited,
            known_fingerprints=known,
        )
        session.stuck_counter = self.detector.apply(session.stuck_counter, progress)

        if after is not None:
            session.observe(after)
            resulting_url = after.url
            element_count = len(after.candidates)
        else:
            session.page = None
            resulting_url = result.new_url or session.current_url
            session.current_url = resulting_url
            element_count = 0

        name = action_name(action)
        record = StepRecord(
            step_number=session.step_count + 1,
            action=name,
            success=result.success,
            page_key=page_key,
            resulting_url=resulting_url,
            element_count_after=element_count,
            stuck_counter=session.stuck_counter,
            target_fingerprint=target,
            selector=getattr(action, "selector", None),
            value=getattr(action, "value", None) if name == "type" else None,
            error=result.error,
        )
        session.append(record)

        if lost is not None:
            logger.error(f"Browser context of session {session.session_id} is gone: {lost}")
            session.finish(SessionStatus.ERROR, "browser_closed")
        elif self.detector.is_exhausted(session.stuck_counter):
            session.finish(SessionStatus.COMPLETED, "exhausted")
            logger.info(f"Session {session.session_id} exhausted after {session.step_count} steps")

        logger.info(
            f"Step {record.step_number} of {session.session_id}: {record.action} "
            f"success={record.success} url={record.resulting_url} "
            f"elements={record.element_count_after} stuck={record.stuck_counter} ({progress.value})"
        )
        return record

    # --- outbound -----------------------------------------------------------

    def _emit(self, session: ExplorationSession, record: StepRecord, done: bool) -> None:
        if self.bus is None:
            return
        event: dict[str, Any] = {
            "type": "exploration_step",
            "session_id": session.session_id,
            "step": record.to_dict(),
            "total_steps": session.step_count,
            "done": done,
            "status": session.status.value,
        }
        if self.settings.capture_screenshots:
            thumb = self._thumbnail(session)
            if thumb:
                event["screenshot_b64"] = thumb
        try:
            self.bus.publish(session.session_id, event)
        except Exception as e:
            logger.warning(f"Dropping step event of {session.session_id}: {e}")

    def _thumbnail(self, session: ExplorationSession) -> str | None:
        from ...adapters.imaging import compress_screenshot

        try:
            png = self.driver.screenshot(session.session_id)
        except Exception as e:
            logger.debug(f"Screenshot unavailable for {session.session_id}: {e}")
            return None
        if not png:
            return None
        return compress_screenshot(png, self.settings.screenshot_max_width)

    def _archive(self, session: ExplorationSession) -> None:
        from ...runtime.storage import write_session_archive

        data = {
            **session.snapshot().to_dict(),
            "visited_urls": sorted(session.visited),
            "steps": [r.to_dict() for r in session.history],
        }
        try:
            path = write_session_archive(
                Path(self.settings.artifacts_root), session.session_id, data
            )
            logger.info(f"Archived session {session.session_id} to {path}")
        except OSError as e:
            logger.warning(f"Failed to archive session {session.session_id}: {e}")
