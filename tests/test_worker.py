"""Tests for worker and queued exploration runs."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock, patch

from fakes import FakeDriver, el

from roam.core.explore.errors import SessionFinishedError
from roam.core.explore.runner import Explorer
from roam.core.explore.session import RunSummary
from roam.runtime.events import InMemoryBus
from roam.worker import _worker_loop, start_workers

HOME = "https://example.com/"


def _explorer(bus) -> Explorer:
    driver = FakeDriver(pages={HOME: [el("button", "#go", "Go", y=0)]})
    return Explorer(driver, bus=bus)


class TestWorker:
    """Test suite for worker functionality."""

    def test_worker_processes_run_successfully(self):
        """Worker runs the queued session and stores the summary."""
        bus = InMemoryBus()
        explorer = _explorer(bus)
        sid = explorer.start(HOME)
        job = {"job_id": "run-1", "session_id": sid, "max_steps": 2}

        with patch.object(bus, "dequeue") as mock_dequeue:
            # First call returns the job, then None to continue, then KeyboardInterrupt to exit
            mock_dequeue.side_effect = [job, None, KeyboardInterrupt()]
            try:
                _worker_loop(explorer, bus)
            except KeyboardInterrupt:
                pass

        result = bus.get_result("run-1")
        assert result is not None
        assert result["job_id"] == "run-1"
        assert result["session_id"] == sid
        assert result["steps_completed"] == 2
        assert explorer.stats(sid).step_count == 2

    def test_worker_records_rejected_run(self):
        """A run on a finished session is reported, not raised."""
        bus = InMemoryBus()
        explorer = MagicMock()
        explorer.run.side_effect = SessionFinishedError("abc", "stopped")
        job = {"job_id": "run-2", "session_id": "abc", "max_steps": 5}

        with patch.object(bus, "dequeue") as mock_dequeue:
            mock_dequeue.side_effect = [job, KeyboardInterrupt()]
            try:
                _worker_loop(explorer, bus)
            except KeyboardInterrupt:
                pass

        result = bus.get_result("run-2")
        assert result["status"] == "failed"
        assert "stopped" in result["error"]

    def test_worker_survives_malformed_job(self):
        """Malformed job data is logged and skipped."""
        bus = InMemoryBus()
        explorer = MagicMock()
        explorer.run.return_value = RunSummary(
            session_id="s", records=[], steps_completed=0, successful_steps=0, status="idle"
        )
        good = {"job_id": "run-3", "session_id": "s", "max_steps": 1}

        with patch.object(bus, "dequeue") as mock_dequeue:
            mock_dequeue.side_effect = [{"invalid": "data"}, good, KeyboardInterrupt()]
            try:
                _worker_loop(explorer, bus)
            except KeyboardInterrupt:
                pass

        explorer.run.assert_called_once_with("s", 1)
        assert bus.get_result("run-3")["status"] == "idle"

    def test_worker_exits_when_stopped(self):
        bus = InMemoryBus()
        stop = threading.Event()
        threads = start_workers(MagicMock(), bus, concurrency=2, stop=stop)
        assert len(threads) == 2
        stop.set()
        for t in threads:
            t.join(timeout=3)
        assert not any(t.is_alive() for t in threads)

    def test_workers_drain_the_queue(self):
        bus = InMemoryBus()
        explorer = _explorer(bus)
        sids = [explorer.start(HOME) for _ in range(3)]
        for i, sid in enumerate(sids):
            bus.enqueue({"job_id": f"job-{i}", "session_id": sid, "max_steps": 1})

        stop = threading.Event()
        threads = start_workers(explorer, bus, concurrency=2, stop=stop)
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline and not all(
            bus.get_result(f"job-{i}") for i in range(3)
        ):
            time.sleep(0.02)
        stop.set()
        for t in threads:
            t.join(timeout=3)

        for i in range(3):
            assert bus.get_result(f"job-{i}")["steps_completed"] == 1
