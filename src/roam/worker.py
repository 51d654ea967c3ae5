from __future__ import annotations

import logging
import threading
from typing import Any

from .config.settings import settings
from .core.explore.errors import ExplorationError
from .core.explore.runner import Explorer

logger = logging.getLogger(__name__)


def _handle(explorer: Explorer, bus: Any, msg: dict[str, Any]) -> None:
    job_id = msg.get("job_id")
    session_id = msg["session_id"]
    max_steps = int(msg.get("max_steps") or settings.default_max_steps)
    try:
        summary = explorer.run(session_id, max_steps)
    except ExplorationError as e:
        logger.warning(f"Queued run {job_id} of {session_id} rejected: {e}")
        if job_id:
            bus.set_result(job_id, {"job_id": job_id, "status": "failed", "error": str(e)})
        return
    if job_id:
        bus.set_result(job_id, {"job_id": job_id, **summary.to_dict()})


def _worker_loop(explorer: Explorer, bus: Any, stop: threading.Event | None = None) -> None:
    while stop is None or not stop.is_set():
        msg = bus.dequeue(timeout=1)
        if not msg:
            continue
        try:
            _handle(explorer, bus, msg)
        except Exception:
            logger.exception(f"Queued run {msg.get('job_id')} failed")
            continue


def start_workers(
    explorer: Explorer,
    bus: Any,
    concurrency: int = 1,
    stop: threading.Event | None = None,
) -> list[threading.Thread]:
    """Drain queued runs on daemon threads of the process that owns the sessions."""
    threads = []
    for i in range(max(1, concurrency)):
        t = threading.Thread(
            target=_worker_loop,
            args=(explorer, bus, stop),
            name=f"roam-worker-{i}",
            daemon=True,
        )
        t.start()
        threads.append(t)
    logger.info(f"Started {len(threads)} exploration worker thread(s)")
    return threads

