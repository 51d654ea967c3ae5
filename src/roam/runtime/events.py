"""Event bus (in-memory by default, Redis optional).

Two concerns share one bus:
- the run-job queue consumed by the worker threads (``enqueue``/``dequeue``,
  ``set_result``/``get_result``);
- one outbound step-event channel per exploration session (``publish``,
  ``next_event``, ``drain``). Publishing never waits for a subscriber; a full
  channel drops its oldest event.
"""

from __future__ import annotations

import collections
import json
import queue
import threading
from typing import Any

from ..config.settings import Settings, settings

RUN_QUEUE = "exploration_runs"


def _events_key(session_id: str) -> str:
    return f"exploration:{session_id}:events"


class InMemoryBus:
    def __init__(self, buffer_size: int = 500) -> None:
        self._q: queue.Queue[str] = queue.Queue()
        self._results: dict[str, dict[str, Any]] = {}
        self._channels: dict[str, collections.deque[dict[str, Any]]] = {}
        self._buffer_size = buffer_size
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)

    def enqueue(self, payload: dict[str, Any]) -> None:
        self._q.put(json.dumps(payload))

    def dequeue(self, timeout: float | None = None) -> dict[str, Any] | None:
        try:
            msg = self._q.get(timeout=timeout)
        except queue.Empty:
            return None
        return json.loads(msg)

    def set_result(self, job_id: str, result: dict[str, Any]) -> None:
        with self._lock:
            self._results[job_id] = result

    def get_result(self, job_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self._results.get(job_id)

    def publish(self, session_id: str, event: dict[str, Any]) -> None:
        with self._cond:
            channel = self._channels.get(session_id)
            if channel is None:
                channel = collections.deque(maxlen=self._buffer_size)
                self._channels[session_id] = channel
            channel.append(event)
            self._cond.notify_all()

    def next_event(self, session_id: str, timeout: float | None = None) -> dict[str, Any] | None:
        with self._cond:
            channel = self._channels.get(session_id)
            if not channel:
                self._cond.wait_for(
                    lambda: bool(self._channels.get(session_id)), timeout=timeout
                )
                channel = self._channels.get(session_id)
            if not channel:
                return None
            return channel.popleft()

    def drain(self, session_id: str) -> list[dict[str, Any]]:
        with self._lock:
            channel = self._channels.get(session_id)
            if not channel:
                return []
            events = list(channel)
            channel.clear()
            return events

    def close_channel(self, session_id: str) -> None:
        with self._lock:
            self._channels.pop(session_id, None)


class RedisBus:
    def __init__(self, url: str, buffer_size: int = 500, ttl_seconds: int = 3600) -> None:
        import redis  # lazy import

        self._r = redis.Redis.from_url(url, decode_responses=True)
        self._buffer_size = buffer_size
        self._ttl = ttl_seconds

    def enqueue(self, payload: dict[str, Any]) -> None:
        self._r.rpush(RUN_QUEUE, json.dumps(payload))

    def dequeue(self, timeout: float | None = None) -> dict[str, Any] | None:
        to = int(timeout) if timeout else 0
        item = self._r.blpop([RUN_QUEUE], timeout=to)
        if not item:
            return None
        _, msg = item  # type: ignore[misc]
        if isinstance(msg, bytes):
            msg = msg.decode("utf-8")
        return json.loads(msg)

    def set_result(self, job_id: str, result: dict[str, Any]) -> None:
        key = f"run:{job_id}:result"
        self._r.set(key, json.dumps(result), ex=self._ttl)

    def get_result(self, job_id: str) -> dict[str, Any] | None:
        key = f"run:{job_id}:result"
        val = self._r.get(key)
        return json.loads(val) if val else None  # type: ignore[arg-type]

    def publish(self, session_id: str, event: dict[str, Any]) -> None:
        key = _events_key(session_id)
        pipe = self._r.pipeline()
        pipe.rpush(key, json.dumps(event))
        pipe.ltrim(key, -self._buffer_size, -1)
        pipe.expire(key, self._ttl)
        pipe.execute()

    def next_event(self, session_id: str, timeout: float | None = None) -> dict[str, Any] | None:
        key = _events_key(session_id)
        if timeout is None:
            item = self._r.blpop([key], timeout=0)
        elif timeout <= 0:
            msg = self._r.lpop(key)
            return json.loads(msg) if msg else None  # type: ignore[arg-type]
        else:
            item = self._r.blpop([key], timeout=max(1, int(timeout)))
        if not item:
            return None
        _, msg = item  # type: ignore[misc]
        return json.loads(msg)

    def drain(self, session_id: str) -> list[dict[str, Any]]:
        key = _events_key(session_id)
        pipe = self._r.pipeline()
        pipe.lrange(key, 0, -1)
        pipe.delete(key)
        raw, _ = pipe.execute()
        return [json.loads(m) for m in raw]

    def close_channel(self, session_id: str) -> None:
        self._r.delete(_events_key(session_id))


_INMEMORY_SINGLETON: InMemoryBus | None = None
_singleton_lock = threading.Lock()


def get_bus(cfg: Settings | None = None):
    cfg = cfg or settings
    if cfg.event_backend == "redis":
        return RedisBus(cfg.redis_url, buffer_size=cfg.event_buffer_size)
    # Singleton per-process for in-memory backend so API and worker threads share state
    global _INMEMORY_SINGLETON
    with _singleton_lock:
        if _INMEMORY_SINGLETON is None:
            _INMEMORY_SINGLETON = InMemoryBus(buffer_size=cfg.event_buffer_size)
        return _INMEMORY_SINGLETON
