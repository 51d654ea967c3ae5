from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    return int(val)


@dataclass
class Settings:
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    headless: bool = _env_bool("HEADLESS", True)
    viewport_width: int = _env_int("VIEWPORT_WIDTH", 1280)
    viewport_height: int = _env_int("VIEWPORT_HEIGHT", 720)
    navigation_timeout_ms: int = _env_int("NAVIGATION_TIMEOUT_MS", 15000)
    action_timeout_ms: int = _env_int("ACTION_TIMEOUT_MS", 5000)
    settle_ms: int = _env_int("SETTLE_MS", 500)
    artifacts_root: str = os.getenv("ARTIFACTS_ROOT", "artifacts")
    archive_sessions: bool = _env_bool("ARCHIVE_SESSIONS", False)
    capture_screenshots: bool = _env_bool("CAPTURE_SCREENSHOTS", False)
    screenshot_max_width: int = _env_int("SCREENSHOT_MAX_WIDTH", 256)
    event_backend: str = os.getenv("EVENT_BACKEND", "inmemory")  # inmemory|redis
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    event_buffer_size: int = _env_int("EVENT_BUFFER_SIZE", 500)
    worker_concurrency: int = _env_int("WORKER_CONCURRENCY", 1)
    default_max_steps: int = _env_int("DEFAULT_MAX_STEPS", 50)
    session_retention_seconds: int = _env_int("SESSION_RETENTION_SECONDS", 3600)
    otel_enabled: bool = _env_bool("OTEL_ENABLED", False)
    otel_endpoint: str = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    otel_service_name: str = os.getenv("OTEL_SERVICE_NAME", "roam-explorer")


settings = Settings()
