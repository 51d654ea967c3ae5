from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from .api.routes import router as api_router
from .config.settings import settings
from .core.explore.policy import ExplorationPolicy
from .core.explore.runner import Explorer
from .runtime.events import get_bus
from .telemetry import init_telemetry, shutdown_telemetry
from .worker import start_workers

logger = logging.getLogger(__name__)


def _default_explorer(bus: Any) -> Explorer:
    from .adapters.playwright import PlaywrightDriver

    return Explorer(
        PlaywrightDriver(settings), bus=bus, policy=ExplorationPolicy.from_env()
    )


def create_app(
    explorer: Explorer | None = None,
    bus: Any | None = None,
    workers: int | None = None,
) -> FastAPI:
    bus = bus if bus is not None else (explorer.bus if explorer and explorer.bus else get_bus())
    explorer = explorer or _default_explorer(bus)
    if explorer.bus is None:
        explorer.bus = bus
    concurrency = settings.worker_concurrency if workers is None else workers

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level)
        app.state.tracing = init_telemetry()
        stop = threading.Event()
        if concurrency > 0:
            start_workers(app.state.explorer, app.state.bus, concurrency, stop)
        yield
        stop.set()
        for snap in app.state.explorer.list_sessions():
            try:
                app.state.explorer.end(snap.session_id)
            except Exception as e:
                logger.warning(f"Failed to end session {snap.session_id} on shutdown: {e}")
        shutdown = getattr(app.state.explorer.driver, "shutdown", None)
        if callable(shutdown):
            shutdown()
        shutdown_telemetry()

    app = FastAPI(title="Roam Exploration API", version="0.1.0", lifespan=lifespan)
    app.state.explorer = explorer
    app.state.bus = bus
    app.state.tracing = False
    app.include_router(api_router)

    @app.get("/healthz")
    def healthz():
        return {
            "status": "ok",
            "sessions": len(app.state.explorer.store),
            "tracing": app.state.tracing,
        }

    return app


def main() -> None:
    import os

    import uvicorn

    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "0.0.0.0"),  # nosec B104 - container binding
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
