from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from ..config.settings import settings
from ..core.explore.errors import (
    ConfigurationError,
    ExplorationError,
    SessionBusyError,
    SessionFinishedError,
    SessionNotFoundError,
)
from ..core.explore.runner import Explorer
from .dto import (
    QueuedRunResponse,
    RunRequest,
    RunSummaryModel,
    SessionSnapshotModel,
    StartRequest,
    StartResponse,
    StepRecordModel,
    to_model,
)

logger = logging.getLogger(__name__)

router = APIRouter()

TERMINAL_STATUSES = {"completed", "stopped", "error"}


def get_explorer(request: Request) -> Explorer:
    return request.app.state.explorer


def get_event_bus(request: Request):
    return request.app.state.bus


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, SessionNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (SessionBusyError, SessionFinishedError)):
        return HTTPException(status_code=409, detail=str(e))
    if not isinstance(e, ExplorationError):
        logger.exception(f"Unexpected error: {e}")
    return HTTPException(status_code=500, detail=str(e))


@router.post("/explorations", response_model=StartResponse, status_code=201)
def start_exploration(
    req: StartRequest, explorer: Explorer = Depends(get_explorer)
) -> StartResponse:
    try:
        session_id = explorer.start(req.start_url)
        snap = explorer.stats(session_id)
    except Exception as e:
        raise _http_error(e) from e
    return StartResponse(session_id=session_id, start_url=snap.start_url, status=snap.status)


@router.get("/explorations", response_model=list[SessionSnapshotModel])
def list_explorations(explorer: Explorer = Depends(get_explorer)):
    try:
        return [to_model(SessionSnapshotModel, s) for s in explorer.list_sessions()]
    except Exception as e:
        raise _http_error(e) from e


@router.get("/explorations/{session_id}", response_model=SessionSnapshotModel)
def get_exploration(session_id: str, explorer: Explorer = Depends(get_explorer)):
    try:
        return to_model(SessionSnapshotModel, explorer.stats(session_id))
    except Exception as e:
        raise _http_error(e) from e


@router.get("/explorations/{session_id}/history", response_model=list[StepRecordModel])
def get_history(session_id: str, explorer: Explorer = Depends(get_explorer)):
    try:
        return [to_model(StepRecordModel, r) for r in explorer.history(session_id)]
    except Exception as e:
        raise _http_error(e) from e


@router.post("/explorations/{session_id}/step", response_model=StepRecordModel)
def step_exploration(session_id: str, explorer: Explorer = Depends(get_explorer)):
    try:
        return to_model(StepRecordModel, explorer.step(session_id))
    except Exception as e:
        raise _http_error(e) from e


@router.post("/explorations/{session_id}/run", response_model=RunSummaryModel)
def run_exploration(
    session_id: str,
    req: RunRequest | None = None,
    explorer: Explorer = Depends(get_explorer),
):
    max_steps = (req.max_steps if req else None) or settings.default_max_steps
    try:
        return to_model(RunSummaryModel, explorer.run(session_id, max_steps))
    except Exception as e:
        raise _http_error(e) from e


@router.post(
    "/explorations/{session_id}/run/async", response_model=QueuedRunResponse, status_code=202
)
def run_exploration_async(
    session_id: str,
    req: RunRequest | None = None,
    explorer: Explorer = Depends(get_explorer),
    bus=Depends(get_event_bus),
) -> QueuedRunResponse:
    max_steps = (req.max_steps if req else None) or settings.default_max_steps
    try:
        snap = explorer.stats(session_id)
        if snap.status in TERMINAL_STATUSES:
            raise SessionFinishedError(session_id, snap.status)
        job_id = str(uuid.uuid4())
        bus.enqueue({"job_id": job_id, "session_id": session_id, "max_steps": max_steps})
    except Exception as e:
        raise _http_error(e) from e
    return QueuedRunResponse(job_id=job_id, session_id=session_id, max_steps=max_steps)


@router.get("/jobs/{job_id}")
def get_job(job_id: str, bus=Depends(get_event_bus)):
    try:
        res = bus.get_result(job_id)
        if not res:
            return {"status": "pending", "job_id": job_id}
        return res
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/explorations/{session_id}/stop", response_model=SessionSnapshotModel)
def stop_exploration(session_id: str, explorer: Explorer = Depends(get_explorer)):
    try:
        return to_model(SessionSnapshotModel, explorer.stop(session_id))
    except Exception as e:
        raise _http_error(e) from e


@router.delete("/explorations/{session_id}", response_model=SessionSnapshotModel)
def end_exploration(session_id: str, explorer: Explorer = Depends(get_explorer)):
    try:
        return to_model(SessionSnapshotModel, explorer.end(session_id))
    except Exception as e:
        raise _http_error(e) from e


@router.websocket("/explorations/{session_id}/events")
async def stream_events(websocket: WebSocket, session_id: str) -> None:
    """Forward the session's step events until it finishes or is ended."""
    explorer: Explorer = websocket.app.state.explorer
    bus = websocket.app.state.bus
    if session_id not in explorer.store:
        await websocket.close(code=4404)
        return

    await websocket.accept()
    disconnected = asyncio.create_task(_until_disconnect(websocket))
    try:
        while not disconnected.done():
            event = await asyncio.to_thread(bus.next_event, session_id, 1.0)
            if event is None:
                if session_id not in explorer.store:
                    break
                continue
            await websocket.send_json(event)
            if event.get("status") in TERMINAL_STATUSES:
                break
    except WebSocketDisconnect:
        logger.debug(f"Event subscriber of {session_id} disconnected")
    finally:
        client_gone = disconnected.done()
        disconnected.cancel()
    if not client_gone:
        await websocket.close()


async def _until_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
