from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_url: str = Field(
        ..., alias="startUrl", description="Absolute http(s) URL the exploration starts from"
    )


class StartResponse(BaseModel):
    session_id: str
    start_url: str
    status: str = "idle"


class RunRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_steps: int | None = Field(
        None,
        alias="maxSteps",
        ge=1,
        description="Step budget for the run; defaults to DEFAULT_MAX_STEPS",
    )


class StepRecordModel(BaseModel):
    step_number: int
    action: str
    success: bool
    page_key: str
    resulting_url: str
    element_count_after: int
    stuck_counter: int
    target_fingerprint: str | None = None
    selector: str | None = None
    value: str | None = None
    error: str | None = None
    timestamp: datetime


class SessionSnapshotModel(BaseModel):
    session_id: str
    start_url: str
    current_url: str
    status: str
    finish_reason: str | None = None
    step_count: int
    successful_steps: int
    stuck_counter: int
    visited_pages: int
    acted_on_current_page: int
    acted_total: int


class RunSummaryModel(BaseModel):
    session_id: str
    records: list[StepRecordModel]
    steps_completed: int
    successful_steps: int
    status: str
    finish_reason: str | None = None


class QueuedRunResponse(BaseModel):
    job_id: str
    session_id: str
    max_steps: int
    status: str = "queued"


def to_model(model: type[BaseModel], data: Any) -> Any:
    """Build a response model from one of the engine's dataclass records."""
    return model.model_validate(data.to_dict())
