# =============================================================================
# Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the job system, both
# from the Python API (StatusService.get_status) and over HTTP.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class JobStatus(BaseModel):
    """
    A read-only snapshot of one job.

    `result` is only set when state is "completed"; `error` only when
    state is "failed".
    """

    id: str
    type: str
    state: str = Field(description="waiting, active, completed or failed")
    progress: int = Field(ge=0, le=100)
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class EnqueueResponse(BaseModel):
    """
    Response for POST /jobs — the job id to poll or wait on.

    state is "waiting" for accepted jobs and "failed" when the submission
    was recorded but rejected by validation.
    """

    job_id: str
    state: str
    message: str


class WaitResponse(BaseModel):
    """Response for GET /jobs/{job_id}/wait — the terminal result."""

    job_id: str
    result: dict[str, Any]


class QueueCountsResponse(BaseModel):
    """Response for GET /jobs — number of jobs in each state."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0


class NewChatResponse(BaseModel):
    """Response for POST /chats — a fresh chat id scoped under the user."""

    user_id: str
    chat_id: str
