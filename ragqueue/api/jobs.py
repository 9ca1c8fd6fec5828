# =============================================================================
# Jobs API — Enqueue, Status and Wait
# =============================================================================
#
# ENDPOINTS:
#   POST /jobs                  — enqueue a job, 202 + job_id
#   GET  /jobs                  — number of jobs per state
#   GET  /jobs/{job_id}         — status snapshot
#   GET  /jobs/{job_id}/wait    — block until terminal (timeout_ms)
#   POST /chats                 — derive a new chat id for a user
#
# Handlers are plain `def`: FastAPI runs them in its threadpool, which is
# where the blocking wait belongs.
#
# ERROR MAPPING:
#   InvalidJobType → 400     JobNotFound → 404
#   JobTimeout     → 408     JobFailed   → 409 (detail carries the error)
# =============================================================================

from fastapi import APIRouter, Depends, HTTPException, Query

from ragqueue.api.deps import get_job_system
from ragqueue.jobs.errors import (
    InvalidJobType,
    JobFailed,
    JobNotFound,
    JobTimeout,
    ValidationError,
)
from ragqueue.jobs.system import JobSystem
from ragqueue.models.requests import EnqueueRequest, NewChatRequest
from ragqueue.models.responses import (
    EnqueueResponse,
    JobStatus,
    NewChatResponse,
    QueueCountsResponse,
    WaitResponse,
)
from ragqueue.services.tenant_store import new_chat_id

router = APIRouter(tags=["Jobs"])


# ---------------------------------------------------------------------------
# POST /jobs — Enqueue
# ---------------------------------------------------------------------------


@router.post(
    "/jobs",
    response_model=EnqueueResponse,
    status_code=202,
    summary="Queue a chunking or search job",
    description=(
        "Returns immediately with a job_id. Submissions missing a tenant "
        "identifier or with an invalid payload are recorded as failed jobs."
    ),
)
def enqueue_job(
    request: EnqueueRequest,
    system: JobSystem = Depends(get_job_system),
) -> EnqueueResponse:
    try:
        job_id = system.enqueue(request.type, request.tenant, request.payload)
    except InvalidJobType as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    status = system.get_status(job_id)
    state = status.state if status else "waiting"
    if state == "failed":
        message = status.error or "Job rejected"
    else:
        message = f"Job queued. Poll GET /jobs/{job_id} or wait on GET /jobs/{job_id}/wait."
    return EnqueueResponse(job_id=job_id, state=state, message=message)


# ---------------------------------------------------------------------------
# GET /jobs — Queue counts
# ---------------------------------------------------------------------------


@router.get("/jobs", response_model=QueueCountsResponse, summary="Count jobs per state")
def get_queue_counts(system: JobSystem = Depends(get_job_system)) -> QueueCountsResponse:
    return QueueCountsResponse(**system.queue.counts())


# ---------------------------------------------------------------------------
# GET /jobs/{job_id} — Status
# ---------------------------------------------------------------------------


@router.get("/jobs/{job_id}", response_model=JobStatus, summary="Get job status")
def get_job_status(
    job_id: str,
    system: JobSystem = Depends(get_job_system),
) -> JobStatus:
    status = system.get_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status


# ---------------------------------------------------------------------------
# GET /jobs/{job_id}/wait — Block until terminal
# ---------------------------------------------------------------------------


@router.get(
    "/jobs/{job_id}/wait",
    response_model=WaitResponse,
    summary="Wait for a job to finish",
    description="A timeout does not cancel the job; the wait can be repeated.",
)
def wait_for_job(
    job_id: str,
    timeout_ms: int = Query(default=60000, ge=0, le=600000),
    system: JobSystem = Depends(get_job_system),
) -> WaitResponse:
    try:
        result = system.wait_for_job(job_id, timeout=timeout_ms / 1000)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except JobTimeout as exc:
        raise HTTPException(status_code=408, detail=str(exc)) from exc
    except JobFailed as exc:
        raise HTTPException(status_code=409, detail=exc.error) from exc
    return WaitResponse(job_id=job_id, result=result)


# ---------------------------------------------------------------------------
# POST /chats — New chat id
# ---------------------------------------------------------------------------


@router.post("/chats", response_model=NewChatResponse, status_code=201, summary="Create a chat id")
def create_chat(request: NewChatRequest) -> NewChatResponse:
    try:
        chat_id = new_chat_id(request.user_id)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return NewChatResponse(user_id=request.user_id, chat_id=chat_id)
