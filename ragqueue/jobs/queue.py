# =============================================================================
# Job Queue — Durable Job Table with Atomic Claim
# =============================================================================
#
# Job state lives in the `jobs` table; this class is the only writer.
#
# STATE TRANSITIONS (each one a conditional UPDATE):
#   enqueue          → INSERT state=waiting       (or state=failed on bad input)
#   claim(job_id)    → waiting → active     WHERE id=job_id AND state='waiting'
#   update_progress  → progress=p           WHERE state='active' AND progress <= p
#   complete         → active → completed   WHERE state='active'
#   fail             → {waiting|active} → failed
#
# Because every transition names its expected current state in the WHERE
# clause, two workers can race for the same row and exactly one UPDATE
# matches; the loser sees rowcount == 0 and skips the job.
# Terminal rows match none of the WHERE clauses, so they never change again.
#
# DISPATCH: after the INSERT, enqueue hands the job id to `dispatch`
# (JobSystem sets it to the Celery task's `delay`). If the broker refuses the
# message the job is failed at once, so it never sits `waiting` forever.
# With no dispatcher set, jobs stay `waiting` until something claims them.
#
# DELIVERY: the broker may redeliver (acks_late), but the conditional claim
# runs each job at most once. A worker that dies mid-handler leaves its job
# `active` indefinitely; no lease or requeue exists.
#
# ORDERING: the broker delivers in enqueue order, but several workers
# finish in any order.
# =============================================================================

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from ragqueue.db.engine import session_scope
from ragqueue.db.models import Base, JobRecord, JobState, JobType
from ragqueue.jobs.errors import InvalidJobType, ValidationError, describe_error
from ragqueue.jobs.events import COMPLETED, FAILED, JobEvents
from ragqueue.models.requests import PAYLOAD_MODELS, Tenant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of a job row."""

    id: str
    type: str
    tenant: Tenant
    payload: dict[str, Any]
    state: JobState
    progress: int
    result: dict[str, Any] | None
    error: str | None
    worker_id: str | None
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None

    @classmethod
    def from_record(cls, record: JobRecord) -> "Job":
        return cls(
            id=record.id,
            type=record.type,
            tenant=Tenant(user_id=record.user_id or "", chat_id=record.chat_id or ""),
            payload=dict(record.payload or {}),
            state=JobState(record.state),
            progress=record.progress,
            result=record.result,
            error=record.error,
            worker_id=record.worker_id,
            created_at=record.created_at,
            started_at=record.started_at,
            finished_at=record.finished_at,
        )


def parse_job_type(job_type: str | JobType) -> JobType:
    """Map a type string onto JobType, raising InvalidJobType if unknown."""
    try:
        return JobType(job_type)
    except ValueError:
        raise InvalidJobType(job_type) from None


class JobQueue:
    """Durable job queue over a SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        events: JobEvents,
        dispatch: Callable[[str], Any] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._events = events
        self.dispatch = dispatch

    @property
    def events(self) -> JobEvents:
        return self._events

    def create_schema(self) -> None:
        """Create the jobs table if it does not exist."""
        engine = self._session_factory.kw["bind"]
        Base.metadata.create_all(engine, tables=[JobRecord.__table__])

    # -------------------------------------------------------------------------
    # Producers
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        job_type: str | JobType,
        tenant: Tenant | Mapping[str, Any] | None,
        payload: Mapping[str, Any] | BaseModel | None = None,
    ) -> str:
        """
        Persist a new job and return its id without waiting for it.

        Raises:
            InvalidJobType: job_type is not a JobType value. Nothing is stored.

        A missing/blank tenant or an invalid payload does not raise: the job
        is stored directly as FAILED with a "ValidationError: ..." error, so
        it never becomes active and callers still get an id to inspect.
        """
        jtype = parse_job_type(job_type)
        job_id = uuid.uuid4().hex

        tenant_obj, error = _coerce_tenant(tenant)
        payload_data: dict[str, Any] = {}
        if error is None:
            payload_data, error = _validate_payload(jtype, payload)
        elif isinstance(payload, BaseModel):
            payload_data = payload.model_dump()
        elif payload:
            payload_data = dict(payload)

        record = JobRecord(
            id=job_id,
            type=jtype.value,
            user_id=tenant_obj.user_id or None,
            chat_id=tenant_obj.chat_id or None,
            payload=payload_data,
            state=JobState.WAITING if error is None else JobState.FAILED,
            progress=0,
            error=error,
            finished_at=None if error is None else datetime.now(UTC),
        )
        with session_scope(self._session_factory) as session:
            session.add(record)

        if error is None:
            logger.info(
                "Queued %s job %s (user_id=%s, chat_id=%s)",
                jtype.value, job_id, tenant_obj.user_id, tenant_obj.chat_id,
            )
            self._events.publish_waiting(job_id)
            self._send(job_id)
        else:
            logger.warning("Rejected %s job %s: %s", jtype.value, job_id, error)
            self._events.publish_terminal(job_id, FAILED, error=error)
        return job_id

    def _send(self, job_id: str) -> None:
        if self.dispatch is None:
            return
        try:
            self.dispatch(job_id)
        except Exception as exc:
            logger.exception("Could not dispatch job %s", job_id)
            self.fail(job_id, describe_error(exc))

    # -------------------------------------------------------------------------
    # Consumers (worker side)
    # -------------------------------------------------------------------------

    def claim(self, job_id: str, worker_id: str) -> Job | None:
        """
        Atomically move `job_id` from waiting to active for `worker_id`.

        Returns the claimed job, or None when the job is unknown or no
        longer waiting (another worker claimed it, or it is terminal).
        """
        with session_scope(self._session_factory) as session:
            claimed = session.execute(
                update(JobRecord)
                .where(JobRecord.id == job_id, JobRecord.state == JobState.WAITING)
                .values(
                    state=JobState.ACTIVE,
                    worker_id=worker_id,
                    started_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                return None

            record = session.execute(
                select(JobRecord).where(JobRecord.id == job_id)
            ).scalar_one()
            job = Job.from_record(record)

        self._events.publish_active(job.id)
        return job

    def update_progress(self, job_id: str, progress: int) -> bool:
        """
        Record progress for an active job. Clamped to [0, 100]; a value
        lower than the stored one is ignored. Returns True if stored.
        """
        value = max(0, min(100, int(progress)))
        with session_scope(self._session_factory) as session:
            updated = session.execute(
                update(JobRecord)
                .where(
                    JobRecord.id == job_id,
                    JobRecord.state == JobState.ACTIVE,
                    JobRecord.progress <= value,
                )
                .values(progress=value)
                .execution_options(synchronize_session=False)
            ).rowcount

        if updated:
            self._events.publish_progress(job_id, value)
        return bool(updated)

    def complete(self, job_id: str, result: dict[str, Any]) -> bool:
        """active → completed with `result`. Returns False if the job was not active."""
        with session_scope(self._session_factory) as session:
            updated = session.execute(
                update(JobRecord)
                .where(JobRecord.id == job_id, JobRecord.state == JobState.ACTIVE)
                .values(
                    state=JobState.COMPLETED,
                    progress=100,
                    result=result,
                    finished_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            ).rowcount

        if updated:
            self._events.publish_terminal(job_id, COMPLETED, result=result)
        return bool(updated)

    def fail(self, job_id: str, error: str) -> bool:
        """{waiting|active} → failed with `error`. Returns False if already terminal."""
        with session_scope(self._session_factory) as session:
            updated = session.execute(
                update(JobRecord)
                .where(
                    JobRecord.id == job_id,
                    JobRecord.state.in_([JobState.WAITING, JobState.ACTIVE]),
                )
                .values(
                    state=JobState.FAILED,
                    error=error,
                    finished_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            ).rowcount

        if updated:
            self._events.publish_terminal(job_id, FAILED, error=error)
        return bool(updated)

    # -------------------------------------------------------------------------
    # Readers
    # -------------------------------------------------------------------------

    def get(self, job_id: str) -> Job | None:
        with session_scope(self._session_factory) as session:
            record = session.execute(
                select(JobRecord).where(JobRecord.id == job_id)
            ).scalar_one_or_none()
            return Job.from_record(record) if record is not None else None

    def counts(self) -> dict[str, int]:
        """Number of jobs per state; states with no jobs report 0."""
        totals = {state.value: 0 for state in JobState}
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(JobRecord.state, func.count()).group_by(JobRecord.state)
            ).all()
        for state, count in rows:
            totals[JobState(state).value] = count
        return totals


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _coerce_tenant(tenant: Tenant | Mapping[str, Any] | None) -> tuple[Tenant, str | None]:
    """Return (tenant, error). error is set when either identifier is missing."""
    if tenant is None:
        return Tenant(), describe_error(ValidationError("Both user_id and chat_id are required"))
    if not isinstance(tenant, Tenant):
        tenant = Tenant(
            user_id=str(tenant.get("user_id") or ""),
            chat_id=str(tenant.get("chat_id") or ""),
        )
    if not tenant.is_complete:
        return tenant, describe_error(ValidationError("Both user_id and chat_id are required"))
    return tenant, None


def _validate_payload(
    job_type: JobType,
    payload: Mapping[str, Any] | BaseModel | None,
) -> tuple[dict[str, Any], str | None]:
    """Validate against the type's payload model. Returns (data, error)."""
    model = PAYLOAD_MODELS[job_type]
    raw = payload.model_dump() if isinstance(payload, BaseModel) else dict(payload or {})
    try:
        return model.model_validate(raw).model_dump(), None
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
            for err in exc.errors()
        )
        message = f"Invalid {job_type.value} payload: {problems}"
        return raw, describe_error(ValidationError(message))
