# =============================================================================
# Status / Wait Service
# =============================================================================
#
# get_status(job_id)          → JobStatus snapshot, or None if unknown
# wait_for_job(job_id, t)     → result dict once the job is terminal
#
# wait_for_job ordering:
#   1. subscribe to the job's terminal event
#   2. read the job (unknown → JobNotFound, terminal → return at once)
#   3. block on the event for at most `wait_poll_interval` seconds, then
#      re-read the job; repeat until terminal or `timeout` has passed
#   4. return / raise from the terminal row
# Subscribing before the read means a job that finishes between steps 2
# and 3 still sets the event. A worker in another process cannot set it,
# so the periodic re-read is what notices those jobs finishing.
#
# A JobTimeout does not touch the job: it keeps running and the caller may
# wait again.
# =============================================================================

from __future__ import annotations

import logging
import time
from typing import Any

from ragqueue.config import settings
from ragqueue.db.models import JobState
from ragqueue.jobs.errors import JobFailed, JobNotFound, JobTimeout
from ragqueue.jobs.events import JobEvents
from ragqueue.jobs.queue import Job, JobQueue
from ragqueue.models.responses import JobStatus

logger = logging.getLogger(__name__)


def to_status(job: Job) -> JobStatus:
    return JobStatus(
        id=job.id,
        type=job.type,
        state=job.state.value,
        progress=job.progress,
        result=job.result if job.state == JobState.COMPLETED else None,
        error=job.error if job.state == JobState.FAILED else None,
        created_at=job.created_at,
        started_at=job.started_at,
        finished_at=job.finished_at,
    )


class StatusService:
    """Read-only job queries and blocking waits."""

    def __init__(
        self,
        queue: JobQueue,
        events: JobEvents | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self._queue = queue
        self._events = events or queue.events
        self._poll_interval = (
            settings.wait_poll_interval if poll_interval is None else poll_interval
        )

    def get_status(self, job_id: str) -> JobStatus | None:
        job = self._queue.get(job_id)
        return to_status(job) if job is not None else None

    def wait_for_job(self, job_id: str, timeout: float | None = None) -> dict[str, Any]:
        """
        Block until the job is terminal and return its result.

        Args:
            job_id: Id returned by enqueue.
            timeout: Seconds to wait. Defaults to settings.default_wait_timeout.

        Raises:
            JobNotFound: No job with this id.
            JobFailed: The job ended in FAILED; `.error` has the cause.
            JobTimeout: `timeout` elapsed first.
        """
        _timeout = settings.default_wait_timeout if timeout is None else timeout

        waiter = self._events.subscribe(job_id)
        try:
            job = self._queue.get(job_id)
            if job is None:
                raise JobNotFound(job_id)

            deadline = time.monotonic() + _timeout
            while not job.state.is_terminal:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.info("Wait for job %s timed out after %.3fs", job_id, _timeout)
                    raise JobTimeout(job_id, _timeout)
                waiter.wait(min(remaining, self._poll_interval))
                job = self._queue.get(job_id)
                if job is None:
                    raise JobNotFound(job_id)
        finally:
            self._events.unsubscribe(job_id, waiter)

        if job.state == JobState.FAILED:
            raise JobFailed(job_id, job.error)
        return job.result or {}
