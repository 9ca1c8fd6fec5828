# =============================================================================
# Job Runner — Claim, Dispatch, Record the Outcome
# =============================================================================
#
# Called by the Celery task (ragqueue/workers/tasks.py) with a job id:
#   1. Claim the job: waiting → active, conditional on the row still
#      being `waiting`. Nothing claimed (redelivery, already failed) → skip
#   2. Dispatch by JobType; the handler reports progress as it goes
#   3. Handler returned → complete(result); handler raised → fail(error)
#   4. complete() itself raised (result not storable) → fail(error)
#
# A handler exception never reaches Celery: it is stored as the job's error
# and the task returns normally. Errors from the queue itself (database
# unavailable during the claim) propagate and are logged by Celery; the
# job row is left as it was.
#
# No retry: a job is attempted once. A worker killed mid-handler leaves its
# job `active`; the redelivered message cannot claim it again.
# =============================================================================

from __future__ import annotations

import logging
import uuid

from ragqueue.jobs.errors import describe_error
from ragqueue.jobs.handlers import HandlerDeps, JobContext, dispatch
from ragqueue.jobs.queue import JobQueue

logger = logging.getLogger(__name__)


class JobRunner:
    """Runs one claimed job at a time on behalf of a Celery worker."""

    def __init__(
        self,
        queue: JobQueue,
        deps: HandlerDeps,
        worker_id: str | None = None,
    ) -> None:
        self.queue = queue
        self.deps = deps
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"

    def run(self, job_id: str, worker_id: str | None = None) -> bool:
        """Claim and run `job_id`. Returns False if the job was not claimable."""
        owner = worker_id or self.worker_id
        job = self.queue.claim(job_id, owner)
        if job is None:
            logger.info("%s: job %s is no longer waiting, skipping", owner, job_id)
            return False

        ctx = JobContext(
            job=job,
            report_progress=lambda value: self.queue.update_progress(job.id, value),
        )
        try:
            result = dispatch(ctx, self.deps)
        except Exception as exc:
            error = describe_error(exc)
            logger.warning("%s: job %s error: %s", owner, job.id, error)
            self.queue.fail(job.id, error)
            return True

        try:
            self.queue.complete(job.id, result)
        except Exception as exc:
            error = describe_error(exc)
            logger.exception("%s: could not store result of job %s", owner, job.id)
            self.queue.fail(job.id, error)
            return True

        logger.info("%s completed job %s", owner, job.id)
        return True
