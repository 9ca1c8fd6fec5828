# =============================================================================
# Celery Task Definition — Run One Job
# =============================================================================
#
# The task is registered per app (shared=False) and closes over that app's
# JobRunner, so two JobSystems in one process never share a task object.
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# The runner uses the sync SQLAlchemy engine and blocking vector store
# calls; do not introduce async code here.
# =============================================================================

import logging

from celery import Celery, Task

from ragqueue.jobs.worker import JobRunner

logger = logging.getLogger(__name__)

RUN_JOB_TASK = "ragqueue.run_job"


def register_job_task(celery_app: Celery, runner: JobRunner) -> Task:
    """Register `ragqueue.run_job` on `celery_app`, backed by `runner`."""

    @celery_app.task(bind=True, name=RUN_JOB_TASK, shared=False)
    def run_job(self, job_id: str) -> bool:
        """
        Claim and run one job.

        Args:
            self: Celery task instance (bound task, provides self.request).
            job_id: Id of a row in the jobs table.

        Returns:
            False when the job was no longer waiting (redelivered message,
            or rejected before a worker saw it).
        """
        logger.debug("Task %s received job %s", self.request.id, job_id)
        return runner.run(job_id, worker_id=self.request.hostname)

    return run_job
