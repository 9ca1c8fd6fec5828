# =============================================================================
# Celery Application Factory
# =============================================================================
#
# Each JobSystem owns one Celery app. Nothing is registered on a module-level
# app, so tests can run several isolated systems side by side, each on its
# own queue name over the in-memory broker.
#
# ARCHITECTURE:
# ┌──────────┐  job_id   ┌───────┐  job_id   ┌──────────────┐
# │ JobQueue │──────────▶│ Redis │──────────▶│ Celery Worker│
# │ .enqueue │           │(broker)│          │  JobRunner   │
# └────┬─────┘           └───────┘           └──────┬───────┘
#      │ INSERT waiting                              │ claim / complete / fail
#      ▼                                             ▼
# ┌──────────────────────────────────────────────────────────┐
# │                 jobs table (state of record)             │
# └──────────────────────────────────────────────────────────┘
#
# No result backend: results and errors are stored on the job row, which
# is what get_status and wait_for_job read.
# =============================================================================

from __future__ import annotations

from celery import Celery

from ragqueue.config import settings


def create_celery_app(
    broker_url: str | None = None,
    queue_name: str | None = None,
    concurrency: int | None = None,
) -> Celery:
    """
    Build a Celery app configured for job dispatch.

    Args:
        broker_url: Broker URL. Defaults to settings.celery_broker_url;
            tests pass "memory://".
        queue_name: Queue the job task is routed to and the worker consumes.
        concurrency: worker_concurrency. Defaults to settings.worker_pool_size.
    """
    size = settings.worker_pool_size if concurrency is None else concurrency
    if size < 1:
        raise ValueError(f"Worker concurrency must be positive, got {size}")

    app = Celery(
        "ragqueue.workers",
        broker=broker_url or settings.celery_broker_url,
        set_as_current=False,
    )
    app.conf.update(
        # --- Serialization ---
        # Only a job id travels over the broker; JSON is enough and safe.
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",

        # --- Reliability ---
        # A message is acked after the task returns. A redelivered message
        # finds its job already claimed and is skipped by JobRunner.run.
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        # --- Concurrency ---
        worker_concurrency=size,

        # --- Timeouts ---
        task_soft_time_limit=settings.task_soft_time_limit,
        task_time_limit=settings.task_time_limit,

        # --- Routing ---
        task_default_queue=queue_name or settings.celery_queue,

        # --- Results ---
        # State lives in the jobs table.
        task_ignore_result=True,
    )
    return app
