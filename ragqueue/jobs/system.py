# =============================================================================
# Job System — Explicitly Constructed Service Object
# =============================================================================
#
# Wires one queue, one event hub, one Celery app with its job task, one
# runner and one status service around a tenant store. Nothing here is a
# module-level singleton: tests build as many isolated systems as they
# need, each on its own database and broker queue.
#
#   system = JobSystem.create(tenant_store, database_url="sqlite:///jobs.db")
#   job_id = system.queue_text(tenant, "some text", chunk_size=200)
#   result = system.wait_for_job(job_id, timeout=5)
#   system.close()
#
# Workers are started by Celery, not by this object:
#   celery -A ragqueue.workers.entrypoint:celery_app worker
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from celery import Celery, Task
from sqlalchemy.orm import Session, sessionmaker

from ragqueue.config import settings
from ragqueue.db.engine import create_session_factory
from ragqueue.db.models import JobType
from ragqueue.jobs.events import JobEvents
from ragqueue.jobs.handlers import HandlerDeps
from ragqueue.jobs.queue import JobQueue
from ragqueue.jobs.status import StatusService
from ragqueue.jobs.worker import JobRunner
from ragqueue.models.requests import Tenant
from ragqueue.models.responses import JobStatus
from ragqueue.services.embedder import OpenAIEmbedder
from ragqueue.services.tenant_store import TenantStore
from ragqueue.services.vectorstore import PgVectorStore, get_vector_store
from ragqueue.workers.celery_app import create_celery_app
from ragqueue.workers.tasks import register_job_task

logger = logging.getLogger(__name__)


class JobSystem:
    """Queue + Celery dispatch + status/wait behind one handle."""

    def __init__(
        self,
        queue: JobQueue,
        runner: JobRunner,
        celery: Celery,
        task: Task,
        status: StatusService,
    ) -> None:
        self.queue = queue
        self.runner = runner
        self.celery = celery
        self.task = task
        self.status = status

    @classmethod
    def create(
        cls,
        tenant_store: TenantStore,
        database_url: str | None = None,
        session_factory: sessionmaker[Session] | None = None,
        pool_size: int | None = None,
        deps: HandlerDeps | None = None,
        broker_url: str | None = None,
        queue_name: str | None = None,
    ) -> "JobSystem":
        """Build a system and create the jobs table if needed."""
        factory = session_factory or create_session_factory(
            database_url or settings.database_url_sync
        )
        events = JobEvents()
        queue = JobQueue(factory, events)
        queue.create_schema()

        runner = JobRunner(queue, deps or HandlerDeps(tenant_store=tenant_store))
        celery_app = create_celery_app(
            broker_url=broker_url,
            queue_name=queue_name,
            concurrency=pool_size,
        )
        task = register_job_task(celery_app, runner)
        queue.dispatch = task.delay

        return cls(
            queue=queue,
            runner=runner,
            celery=celery_app,
            task=task,
            status=StatusService(queue, events),
        )

    @classmethod
    def from_settings(cls) -> "JobSystem":
        """Assemble the production system: embedder → vector store → tenants."""
        vector_store = get_vector_store(OpenAIEmbedder())
        if isinstance(vector_store, PgVectorStore):
            vector_store.create_schema()
        return cls.create(TenantStore(vector_store))

    @property
    def concurrency(self) -> int:
        return self.celery.conf.worker_concurrency

    def close(self) -> None:
        """Release broker connections. Running workers are not affected."""
        self.celery.close()

    def __enter__(self) -> "JobSystem":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Enqueue helpers
    # -------------------------------------------------------------------------

    def enqueue(self, job_type: str | JobType, tenant: Tenant | dict | None, payload: dict | None = None) -> str:
        return self.queue.enqueue(job_type, tenant, payload)

    def queue_document(
        self,
        tenant: Tenant,
        source_path: str,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> str:
        """Queue chunking + indexing of a PDF or text file."""
        return self.enqueue(JobType.CHUNK_DOCUMENT, tenant, {
            "source_path": source_path,
            "chunk_size": settings.chunk_size if chunk_size is None else chunk_size,
            "chunk_overlap": settings.chunk_overlap if chunk_overlap is None else chunk_overlap,
        })

    def queue_text(
        self,
        tenant: Tenant,
        text: str,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> str:
        """Queue chunking + indexing of raw text."""
        return self.enqueue(JobType.CHUNK_TEXT, tenant, {
            "text": text,
            "chunk_size": settings.chunk_size if chunk_size is None else chunk_size,
            "chunk_overlap": settings.chunk_overlap if chunk_overlap is None else chunk_overlap,
        })

    def queue_search(self, tenant: Tenant, query: str, top_k: int | None = None) -> str:
        """Queue a tenant-filtered similarity search."""
        return self.enqueue(JobType.SEARCH, tenant, {
            "query": query,
            "top_k": settings.search_top_k if top_k is None else top_k,
        })

    # -------------------------------------------------------------------------
    # Status / wait
    # -------------------------------------------------------------------------

    def get_status(self, job_id: str) -> JobStatus | None:
        return self.status.get_status(job_id)

    def wait_for_job(self, job_id: str, timeout: float | None = None) -> dict[str, Any]:
        return self.status.wait_for_job(job_id, timeout)
