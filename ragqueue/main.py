# =============================================================================
# Application Entry Point
# =============================================================================
#
# Builds the FastAPI app and wires the JobSystem in the lifespan:
#   embedder → vector store → TenantStore → JobSystem (Celery producer)
#
# Run with:
#   uvicorn ragqueue.main:app --reload
#   celery -A ragqueue.workers.entrypoint:celery_app worker   (separately)
#
# `create_app(job_system)` accepts a prebuilt system so tests can run the
# HTTP layer against fakes and a temporary database.
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ragqueue.api import jobs as jobs_api
from ragqueue.config import settings
from ragqueue.jobs.system import JobSystem
from ragqueue.models.responses import HealthResponse

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(job_system: JobSystem | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        system = job_system or JobSystem.from_settings()
        app.state.job_system = system

        logger.info(
            "Starting %s v%s (broker queue %s)",
            settings.app_name,
            settings.app_version,
            system.celery.conf.task_default_queue,
        )

        yield

        logger.info("Shutting down %s", settings.app_name)
        system.close()

    app = FastAPI(
        title=settings.app_name,
        description="Asynchronous document chunking and tenant-scoped retrieval jobs",
        version=settings.app_version,
        lifespan=lifespan,
    )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health() -> HealthResponse:
        return HealthResponse(version=settings.app_version, service=settings.app_name)

    app.include_router(jobs_api.router)
    return app


configure_logging()
app = create_app()
