# =============================================================================
# Celery Worker Entry Point
# =============================================================================
#
# Builds the production JobSystem at import time and exposes its Celery app
# with the `ragqueue.run_job` task registered:
#
#   celery -A ragqueue.workers.entrypoint:celery_app worker --loglevel=info
#
# Concurrency comes from WORKER_POOL_SIZE; override with `-c N` if needed.
# Tests never import this module.
# =============================================================================

from ragqueue.jobs.system import JobSystem

job_system = JobSystem.from_settings()
celery_app = job_system.celery
