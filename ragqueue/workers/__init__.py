# =============================================================================
# Workers Package — Celery Task Dispatch
# =============================================================================
#   - celery_app.py:  Celery application factory and settings
#   - tasks.py:       the `ragqueue.run_job` task bound to a JobRunner
#   - entrypoint.py:  module-level app for `celery -A ... worker`
#
# The broker carries job ids only. Claiming, progress and terminal state all
# go through the `jobs` table (see ragqueue/jobs/queue.py).
# =============================================================================
