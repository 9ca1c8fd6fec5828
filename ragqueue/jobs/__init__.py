# =============================================================================
# Jobs Package — Queue, Runner and Status/Wait
# =============================================================================
#   - errors.py:   error taxonomy (ValidationError, InvalidJobType, ...)
#   - events.py:   per-job terminal waiters and lifecycle listeners
#   - queue.py:    durable job table with atomic claim and guarded transitions
#   - handlers.py: chunk-document / chunk-text / search handlers + dispatch
#   - worker.py:   JobRunner: claim one job by id, dispatch, record outcome
#   - status.py:   get_status / wait_for_job
#   - system.py:   JobSystem, the wired-up service object
# =============================================================================
