# =============================================================================
# Job Events — In-Process Publish/Subscribe Keyed by Job Id
# =============================================================================
#
# Two kinds of notification flow through here:
#
#   1. Terminal transitions (completed / failed)
#      wait_for_job() registers a threading.Event per waiter BEFORE reading
#      the job's state. publish_terminal() removes every waiter registered
#      for the job and sets each one, so every waiter is woken exactly once.
#
#   2. Lifecycle/progress listeners (waiting, active, progress, completed,
#      failed) — advisory callbacks, e.g. for logging or push updates.
#
# All state is per JobEvents instance; nothing is module-global. Events are
# in-process only: a Celery worker in another process updates the jobs
# table, and waiters here notice on their next re-read (see status.py).
# =============================================================================

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

WAITING = "waiting"
ACTIVE = "active"
PROGRESS = "progress"
COMPLETED = "completed"
FAILED = "failed"

EVENT_KINDS = (WAITING, ACTIVE, PROGRESS, COMPLETED, FAILED)


@dataclass(frozen=True)
class JobEvent:
    """One lifecycle notification."""

    kind: str
    job_id: str
    progress: int | None = None
    result: dict[str, Any] | None = None
    error: str | None = None


Listener = Callable[[JobEvent], None]


class JobEvents:
    """Per-job waiters and lifecycle listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._waiters: dict[str, list[threading.Event]] = {}
        self._listeners: dict[str, list[Listener]] = {kind: [] for kind in EVENT_KINDS}

    # -------------------------------------------------------------------------
    # Terminal waiters
    # -------------------------------------------------------------------------

    def subscribe(self, job_id: str) -> threading.Event:
        """Register a waiter that is set when the job reaches a terminal state."""
        event = threading.Event()
        with self._lock:
            self._waiters.setdefault(job_id, []).append(event)
        return event

    def unsubscribe(self, job_id: str, event: threading.Event) -> None:
        """Remove a waiter that gave up (timeout). No-op if already notified."""
        with self._lock:
            waiters = self._waiters.get(job_id)
            if not waiters:
                return
            try:
                waiters.remove(event)
            except ValueError:
                return
            if not waiters:
                del self._waiters[job_id]

    def waiter_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._waiters.get(job_id, ()))

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, kind: str, listener: Listener) -> None:
        if kind not in self._listeners:
            raise ValueError(f"Unknown event kind: {kind!r}")
        with self._lock:
            self._listeners[kind].append(listener)

    def remove_listener(self, kind: str, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners.get(kind, []):
                self._listeners[kind].remove(listener)

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    def publish_waiting(self, job_id: str) -> None:
        logger.info("Job %s is waiting", job_id)
        self._emit(JobEvent(kind=WAITING, job_id=job_id))

    def publish_active(self, job_id: str) -> None:
        logger.info("Job %s is now active", job_id)
        self._emit(JobEvent(kind=ACTIVE, job_id=job_id))

    def publish_progress(self, job_id: str, progress: int) -> None:
        logger.debug("Job %s progress: %d%%", job_id, progress)
        self._emit(JobEvent(kind=PROGRESS, job_id=job_id, progress=progress))

    def publish_terminal(
        self,
        job_id: str,
        kind: str,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Wake every waiter on the job, then notify listeners."""
        if kind not in (COMPLETED, FAILED):
            raise ValueError(f"Not a terminal event kind: {kind!r}")

        with self._lock:
            waiters = self._waiters.pop(job_id, [])
        for event in waiters:
            event.set()

        if kind == COMPLETED:
            logger.info("Job %s completed", job_id)
        else:
            logger.warning("Job %s failed: %s", job_id, error)
        self._emit(JobEvent(kind=kind, job_id=job_id, result=result, error=error))

    def _emit(self, event: JobEvent) -> None:
        with self._lock:
            listeners = list(self._listeners[event.kind])
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                # Listeners are advisory; a broken one must not fail the job
                logger.exception("Listener for %s events raised", event.kind)

