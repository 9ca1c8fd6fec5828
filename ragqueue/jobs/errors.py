# =============================================================================
# Job System Errors
# =============================================================================
#
# TAXONOMY:
#   JobSystemError
#   ├── ValidationError  — missing/blank user_id or chat_id, invalid payload
#   ├── InvalidJobType   — type outside JobType (enqueue or dispatch time)
#   ├── HandlerError     — chunking / embedding / store failure in a handler
#   ├── JobNotFound      — status/wait on an id that was never enqueued
#   ├── JobFailed        — wait target ended in FAILED
#   └── JobTimeout       — wait deadline passed; the job keeps running
#
# Handler-side errors never escape the worker: they become the job's
# `error` text, formatted as "<ClassName>: <message>".
# =============================================================================


class JobSystemError(Exception):
    """Base class for all job system errors."""


class ValidationError(JobSystemError):
    """Tenant identifiers or payload are missing or invalid."""


class InvalidJobType(JobSystemError):
    """The job type is not one of the known JobType values."""

    def __init__(self, job_type: object):
        self.job_type = job_type
        super().__init__(f"Unknown job type: {job_type!r}")


class HandlerError(JobSystemError):
    """A handler could not complete its chunking, embedding or store step."""


class JobNotFound(JobSystemError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class JobFailed(JobSystemError):
    """The awaited job reached FAILED. `error` holds the stored cause."""

    def __init__(self, job_id: str, error: str | None):
        self.job_id = job_id
        self.error = error or "Unknown error"
        super().__init__(f"Job {job_id} failed: {self.error}")


class JobTimeout(JobSystemError):
    """The wait deadline passed before the job reached a terminal state."""

    def __init__(self, job_id: str, timeout: float):
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:.3f}s waiting for job {job_id}")


def describe_error(exc: BaseException) -> str:
    """Render an exception as the text stored in a failed job's `error`."""
    message = str(exc) or exc.__class__.__name__
    return f"{exc.__class__.__name__}: {message}"
