# =============================================================================
# API Dependencies
# =============================================================================
#
# The JobSystem is built once in the application lifespan and stored on
# `app.state`. Route handlers resolve it through `get_job_system` so tests
# can swap it with `app.dependency_overrides[get_job_system]`.
# =============================================================================

from fastapi import HTTPException, Request

from ragqueue.jobs.system import JobSystem


def get_job_system(request: Request) -> JobSystem:
    """
    FastAPI dependency returning the running JobSystem.

    Raises:
        HTTPException 503: The lifespan has not wired a JobSystem yet.
    """
    system = getattr(request.app.state, "job_system", None)
    if system is None:
        raise HTTPException(status_code=503, detail="Job system not initialized")
    return system
