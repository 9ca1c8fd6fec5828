# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - deps.py: dependencies resolving the JobSystem wired in main.py
#   - jobs.py: enqueue, status, wait, queue counts and chat id creation
# =============================================================================
