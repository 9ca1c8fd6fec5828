# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Payload and request schemas (requests.py) and status/response schemas
# (responses.py). These are separate from the ORM models in ragqueue/db/.
# =============================================================================
