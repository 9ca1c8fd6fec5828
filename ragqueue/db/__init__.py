# =============================================================================
# Database Package
# =============================================================================
# Sync SQLAlchemy engine/session helpers and ORM models.
#
# Key exports:
#   - create_session_factory / session_scope: explicit session management
#   - Base: SQLAlchemy declarative base for ORM models
#   - JobRecord: persisted job state (the durable queue)
#   - ChunkRecord: tenant-tagged chunks for the pgvector store
# =============================================================================
