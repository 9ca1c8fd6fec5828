# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────┐     ┌──────────────────────────────┐
# │  jobs                        │     │  chunks  (pgvector backend)  │
# ├──────────────────────────────┤     ├──────────────────────────────┤
# │ seq (PK, FIFO order)         │     │ id (PK, uuid)                │
# │ id (unique, public job id)   │     │ user_id  ┐ tenant key,       │
# │ type                         │     │ chat_id  ┘ always filtered   │
# │ user_id, chat_id             │     │ content (text)               │
# │ payload (json)               │     │ embedding (vector(N))        │
# │ state, progress              │     │ metadata_ (json/jsonb)       │
# │ result (json), error (text)  │     │ created_at                   │
# │ worker_id                    │     └──────────────────────────────┘
# │ created/started/finished_at  │
# └──────────────────────────────┘
#
# The two tables are independent: jobs carry the tenant only as data, chunks
# are written by the pgvector store. Each owner creates its own table with
# `Base.metadata.create_all(engine, tables=[...])`.
# =============================================================================

import enum
from datetime import UTC, datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ragqueue.config import settings

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests).
JsonColumn = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all ragqueue tables."""

    pass


class JobState(str, enum.Enum):
    """
    Lifecycle state of a job.

    State machine:
        WAITING → ACTIVE → COMPLETED
                         → FAILED
        WAITING → FAILED            (fail-fast validation at enqueue)

    COMPLETED and FAILED are terminal: no further writes are accepted.
    """

    WAITING = "waiting"      # Persisted, not yet claimed by a worker
    ACTIVE = "active"        # Claimed; exactly one worker owns it
    COMPLETED = "completed"  # Handler returned; result stored
    FAILED = "failed"        # Validation or handler error; error stored

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobType(str, enum.Enum):
    """The closed set of job types the worker pool can dispatch."""

    CHUNK_DOCUMENT = "chunk-document"
    CHUNK_TEXT = "chunk-text"
    SEARCH = "search"


class JobRecord(Base):
    """
    One unit of asynchronous work.

    `type` is stored as a plain string rather than an Enum column so that a
    row with an unrecognised type can still be loaded and failed by the
    worker instead of breaking the claim query.
    """

    __tablename__ = "jobs"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)

    # Tenant — nullable so that invalid submissions can be recorded as FAILED
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    chat_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payload: Mapped[dict] = mapped_column(JsonColumn, nullable=False, default=dict)

    state: Mapped[JobState] = mapped_column(
        Enum(
            JobState,
            native_enum=False,
            length=16,
            values_callable=lambda states: [s.value for s in states],
        ),
        nullable=False,
        default=JobState.WAITING,
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    result: Mapped[dict | None] = mapped_column(JsonColumn, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Set when a worker claims the job
    worker_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        # Claim query: oldest WAITING job, optionally of a given type
        Index("idx_jobs_state_type_seq", "state", "type", "seq"),
    )

    def __repr__(self) -> str:
        return f"<JobRecord(id={self.id}, type={self.type}, state={self.state})>"


class ChunkRecord(Base):
    """
    A stored chunk with its embedding, owned by exactly one tenant.

    user_id and chat_id are real columns (not only metadata) so the tenant
    predicate is an indexed exact match.
    """

    __tablename__ = "chunks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    chat_id: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=False,
    )
    # Trailing underscore avoids SQLAlchemy's built-in `.metadata`
    metadata_: Mapped[dict | None] = mapped_column(
        JsonColumn, nullable=True, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<ChunkRecord(id={self.id}, user_id={self.user_id}, "
            f"chat_id={self.chat_id})>"
        )


# Tenant lookup for every similarity search
chunk_tenant_idx = Index("idx_chunk_tenant", ChunkRecord.user_id, ChunkRecord.chat_id)

# HNSW index for cosine similarity search
chunk_embedding_idx = Index(
    "idx_chunk_embedding_hnsw",
    ChunkRecord.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)
