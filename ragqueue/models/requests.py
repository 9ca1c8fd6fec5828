# =============================================================================
# Request & Payload Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the job system:
#   - Tenant: the (user_id, chat_id) pair that scopes storage and retrieval
#   - One payload model per job type, with the defaults the worker relies on
#   - API request bodies for POST /jobs and POST /chats
#
# Tenant fields are deliberately NOT constrained here. A submission with a
# blank user_id or chat_id must still become a job (recorded as FAILED with a
# validation message) rather than being rejected before a job id exists.
# =============================================================================

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ragqueue.db.models import JobType


class Tenant(BaseModel):
    """The composite tenant key. chat_id is scoped under user_id."""

    user_id: str = Field(default="", description="Owning user")
    chat_id: str = Field(default="", description="Chat/session under the user")

    model_config = ConfigDict(frozen=True)

    @property
    def is_complete(self) -> bool:
        return bool(self.user_id and self.user_id.strip()) and bool(
            self.chat_id and self.chat_id.strip()
        )


# ---------------------------------------------------------------------------
# Job Payloads
# ---------------------------------------------------------------------------


class _ChunkingPayload(BaseModel):
    """Shared chunk window settings for the two chunking job types."""

    chunk_size: int = Field(default=500, ge=1, le=10000)
    chunk_overlap: int = Field(default=50, ge=0, le=10000)

    @model_validator(mode="after")
    def _overlap_smaller_than_size(self) -> "_ChunkingPayload":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self


class ChunkDocumentPayload(_ChunkingPayload):
    """Payload for `chunk-document`: a PDF or text file on the worker's disk."""

    source_path: str = Field(..., min_length=1)


class ChunkTextPayload(_ChunkingPayload):
    """Payload for `chunk-text`: raw text supplied inline."""

    text: str = Field(..., min_length=1)


class SearchPayload(BaseModel):
    """Payload for `search`: a tenant-filtered similarity query."""

    query: str = Field(..., min_length=1)
    top_k: int = Field(default=5, ge=1, le=100)


PAYLOAD_MODELS: dict[JobType, type[BaseModel]] = {
    JobType.CHUNK_DOCUMENT: ChunkDocumentPayload,
    JobType.CHUNK_TEXT: ChunkTextPayload,
    JobType.SEARCH: SearchPayload,
}


# ---------------------------------------------------------------------------
# API Request Bodies
# ---------------------------------------------------------------------------


class EnqueueRequest(BaseModel):
    """
    Request body for POST /jobs.

    `type` is a plain string so that unknown types reach the queue and are
    reported as InvalidJobType rather than a generic 422.
    """

    type: str = Field(..., description="chunk-document, chunk-text or search")
    tenant: Tenant = Field(default_factory=Tenant)
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "type": "chunk-text",
                    "tenant": {"user_id": "user_123", "chat_id": "user_123_1718000000000"},
                    "payload": {"text": "Node.js is ...", "chunk_size": 200, "chunk_overlap": 20},
                },
                {
                    "type": "search",
                    "tenant": {"user_id": "user_123", "chat_id": "user_123_1718000000000"},
                    "payload": {"query": "node js", "top_k": 5},
                },
            ]
        }
    )


class NewChatRequest(BaseModel):
    """Request body for POST /chats."""

    user_id: str = Field(..., min_length=1)
