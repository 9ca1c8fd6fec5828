# =============================================================================
# Tenant-Scoped Store Adapter
# =============================================================================
#
# The single enforcement point for multi-tenant isolation in retrieval:
#
#   add_documents(tenant, chunks)
#     → reject blank user_id / chat_id before any I/O
#     → stamp user_id and chat_id onto EVERY chunk's metadata
#     → hand the stamped chunks to the vector store
#
#   search(tenant, query, top_k)
#     → reject blank user_id / chat_id before any I/O
#     → similarity_search(query, k, filter={"user_id": u, "chat_id": c})
#     → drop any hit whose metadata does not carry the same pair
#
# A search for (A, C1) never returns chunks stored for (B, C2) or (A, C2).
# The vector store itself does not enforce any of this.
#
# DESIGN DECISION: Hits are re-checked after the filtered query.
# The metadata filter is translated differently per backend (a Chroma
# `$and` clause, column equality in pgvector), and a backend that
# ignores or mistranslates it would leak other tenants' chunks silently.
# Comparing each hit's own user_id/chat_id costs nothing next to the
# embedding call and keeps isolation independent of the store.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from ragqueue.jobs.errors import ValidationError
from ragqueue.models.requests import Tenant
from ragqueue.services.chunker import Chunk
from ragqueue.services.vectorstore import SearchHit, VectorStore

logger = logging.getLogger(__name__)


def new_chat_id(user_id: str, now_ms: int | None = None) -> str:
    """
    Derive a chat id from the user id and the creation time.

    Format: "<user_id>_<epoch milliseconds>", e.g. "user_123_1718000000000".
    """
    if not user_id or not user_id.strip():
        raise ValidationError("user_id is required to create a chat")
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{user_id}_{timestamp}"


def require_tenant(tenant: Tenant | None) -> Tenant:
    """Return the tenant if both identifiers are present, else raise ValidationError."""
    if tenant is None or not tenant.is_complete:
        raise ValidationError("Both user_id and chat_id are required")
    return tenant


class TenantStore:
    """Wraps a VectorStore so every write and read is scoped to one tenant."""

    def __init__(self, vector_store: VectorStore) -> None:
        self._store = vector_store

    @staticmethod
    def tenant_filter(tenant: Tenant) -> dict[str, str]:
        return {"user_id": tenant.user_id, "chat_id": tenant.chat_id}

    def add_documents(self, tenant: Tenant | None, chunks: Sequence[Chunk]) -> int:
        """
        Store chunks for a tenant. Returns the number of chunks stored.

        Caller-supplied user_id/chat_id metadata is overwritten.
        """
        tenant = require_tenant(tenant)
        stamped = [
            Chunk(
                content=chunk.content,
                metadata={**chunk.metadata, **self.tenant_filter(tenant)},
            )
            for chunk in chunks
        ]
        if not stamped:
            return 0

        self._store.add_documents(stamped)
        logger.info(
            "Added %d chunks for user_id=%s chat_id=%s",
            len(stamped), tenant.user_id, tenant.chat_id,
        )
        return len(stamped)

    def search(self, tenant: Tenant | None, query: str, top_k: int = 5) -> list[SearchHit]:
        """Similarity search restricted to the tenant's own chunks."""
        tenant = require_tenant(tenant)
        wanted = self.tenant_filter(tenant)

        hits = self._store.similarity_search(query, top_k, filter=wanted)
        scoped = [
            hit for hit in hits
            if all(hit.metadata.get(key) == value for key, value in wanted.items())
        ]
        if len(scoped) != len(hits):
            logger.error(
                "Vector store returned %d hits outside tenant user_id=%s chat_id=%s; dropped",
                len(hits) - len(scoped), tenant.user_id, tenant.chat_id,
            )
        return scoped
