# =============================================================================
# Vector Store Abstraction — Pluggable Backend Protocol
# =============================================================================
#
# The external index behind the tenant store. Two calls only:
#   add_documents(chunks)                 → ids of the stored chunks
#   similarity_search(query, k, filter)   → best k hits matching `filter`
#
# `filter` is a flat {metadata_key: value} mapping; every backend combines
# its entries with logical AND and exact-match semantics. The tenant store
# always passes {"user_id": ..., "chat_id": ...}.
#
# Both methods are synchronous: the callers are Celery worker threads.
#
# ARCHITECTURE:
#   VectorStore (Protocol)
#   ├── ChromaVectorStore — ChromaDB (in-process or client/server)
#   │     filter → {"$and": [{"user_id": {"$eq": u}}, {"chat_id": {"$eq": c}}]}
#   └── PgVectorStore     — PostgreSQL + pgvector, tenant columns + HNSW
#         filter → WHERE user_id = :u AND chat_id = :c
# =============================================================================

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import chromadb
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session, sessionmaker

from ragqueue.config import settings
from ragqueue.db.engine import get_default_session_factory, session_scope
from ragqueue.db.models import Base, ChunkRecord
from ragqueue.services.chunker import Chunk
from ragqueue.services.embedder import Embedder

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class SearchHit:
    """A single result from a similarity search, best first."""

    content: str
    metadata: dict = field(default_factory=dict)
    score: float = 0.0  # cosine similarity, higher = more relevant

    def to_dict(self) -> dict:
        return {"content": self.content, "metadata": self.metadata, "score": self.score}


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class VectorStore(Protocol):
    """Interface every vector store backend provides."""

    def add_documents(self, chunks: Sequence[Chunk]) -> list[str]:
        """Embed and persist chunks with their metadata. Returns chunk ids."""
        ...

    def similarity_search(
        self,
        query: str,
        k: int = 5,
        filter: Mapping[str, str] | None = None,
    ) -> list[SearchHit]:
        """Return up to k hits whose metadata matches every filter entry."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: ChromaDB
# ---------------------------------------------------------------------------


class ChromaVectorStore:
    """
    ChromaDB-backed vector store.

    One collection holds every tenant's chunks; isolation comes from the
    metadata where clause on each query. Embeddings are computed by the
    injected Embedder and passed to Chroma explicitly.
    """

    def __init__(
        self,
        embedder: Embedder,
        client: chromadb.ClientAPI | None = None,
        collection_name: str | None = None,
    ) -> None:
        self._embedder = embedder
        if client is not None:
            self._client = client
        elif settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        else:
            self._client = chromadb.Client()

        self._collection = self._client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )

    def add_documents(self, chunks: Sequence[Chunk]) -> list[str]:
        if not chunks:
            return []

        ids = [uuid.uuid4().hex for _ in chunks]
        contents = [c.content for c in chunks]
        embeddings = self._embedder.embed_documents(contents)

        self._collection.add(
            ids=ids,
            documents=contents,
            embeddings=embeddings,
            metadatas=[_sanitise_chroma_metadata(c.metadata) for c in chunks],
        )
        logger.info("Stored %d chunks in ChromaDB", len(ids))
        return ids

    def similarity_search(
        self,
        query: str,
        k: int = 5,
        filter: Mapping[str, str] | None = None,
    ) -> list[SearchHit]:
        query_embedding = self._embedder.embed_query(query)

        results = self._collection.query(
            query_embeddings=[query_embedding],
            n_results=k,
            where=_build_chroma_where(filter),
            include=["documents", "metadatas", "distances"],
        )

        hits: list[SearchHit] = []
        if results and results["ids"] and results["ids"][0]:
            for i, _ in enumerate(results["ids"][0]):
                distance = results["distances"][0][i] if results["distances"] else 0.0
                metadata = results["metadatas"][0][i] if results["metadatas"] else {}
                content = results["documents"][0][i] if results["documents"] else ""
                hits.append(SearchHit(
                    content=content,
                    metadata=dict(metadata or {}),
                    # Chroma cosine distance is in [0, 2]
                    score=round(1.0 - distance, 4),
                ))

        logger.debug("Chroma search returned %d hits (k=%d, filter=%s)", len(hits), k, filter)
        return hits


# ---------------------------------------------------------------------------
# Implementation 2: pgvector (PostgreSQL)
# ---------------------------------------------------------------------------


class PgVectorStore:
    """
    pgvector-backed vector store.

    Tenant ids live in dedicated indexed columns; only `user_id` and
    `chat_id` are accepted as filter keys.
    """

    FILTER_COLUMNS = {"user_id": ChunkRecord.user_id, "chat_id": ChunkRecord.chat_id}

    def __init__(
        self,
        embedder: Embedder,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self._embedder = embedder
        self._session_factory = session_factory or get_default_session_factory()

    def create_schema(self) -> None:
        """Create the chunks table (the `vector` extension must exist)."""
        engine: Engine = self._session_factory.kw["bind"]
        Base.metadata.create_all(engine, tables=[ChunkRecord.__table__])

    def add_documents(self, chunks: Sequence[Chunk]) -> list[str]:
        if not chunks:
            return []

        embeddings = self._embedder.embed_documents([c.content for c in chunks])
        records: list[ChunkRecord] = []
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            metadata = dict(chunk.metadata)
            if not metadata.get("user_id") or not metadata.get("chat_id"):
                raise ValueError("pgvector chunks require user_id and chat_id metadata")
            records.append(ChunkRecord(
                id=uuid.uuid4().hex,
                user_id=metadata["user_id"],
                chat_id=metadata["chat_id"],
                content=chunk.content,
                embedding=embedding,
                metadata_=metadata,
            ))

        with session_scope(self._session_factory) as session:
            session.add_all(records)

        logger.info("Stored %d chunks in pgvector", len(records))
        return [r.id for r in records]

    def similarity_search(
        self,
        query: str,
        k: int = 5,
        filter: Mapping[str, str] | None = None,
    ) -> list[SearchHit]:
        query_embedding = self._embedder.embed_query(query)
        distance = ChunkRecord.embedding.cosine_distance(query_embedding)

        stmt = select(ChunkRecord, distance.label("distance"))
        for key, value in (filter or {}).items():
            column = self.FILTER_COLUMNS.get(key)
            if column is None:
                raise ValueError(f"Unsupported pgvector filter key: {key!r}")
            stmt = stmt.where(column == value)
        stmt = stmt.order_by(distance).limit(k)

        with session_scope(self._session_factory) as session:
            rows = session.execute(stmt).all()

        return [
            SearchHit(
                content=record.content,
                metadata=record.metadata_ or {},
                score=round(1.0 - dist, 4),
            )
            for record, dist in rows
        ]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_vector_store(
    embedder: Embedder,
    override_type: str | None = None,
) -> ChromaVectorStore | PgVectorStore:
    """
    Return the configured vector store backend.

    Reads `vectorstore_type` from settings:
    - "chroma" → ChromaVectorStore (default)
    - "pgvector" → PgVectorStore
    """
    store_type = override_type or settings.vectorstore_type

    if store_type == "pgvector":
        logger.info("Using pgvector vector store")
        return PgVectorStore(embedder)

    if store_type != "chroma":
        raise ValueError(f"Unknown vectorstore_type: {store_type!r}")

    logger.info("Using ChromaDB vector store")
    return ChromaVectorStore(embedder)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _build_chroma_where(filter: Mapping[str, str] | None) -> dict | None:
    """
    Render a flat filter as a Chroma where clause.

    Chroma's $and needs at least two operands, so a single entry is
    rendered on its own.
    """
    if not filter:
        return None
    clauses = [{key: {"$eq": value}} for key, value in filter.items()]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _sanitise_chroma_metadata(metadata: Mapping) -> dict:
    """
    Sanitise metadata for ChromaDB compatibility.

    ChromaDB requires all metadata values to be str, int, float, or bool:
    - None → dropped
    - list → comma-separated string
    - anything else → str()
    """
    sanitised = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, list):
            sanitised[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
