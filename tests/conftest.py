# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# Everything runs in-process with no API keys or network:
#   - FakeEmbedder: hashed bag-of-words vectors, so texts sharing words
#     score higher than texts that don't
#   - FakeVectorStore: list-backed store with AND/exact-match filtering
#   - job tables live in a SQLite file under tmp_path (one per test), so
#     worker threads and the test thread see the same database
#   - Celery uses the in-memory broker with a fresh queue name per system;
#     `run_worker` starts an embedded worker (thread pool) for a system
# =============================================================================

from __future__ import annotations

import hashlib
import math
import re
import uuid
from collections.abc import Mapping, Sequence
from contextlib import ExitStack

import pytest
from celery.contrib.testing.worker import start_worker

from ragqueue.db.engine import create_session_factory
from ragqueue.jobs.events import JobEvents
from ragqueue.jobs.queue import JobQueue
from ragqueue.jobs.system import JobSystem
from ragqueue.models.requests import Tenant
from ragqueue.services.chunker import Chunk
from ragqueue.services.tenant_store import TenantStore
from ragqueue.services.vectorstore import SearchHit

ALICE_CHAT_1 = Tenant(user_id="alice", chat_id="alice_1718000000000")
ALICE_CHAT_2 = Tenant(user_id="alice", chat_id="alice_1718000999999")
BOB_CHAT_1 = Tenant(user_id="bob", chat_id="bob_1718000000000")


class FakeEmbedder:
    """Deterministic embedder: each word hashes into one of `dim` buckets."""

    def __init__(self, dim: int = 64):
        self.dim = dim
        self.calls = 0

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dim
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dim
            vec[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0:
            vec[0] = 1.0
            return vec
        return [v / norm for v in vec]

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls += 1
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        self.calls += 1
        return self._vector(text)


class FakeVectorStore:
    """
    In-memory VectorStore.

    Set `ignore_filter = True` to simulate a backend that returns hits
    outside the requested filter.
    """

    def __init__(self, embedder: FakeEmbedder | None = None):
        self.embedder = embedder or FakeEmbedder()
        self.rows: list[tuple[str, str, dict, list[float]]] = []
        self.filters: list[Mapping[str, str] | None] = []
        self.ignore_filter = False

    def add_documents(self, chunks: Sequence[Chunk]) -> list[str]:
        vectors = self.embedder.embed_documents([c.content for c in chunks])
        ids = []
        for chunk, vector in zip(chunks, vectors, strict=True):
            chunk_id = f"chunk-{len(self.rows)}"
            self.rows.append((chunk_id, chunk.content, dict(chunk.metadata), vector))
            ids.append(chunk_id)
        return ids

    def similarity_search(
        self,
        query: str,
        k: int = 5,
        filter: Mapping[str, str] | None = None,
    ) -> list[SearchHit]:
        self.filters.append(filter)
        q = self.embedder.embed_query(query)
        hits = []
        for _, content, metadata, vector in self.rows:
            if filter and not self.ignore_filter:
                if any(metadata.get(key) != value for key, value in filter.items()):
                    continue
            score = sum(a * b for a, b in zip(q, vector, strict=True))
            hits.append(SearchHit(content=content, metadata=dict(metadata), score=round(score, 4)))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:k]

    def metadata_for(self, tenant: Tenant) -> list[dict]:
        return [
            m for _, _, m, _ in self.rows
            if m.get("user_id") == tenant.user_id and m.get("chat_id") == tenant.chat_id
        ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def vector_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def tenant_store(vector_store) -> TenantStore:
    return TenantStore(vector_store)


@pytest.fixture
def session_factory(tmp_path):
    return create_session_factory(f"sqlite:///{tmp_path / 'jobs.db'}")


@pytest.fixture
def queue(session_factory) -> JobQueue:
    job_queue = JobQueue(session_factory, JobEvents())
    job_queue.create_schema()
    return job_queue


@pytest.fixture
def make_system(tenant_store, session_factory):
    """Factory for JobSystems on the test database; all are closed at teardown."""
    systems: list[JobSystem] = []

    def _make(**kwargs) -> JobSystem:
        kwargs.setdefault("pool_size", 2)
        kwargs.setdefault("broker_url", "memory://")
        kwargs.setdefault("queue_name", f"ragqueue-test-{uuid.uuid4().hex[:8]}")
        system = JobSystem.create(tenant_store, session_factory=session_factory, **kwargs)
        system.celery.conf.update(
            broker_transport_options={"polling_interval": 0.01},
            worker_hijack_root_logger=False,
        )
        systems.append(system)
        return system

    yield _make

    for system in systems:
        system.close()


@pytest.fixture
def run_worker(make_system):
    """Start an embedded Celery worker for a JobSystem; stopped at teardown."""
    with ExitStack() as stack:

        def _start(system: JobSystem):
            return stack.enter_context(start_worker(
                system.celery,
                concurrency=system.concurrency,
                pool="threads",
                perform_ping_check=False,
                shutdown_timeout=30,
            ))

        yield _start
