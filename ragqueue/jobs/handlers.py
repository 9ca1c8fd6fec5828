# =============================================================================
# Job Handlers — One Function per JobType
# =============================================================================
#
# PIPELINES (progress reported after each step):
#   chunk-document: load file (10) → split (50) → tenant store add (100)
#   chunk-text:     start (20)     → split (60) → tenant store add (100)
#   search:         issued (50)    → tenant search (100)
#
# Handlers raise on any problem; the worker turns the exception into the
# job's `error`. The tenant is checked first so that a job missing its
# identifiers fails before any file or store I/O.
#
# HANDLERS must cover every JobType member; this is checked at import time
# so a new JobType without a handler fails on startup, not on first use.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ragqueue.db.models import JobType
from ragqueue.jobs.errors import HandlerError
from ragqueue.jobs.queue import Job, parse_job_type
from ragqueue.models.requests import (
    ChunkDocumentPayload,
    ChunkTextPayload,
    SearchPayload,
)
from ragqueue.services.chunker import Chunk, split_text
from ragqueue.services.parser import LoadedDocument, load_document
from ragqueue.services.tenant_store import TenantStore, require_tenant

logger = logging.getLogger(__name__)


@dataclass
class JobContext:
    """What a handler sees of the job it runs."""

    job: Job
    report_progress: Callable[[int], Any]


@dataclass
class HandlerDeps:
    """Collaborators shared by all handlers; swap loader/splitter in tests."""

    tenant_store: TenantStore
    loader: Callable[[str], LoadedDocument] = load_document
    splitter: Callable[..., list[Chunk]] = split_text


Handler = Callable[[JobContext, HandlerDeps], dict[str, Any]]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_chunk_document(ctx: JobContext, deps: HandlerDeps) -> dict[str, Any]:
    tenant = require_tenant(ctx.job.tenant)
    payload = ChunkDocumentPayload.model_validate(ctx.job.payload)

    document = deps.loader(payload.source_path)
    ctx.report_progress(10)

    chunks = deps.splitter(
        document.text,
        chunk_size=payload.chunk_size,
        chunk_overlap=payload.chunk_overlap,
        source=document.source,
    )
    if not chunks:
        raise HandlerError(
            f"No chunks produced from {document.source}: file may be empty or unreadable"
        )
    ctx.report_progress(50)

    count = deps.tenant_store.add_documents(tenant, chunks)
    ctx.report_progress(100)

    return {
        "chunk_count": count,
        "page_count": document.page_count,
        "message": f"Added {count} chunks from {document.source}",
    }


def handle_chunk_text(ctx: JobContext, deps: HandlerDeps) -> dict[str, Any]:
    tenant = require_tenant(ctx.job.tenant)
    payload = ChunkTextPayload.model_validate(ctx.job.payload)
    ctx.report_progress(20)

    chunks = deps.splitter(
        payload.text,
        chunk_size=payload.chunk_size,
        chunk_overlap=payload.chunk_overlap,
        source="text",
    )
    if not chunks:
        raise HandlerError("No chunks produced from text: text is blank")
    ctx.report_progress(60)

    count = deps.tenant_store.add_documents(tenant, chunks)
    ctx.report_progress(100)

    return {"chunk_count": count, "message": f"Added {count} text chunks"}


def handle_search(ctx: JobContext, deps: HandlerDeps) -> dict[str, Any]:
    tenant = require_tenant(ctx.job.tenant)
    payload = SearchPayload.model_validate(ctx.job.payload)
    ctx.report_progress(50)

    hits = deps.tenant_store.search(tenant, payload.query, payload.top_k)
    ctx.report_progress(100)

    return {
        "results_count": len(hits),
        "results": [hit.to_dict() for hit in hits],
    }


# ---------------------------------------------------------------------------
# Dispatch Table
# ---------------------------------------------------------------------------

HANDLERS: dict[JobType, Handler] = {
    JobType.CHUNK_DOCUMENT: handle_chunk_document,
    JobType.CHUNK_TEXT: handle_chunk_text,
    JobType.SEARCH: handle_search,
}

_unhandled = set(JobType) - set(HANDLERS)
if _unhandled:
    raise RuntimeError(
        "No handler registered for job types: "
        + ", ".join(sorted(t.value for t in _unhandled))
    )


def dispatch(ctx: JobContext, deps: HandlerDeps) -> dict[str, Any]:
    """
    Run the handler for the job's type.

    Raises:
        InvalidJobType: the stored type is not a JobType value.
        Exception: whatever the handler raises.
    """
    job_type = parse_job_type(ctx.job.type)
    logger.info(
        "Processing job %s: %s (user_id=%s, chat_id=%s)",
        ctx.job.id, job_type.value, ctx.job.tenant.user_id, ctx.job.tenant.chat_id,
    )
    return HANDLERS[job_type](ctx, deps)
