# =============================================================================
# RAG Job Queue
# =============================================================================
# An asynchronous document-ingestion and retrieval job system. Callers
# enqueue chunking and search jobs per tenant (user_id, chat_id); a worker
# pool executes them out-of-band while callers poll status or block on
# completion with a timeout.
#
# Package structure:
#   ragqueue/
#   ├── api/          → FastAPI route handlers (enqueue, status, wait, chats)
#   ├── db/           → Database engine, session, and ORM models
#   ├── jobs/         → Queue, events, handlers, worker pool, status/wait
#   ├── models/       → Pydantic V2 payload and response schemas
#   └── services/     → Parsing, chunking, embedding, vector stores and the
#                        tenant-scoped store adapter
# =============================================================================
