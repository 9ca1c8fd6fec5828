# =============================================================================
# Services Package — Chunking Pipeline and Retrieval Layer
# =============================================================================
#   - parser.py:       load a PDF (Docling) or text file as text
#   - chunker.py:      sliding-window splitter (characters or tiktoken tokens)
#   - embedder.py:     OpenAI-compatible embeddings behind an Embedder protocol
#   - vectorstore.py:  pluggable vector store protocol (Chroma, pgvector)
#   - tenant_store.py: tenant-scoped store adapter and chat id derivation
# =============================================================================
