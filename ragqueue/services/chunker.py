# =============================================================================
# Text Chunker — Sliding Window (characters or tiktoken tokens)
# =============================================================================
#
# Splits text into ordered, overlapping chunks. Each chunk carries its
# position metadata; tenant identifiers are NOT added here, the tenant
# store stamps them at storage time.
#
# ALGORITHM:
# 1. Measure the text in the configured unit (characters, or tokens via
#    tiktoken cl100k_base)
# 2. Slide a window of chunk_size units with step chunk_size - chunk_overlap
# 3. Windows start at 0, step, 2*step, ... and stop after the first window
#    that reaches the end of the text
# 4. Every window becomes a chunk, blank ones included; only text that is
#    entirely whitespace gives no chunks
#
# The window count only depends on (length, chunk_size, chunk_overlap), so
# the same input always yields the same number of chunks, and raising the
# overlap (a smaller step) never yields fewer.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import tiktoken

from ragqueue.config import settings

logger = logging.getLogger(__name__)

CHARACTERS = "characters"
TOKENS = "tokens"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class Chunk:
    """
    A single content fragment ready for storage.

    metadata keys set by the chunker:
        source: str | None — file name or other origin label
        chunk_index: int — 0-indexed position in the source
        start_index: int — window start, in chunk units
        unit_count: int — window length, in chunk units
    """

    content: str
    metadata: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Tiktoken Encoder — Cached Singleton
# ---------------------------------------------------------------------------

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def window_starts(total: int, chunk_size: int, chunk_overlap: int) -> list[int]:
    """
    Return the start offsets of every window over `total` units.

    Raises:
        ValueError: chunk_size < 1, chunk_overlap < 0, or
            chunk_overlap >= chunk_size.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ValueError(f"chunk_overlap must be >= 0, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap ({chunk_overlap}) must be smaller than "
            f"chunk_size ({chunk_size})"
        )

    step = chunk_size - chunk_overlap
    starts: list[int] = []
    for start in range(0, total, step):
        starts.append(start)
        if start + chunk_size >= total:
            break
    return starts


def split_text(
    text: str,
    chunk_size: int = 500,
    chunk_overlap: int = 50,
    source: str | None = None,
    unit: str | None = None,
) -> list[Chunk]:
    """
    Split text into overlapping chunks.

    Args:
        text: The text to split.
        chunk_size: Window length in `unit`s (default 500).
        chunk_overlap: Units shared by consecutive windows (default 50).
        source: Origin label copied into every chunk's metadata.
        unit: "characters" or "tokens". Defaults to settings.chunk_unit.

    Returns:
        List of Chunk in text order. Empty or all-whitespace text gives [].
        Otherwise there is one chunk per window, even a blank one, so the
        count never drops as the overlap grows.

    Example:
        1000 characters, chunk_size=200, chunk_overlap=20 → windows start
        at 0, 180, 360, 540, 720, 900 → 6 chunks.
    """
    _unit = unit or settings.chunk_unit
    if _unit not in (CHARACTERS, TOKENS):
        raise ValueError(f"Unsupported chunk unit: {_unit!r}")

    if _unit == TOKENS:
        encoder = _get_encoder()
        units: list[int] | str = encoder.encode(text)
    else:
        units = text

    starts = window_starts(len(units), chunk_size, chunk_overlap)
    if not text.strip():
        return []

    chunks: list[Chunk] = []
    for start in starts:
        window = units[start:start + chunk_size]
        content = encoder.decode(window) if _unit == TOKENS else window
        chunks.append(Chunk(
            content=content,
            metadata={
                "source": source,
                "chunk_index": len(chunks),
                "start_index": start,
                "unit_count": len(window),
            },
        ))

    logger.debug(
        "Split %d %s into %d chunks (size=%d, overlap=%d, source=%s)",
        len(units), _unit, len(chunks), chunk_size, chunk_overlap, source,
    )
    return chunks
