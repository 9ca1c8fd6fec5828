# =============================================================================
# Document Loader — Docling for PDFs, plain read for text files
# =============================================================================
#
# Turns a file on the worker's disk into one text string for the chunker.
#
#   .pdf          → Docling DocumentConverter, exported to markdown so
#                   tables survive as pipe tables
#   anything else → read as UTF-8 (undecodable bytes replaced)
#
# DESIGN DECISION: Docling is imported on first PDF use, not at module load.
# Importing it pulls in torch and the layout/OCR models, which costs seconds
# and hundreds of MB. The API process never parses files and text-only
# workers never see a PDF, so neither pays for it; Docling also stays an
# optional `pdf` extra instead of a hard dependency.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ragqueue.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LoadedDocument:
    """Text extracted from a source file, plus what the handler reports."""

    text: str
    source: str  # File name, stamped into chunk metadata
    page_count: int = 0


# ---------------------------------------------------------------------------
# Docling Converter — Lazy Singleton
# ---------------------------------------------------------------------------

_converter: Any = None


def _get_converter():
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    if _converter is None:
        from docling.datamodel.base_models import InputFormat
        from docling.datamodel.pipeline_options import PdfPipelineOptions
        from docling.document_converter import DocumentConverter, PdfFormatOption

        logger.info(
            "Loading Docling models (ocr=%s, tables=%s)",
            settings.pdf_ocr, settings.pdf_table_structure,
        )
        pipeline_options = PdfPipelineOptions(
            do_ocr=settings.pdf_ocr,
            do_table_structure=settings.pdf_table_structure,
        )

        _converter = DocumentConverter(
            format_options={
                InputFormat.PDF: PdfFormatOption(
                    pipeline_options=pipeline_options,
                ),
            }
        )
        logger.info("Docling ready")
    return _converter


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_document(file_path: str) -> LoadedDocument:
    """
    Load a document file as text.

    Args:
        file_path: Path to a PDF or text file.

    Returns:
        LoadedDocument with the full text and the file name as source.

    Raises:
        FileNotFoundError: If the file does not exist.
        RuntimeError: If Docling fails to convert a PDF.
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"Document not found: {file_path}")

    if path.suffix.lower() == ".pdf":
        return _load_pdf(path)

    text = path.read_text(encoding="utf-8", errors="replace")
    logger.info("Loaded text file %s (%d characters)", path.name, len(text))
    return LoadedDocument(text=text, source=path.name, page_count=0)


def _load_pdf(path: Path) -> LoadedDocument:
    logger.info("Parsing PDF: %s", path.name)
    converter = _get_converter()

    try:
        result = converter.convert(str(path))
    except Exception as exc:
        raise RuntimeError(f"Docling failed to convert {path.name}: {exc}") from exc

    doc = result.document
    text = doc.export_to_markdown()
    page_count = len(doc.pages) if getattr(doc, "pages", None) else 0

    logger.info(
        "Parsed %s: %d pages, %d characters", path.name, page_count, len(text)
    )
    return LoadedDocument(text=text, source=path.name, page_count=page_count)
