"""PDF to plain text for metadata extraction.

Only the head of a paper reaches the model, so the default ``pypdf``
strategy reads the text layer page by page and can stop after
``max_pages``.  ``docling`` exports cleaner markdown for multi-column and
scanned layouts at a much higher cost; ``auto`` tries docling first and
falls back to pypdf.
"""

import logging
import threading
from pathlib import Path

from docling.document_converter import DocumentConverter
from pypdf import PdfReader

from papermanager.models import ParseError

logger = logging.getLogger(__name__)

# One docling conversion at a time across import workers.
_DOCLING_LOCK = threading.Lock()

EXTRACTORS = ("pypdf", "docling", "auto")


def extract_text(
    pdf_path: Path,
    extractor: str = "pypdf",
    max_pages: int | None = None,
) -> str:
    """Return the text content of *pdf_path*.

    Args:
        pdf_path:  Path to the PDF file.
        extractor: ``pypdf`` (default), ``docling``, or ``auto``.
        max_pages: Read at most this many leading pages (all when None).

    Raises:
        ParseError: if the PDF cannot be read or has no extractable text.
        ValueError: for an unknown extractor name.
    """
    if extractor not in EXTRACTORS:
        raise ValueError(f"Unknown extractor: {extractor!r}")

    logger.info("Extracting text (%s) from: %s", extractor, pdf_path.name)
    if extractor == "pypdf":
        text = read_text_layer(pdf_path, max_pages)
    elif extractor == "docling":
        text = convert_with_docling(pdf_path, max_pages)
    else:
        try:
            text = convert_with_docling(pdf_path, max_pages)
        except ParseError as exc:
            logger.warning("docling failed for %s, using pypdf: %s", pdf_path.name, exc)
            try:
                text = read_text_layer(pdf_path, max_pages)
            except ParseError as fallback_exc:
                raise ParseError(
                    f"Failed to extract text from {pdf_path.name}: docling and pypdf "
                    f"both failed ({fallback_exc})"
                ) from exc
    logger.debug("Extracted %s chars from %s", f"{len(text):,}", pdf_path.name)
    return text


def read_text_layer(pdf_path: Path, max_pages: int | None = None) -> str:
    """Join the embedded text of the leading pages, blank-line separated."""
    try:
        reader = PdfReader(str(pdf_path))
        pages = reader.pages if max_pages is None else reader.pages[:max_pages]
        chunks = [page.extract_text() or "" for page in pages]
    except Exception as e:
        raise ParseError(f"Failed to extract text from {pdf_path.name}: {e}") from e

    text = "\n\n".join(c for c in chunks if c.strip()).strip()
    if not text:
        raise ParseError(
            f"Failed to extract text from {pdf_path.name}: no text layer "
            "(scanned PDF? try --extractor docling)"
        )
    return text


def convert_with_docling(pdf_path: Path, max_pages: int | None = None) -> str:
    """Convert *pdf_path* with docling and return its markdown export."""
    kwargs = {} if max_pages is None else {"page_range": (1, max_pages)}
    with _DOCLING_LOCK:
        try:
            result = DocumentConverter().convert(str(pdf_path), **kwargs)
            text = result.document.export_to_markdown()
        except Exception as e:
            raise ParseError(f"docling could not convert {pdf_path.name}: {e}") from e
    if not text.strip():
        raise ParseError(f"docling produced no text for {pdf_path.name}")
    return text
