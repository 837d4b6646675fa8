"""Import PDFs into the library — single file or a whole directory.

Per-document flow
-----------------
1. Reject the file if its path is already in the library (before any
   costly inference call).
2. Extract the PDF text (``parser.py``).
3. Extract metadata with the configured backend (``pipeline.py``).
4. Reject the paper if its title is already in the library.
5. Insert the record.

Any failure leaves the library untouched and is reported as a
``PipelineError``.

Batch mode
----------
Each PDF runs its own pipeline on a worker thread; documents are fully
independent and finish in any order.  Files already in the library are
skipped without calling the model.
"""

import logging
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any

from tqdm.auto import tqdm

from papermanager.library import Library
from papermanager.models import (
    Config,
    DuplicatePaperError,
    FailedImport,
    ImportReport,
    PaperRecord,
    PipelineError,
)
from papermanager.parser import extract_text
from papermanager.pipeline import MetadataExtractor, create_extractor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# PDF discovery
# ---------------------------------------------------------------------------


def find_pdfs(source_dir: Path) -> list[Path]:
    """Return all PDF files found recursively under ``source_dir``, sorted."""
    return sorted(source_dir.rglob("*.pdf"))


# ---------------------------------------------------------------------------
# Single document
# ---------------------------------------------------------------------------


def import_pdf(
    pdf_path: Path,
    library: Library,
    extractor: MetadataExtractor,
    config: Config,
) -> PaperRecord:
    """Import one PDF end-to-end and return the stored ``PaperRecord``.

    Raises:
        PipelineError: wraps any ``DuplicatePaperError``, ``ParseError``,
            ``LLMError``, ``ResponseError`` or other exception.
    """
    try:
        return _run_import(pdf_path, library, extractor, config)
    except PipelineError:
        raise
    except Exception as e:
        raise PipelineError(pdf_path, e) from e


def _run_import(
    pdf_path: Path,
    library: Library,
    extractor: MetadataExtractor,
    config: Config,
) -> PaperRecord:
    file_path = str(pdf_path.resolve())
    logger.info("Starting import: %s", pdf_path.name)

    if library.has_file_path(file_path):
        raise DuplicatePaperError("A paper with this file is already in your library.")

    text = extract_text(pdf_path, extractor=config.extractor, max_pages=config.max_pages)
    metadata = extractor.extract(text, config.backend)
    logger.info("Extracted metadata for paper: %s", metadata.title or "<untitled>")

    # add_paper repeats this check under its lock.
    if metadata.title and library.has_title(metadata.title):
        raise DuplicatePaperError(
            f'A paper with the title "{metadata.title}" is already in your library.'
        )

    return library.add_paper(metadata, file_path)


# ---------------------------------------------------------------------------
# Batch runner
# ---------------------------------------------------------------------------


def import_directory(source_dir: Path, library: Library, config: Config) -> ImportReport:
    """Import every PDF under ``source_dir`` and return an aggregate report.

    PDFs whose path is already in the library count as skipped.  With
    ``config.dry_run`` the remaining PDFs are listed and also counted as
    skipped; no model is called.  Failures are recorded and the batch
    continues.

    Args:
        source_dir: Directory to scan for PDFs (recursive).
        library:    Target library.
        config:     Runtime configuration; read once for the whole batch.
    """
    pdfs = find_pdfs(source_dir)
    logger.info("Discovered PDFs: %d", len(pdfs))

    n_imported = 0
    n_skipped = 0
    n_failed = 0
    failed_imports: list[FailedImport] = []

    jobs: list[Path] = []
    for pdf_path in pdfs:
        if library.has_file_path(str(pdf_path.resolve())):
            logger.debug("Already in library: %s", pdf_path.name)
            n_skipped += 1
            continue
        jobs.append(pdf_path)

    logger.info("Selected for import: %d (skipped: %d)", len(jobs), n_skipped)
    if config.dry_run:
        for pdf_path in jobs:
            logger.info("  Would import: %s", pdf_path)
        return ImportReport(
            imported=0, skipped=n_skipped + len(jobs), failed=0, failed_imports=[]
        )

    extractor = create_extractor(config)
    show_progress = sys.stderr.isatty()
    futures_to_path: dict[Any, tuple[Path, int]] = {}
    run_total = len(jobs)

    with ThreadPoolExecutor(
        max_workers=config.workers,
        thread_name_prefix="worker",
    ) as executor:
        for run_idx, pdf_path in enumerate(jobs, start=1):
            future = executor.submit(import_pdf, pdf_path, library, extractor, config)
            futures_to_path[future] = (pdf_path, run_idx)

        with tqdm(
            total=run_total,
            desc="Import",
            unit="pdf",
            disable=not show_progress,
            leave=True,
        ) as progress:
            for future in as_completed(futures_to_path):
                pdf_path, run_idx = futures_to_path[future]
                try:
                    record = future.result()
                    logger.info(
                        "  [%d/%d] Imported: %s", run_idx, run_total, record.title
                    )
                    n_imported += 1
                except PipelineError as exc:
                    logger.error("  [%d/%d] Failed: %s", run_idx, run_total, exc)
                    n_failed += 1
                    failed_imports.append(
                        FailedImport(pdf_path=str(pdf_path), error=str(exc.cause))
                    )
                finally:
                    progress.update(1)
                    progress.set_postfix(ok=n_imported, failed=n_failed)

    return ImportReport(
        imported=n_imported,
        skipped=n_skipped,
        failed=n_failed,
        failed_imports=failed_imports,
    )
