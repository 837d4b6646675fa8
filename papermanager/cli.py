"""Command-line interface for the paper manager.

Entry point: ``paper-manager`` (configured in ``pyproject.toml``).

Usage:
    paper-manager import --file PDF [options]     # single-file import
    paper-manager import --source DIR [options]   # batch import
    paper-manager list
    paper-manager search TEXT [--by name|authors|publication|year]
    paper-manager show ID
    paper-manager delete ID
    paper-manager mark-read ID [--unread]
    paper-manager config [--backend remote|local] [--api-key KEY]
                         [--local-model PATH|bundled]

Global options (before the command):
    --data-dir DIR, --verbose/--no-verbose, --log-file FILE.

The library, settings and API-key files live under ``--data-dir``
(default ``~/.papermanager``).  ``import --backend`` overrides the persisted
backend selection for one run; ``config --backend`` changes it for good.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from papermanager.importer import import_directory, import_pdf
from papermanager.library import SEARCH_FIELDS, Library
from papermanager.log import setup_logging
from papermanager.models import (
    BackendSelection,
    Config,
    PaperNotFoundError,
    PipelineError,
    _DATA_DIR,
    _DEFAULT_MAX_CHARS,
)
from papermanager.parser import EXTRACTORS
from papermanager.pipeline import create_extractor
from papermanager.renderer import render_paper, render_paper_list
from papermanager.settings import (
    get_api_key,
    load_settings,
    mask_secret,
    save_settings,
    set_api_key,
)

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    parsed = int(value)
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return parsed


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and run the selected command."""
    load_dotenv()

    parser = _build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        verbose=args.verbose,
        log_file=Path(args.log_file) if args.log_file else None,
    )

    config = _build_config(args)
    args.handler(args, config)


def _build_config(args: argparse.Namespace) -> Config:
    """Merge persisted settings and command-line flags into a ``Config``."""
    data_dir = Path(args.data_dir)
    settings_path = data_dir / "settings.json"
    settings = load_settings(settings_path)

    config = Config(
        backend=settings.backend,
        library_path=data_dir / "library.sqlite3",
        settings_path=settings_path,
        env_file=data_dir / ".env",
        verbose=args.verbose,
    )
    if settings.local_model_path is not None:
        config.local_model_path = settings.local_model_path
    if args.command == "import":
        if args.backend:
            config.backend = BackendSelection(args.backend)
        config.model = args.model
        config.base_url = args.base_url
        config.max_chars = args.max_chars
        config.extractor = args.extractor
        config.max_pages = args.max_pages
        config.timeout_s = args.timeout
        config.max_output_tokens = args.max_output_tokens
        config.workers = args.workers
        config.fallback_on_missing = args.fallback_on_missing
        config.dry_run = args.dry_run
    return config


# ---------------------------------------------------------------------------
# import
# ---------------------------------------------------------------------------


def _cmd_import(args: argparse.Namespace, config: Config) -> None:
    logger.info("Using %s backend", config.backend.value)
    library = Library(config.library_path)
    try:
        if args.file:
            _run_single(Path(args.file), library, config)
        else:
            _run_batch(Path(args.source), library, config)
    finally:
        library.close()


def _run_single(pdf_path: Path, library: Library, config: Config) -> None:
    """Import a single PDF into the library."""
    if not pdf_path.exists():
        logger.error("File not found: %s", pdf_path)
        sys.exit(1)
    if config.dry_run:
        logger.info("Would import: %s", pdf_path)
        return

    extractor = create_extractor(config)
    try:
        record = import_pdf(pdf_path, library, extractor, config)
    except PipelineError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    logger.info("Imported: %s (%s)", record.title or "<untitled>", record.id)


def _run_batch(source_dir: Path, library: Library, config: Config) -> None:
    """Scan ``source_dir`` for PDFs and import each one."""
    if not source_dir.exists():
        logger.error("Directory not found: %s", source_dir)
        sys.exit(1)

    report = import_directory(source_dir, library, config)

    logger.info(
        "Done — imported: %d, skipped: %d, failed: %d",
        report.imported,
        report.skipped,
        report.failed,
    )

    if report.failed_imports:
        logger.error("Failed imports:")
        for fi in report.failed_imports:
            logger.error("  %s: %s", fi.pdf_path, fi.error)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Library browsing
# ---------------------------------------------------------------------------


def _cmd_list(args: argparse.Namespace, config: Config) -> None:
    library = Library(config.library_path)
    try:
        sys.stdout.write(render_paper_list(library.list_papers()))
    finally:
        library.close()


def _cmd_search(args: argparse.Namespace, config: Config) -> None:
    library = Library(config.library_path)
    try:
        sys.stdout.write(render_paper_list(library.search(args.text, field=args.by)))
    finally:
        library.close()


def _cmd_show(args: argparse.Namespace, config: Config) -> None:
    library = Library(config.library_path)
    try:
        record = library.get_paper(_resolve_id(library, args.id))
    except PaperNotFoundError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    finally:
        library.close()
    sys.stdout.write(render_paper(record))


def _cmd_delete(args: argparse.Namespace, config: Config) -> None:
    library = Library(config.library_path)
    try:
        library.delete_paper(_resolve_id(library, args.id))
    except PaperNotFoundError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    finally:
        library.close()


def _cmd_mark_read(args: argparse.Namespace, config: Config) -> None:
    library = Library(config.library_path)
    try:
        record = library.set_read_status(_resolve_id(library, args.id), not args.unread)
    except PaperNotFoundError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    finally:
        library.close()
    logger.info(
        "Marked %s as %s", record.title or record.id, "read" if record.read_status else "unread"
    )


def _resolve_id(library: Library, prefix: str) -> str:
    """Expand the short id shown by ``list`` to a full paper id.

    Raises:
        PaperNotFoundError: if no paper or more than one paper matches.
    """
    matches = [p.id for p in library.list_papers() if p.id.startswith(prefix)]
    if len(matches) != 1:
        raise PaperNotFoundError(
            f"Paper {prefix} not found"
            if not matches
            else f"Paper id {prefix} is ambiguous ({len(matches)} matches)"
        )
    return matches[0]


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


def _cmd_config(args: argparse.Namespace, config: Config) -> None:
    settings = load_settings(config.settings_path)
    if args.backend:
        settings.backend = BackendSelection(args.backend)
        save_settings(settings, config.settings_path)
        logger.info("Backend set to: %s", settings.backend.value)
    if args.local_model is not None:
        if args.local_model == "bundled":
            settings.local_model_path = None
        else:
            path = Path(args.local_model).expanduser().resolve()
            if not path.is_file():
                logger.warning("Local model file does not exist (yet): %s", path)
            settings.local_model_path = path
        save_settings(settings, config.settings_path)
        logger.info("Local model set to: %s", settings.local_model_path or "bundled")
    if args.api_key is not None:
        set_api_key(args.api_key, config.env_file)

    key = get_api_key(config.env_file)
    sys.stdout.write(
        f"backend: {settings.backend.value}\n"
        f"api key: {mask_secret(key)}\n"
        f"local model: {settings.local_model_path or 'bundled'}\n"
    )


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paper-manager",
        description=(
            "Import PDF papers into a local library, extracting metadata with "
            "an LLM (OpenAI chat API or a bundled local model)."
        ),
    )
    parser.add_argument(
        "--data-dir",
        metavar="DIR",
        default=str(_DATA_DIR),
        help=f"Directory holding the library, settings and API key (default: {_DATA_DIR}).",
    )
    parser.add_argument(
        "--verbose",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable DEBUG-level logging (default: off).",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        default=None,
        help="Also write log output to FILE.",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    _add_import_parser(commands)

    list_parser = commands.add_parser("list", help="List all papers.")
    list_parser.set_defaults(handler=_cmd_list)

    search_parser = commands.add_parser("search", help="Filter papers by one field.")
    search_parser.add_argument("text", help="Text to look for (a year for --by year).")
    search_parser.add_argument(
        "--by",
        choices=sorted(SEARCH_FIELDS),
        default="name",
        help="Field to search (default: name, i.e. the title).",
    )
    search_parser.set_defaults(handler=_cmd_search)

    show_parser = commands.add_parser("show", help="Show one paper in detail.")
    show_parser.add_argument("id", help="Paper id or unique id prefix.")
    show_parser.set_defaults(handler=_cmd_show)

    delete_parser = commands.add_parser("delete", help="Remove a paper from the library.")
    delete_parser.add_argument("id", help="Paper id or unique id prefix.")
    delete_parser.set_defaults(handler=_cmd_delete)

    read_parser = commands.add_parser("mark-read", help="Mark a paper as read.")
    read_parser.add_argument("id", help="Paper id or unique id prefix.")
    read_parser.add_argument(
        "--unread",
        action="store_true",
        default=False,
        help="Mark as unread instead.",
    )
    read_parser.set_defaults(handler=_cmd_mark_read)

    config_parser = commands.add_parser(
        "config", help="Show or change the persisted backend and API key."
    )
    config_parser.add_argument(
        "--backend",
        choices=[b.value for b in BackendSelection],
        default=None,
        help="Inference backend used by future imports.",
    )
    config_parser.add_argument(
        "--api-key",
        metavar="KEY",
        default=None,
        help="OpenAI API key to store for the remote backend.",
    )
    config_parser.add_argument(
        "--local-model",
        metavar="PATH",
        default=None,
        help="GGUF model used by the local backend, or 'bundled' to restore the default.",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def _add_import_parser(commands: argparse._SubParsersAction) -> None:
    import_parser = commands.add_parser("import", help="Import PDFs into the library.")

    source_group = import_parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument(
        "--source",
        metavar="DIR",
        help="Directory to scan recursively for PDF files.",
    )
    source_group.add_argument(
        "--file",
        metavar="PDF",
        help="Path to a single PDF file to import.",
    )

    import_parser.add_argument(
        "--backend",
        choices=[b.value for b in BackendSelection],
        default=None,
        help="Inference backend for this run (default: persisted setting).",
    )
    _default_model = os.environ.get("LLM_MODEL", "gpt-4o-mini")
    import_parser.add_argument(
        "--model",
        metavar="MODEL",
        default=_default_model,
        help=f"Remote chat model (default: LLM_MODEL env var, currently {_default_model!r}).",
    )
    import_parser.add_argument(
        "--base-url",
        metavar="URL",
        default="https://api.openai.com/v1",
        help="OpenAI-compatible API base URL (default: https://api.openai.com/v1).",
    )
    import_parser.add_argument(
        "--max-chars",
        metavar="N",
        type=_positive_int,
        default=_DEFAULT_MAX_CHARS,
        help=f"Characters of paper text sent to the LLM (default: {_DEFAULT_MAX_CHARS:,}).",
    )
    import_parser.add_argument(
        "--extractor",
        choices=list(EXTRACTORS),
        default="pypdf",
        help="PDF text extraction strategy (default: pypdf).",
    )
    import_parser.add_argument(
        "--max-pages",
        metavar="N",
        type=_positive_int,
        default=None,
        help="Read at most N leading pages of each PDF (default: all).",
    )
    import_parser.add_argument(
        "--timeout",
        metavar="S",
        type=int,
        default=120,
        help="Remote LLM call timeout in seconds (default: 120).",
    )
    import_parser.add_argument(
        "--max-output-tokens",
        metavar="N",
        type=int,
        default=None,
        help="Maximum tokens the LLM may generate per call (default: backend decides).",
    )
    import_parser.add_argument(
        "--workers",
        metavar="N",
        type=_positive_int,
        default=3,
        help="Number of parallel imports in batch mode (default: 3).",
    )
    import_parser.add_argument(
        "--fallback-on-missing",
        action="store_true",
        default=False,
        help="Store placeholder metadata when the model reply contains no JSON.",
    )
    import_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="List PDFs that would be imported without calling the LLM.",
    )
    import_parser.set_defaults(handler=_cmd_import)


if __name__ == "__main__":
    main()
