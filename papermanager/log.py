"""Logging setup for the paper-manager CLI.

``cli.main()`` calls ``setup_logging`` once.  Records from every
``papermanager.*`` module propagate to the package logger, which writes short
lines to stderr and, optionally, fuller lines (with the module name) to a log
file.  The HTTP and PDF libraries underneath are held at WARNING unless
``--verbose`` is given.
"""

import logging
import sys
from pathlib import Path

_CONSOLE_FMT = "%(asctime)s  %(levelname)-7s [%(threadName)s] %(message)s"
_FILE_FMT = "%(asctime)s  %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"
_DATE = "%H:%M:%S"

#: Third-party loggers that are chatty at INFO during an import.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "docling", "pypdf")


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the ``papermanager`` logger for a CLI session.

    Args:
        verbose:  DEBUG level for ``papermanager`` (prompt sizes, raw model
                  output on parse failures) and INFO for the third-party
                  loggers.  Otherwise INFO and WARNING respectively.
        log_file: Also append to this file; parent directories are created.

    Safe to call repeatedly: existing handlers are replaced.
    """
    logger = logging.getLogger("papermanager")
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(_CONSOLE_FMT, datefmt=_DATE))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(logging.Formatter(_FILE_FMT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(fh)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)
