"""Tests for papermanager/log.py — logging setup."""

import logging
import re

import pytest

from papermanager.log import setup_logging


def _handlers(kind):
    return [h for h in logging.getLogger("papermanager").handlers if type(h) is kind]


@pytest.fixture
def restore_noisy_levels():
    names = ("httpx", "httpcore", "openai", "docling", "pypdf")
    saved = {n: logging.getLogger(n).level for n in names}
    yield
    for n, level in saved.items():
        logging.getLogger(n).setLevel(level)


# ---------------------------------------------------------------------------
# Handlers and levels (papermanager logger reset by conftest)
# ---------------------------------------------------------------------------


def test_console_handler_only_by_default(restore_noisy_levels):
    setup_logging()
    assert len(_handlers(logging.StreamHandler)) == 1
    assert _handlers(logging.FileHandler) == []


@pytest.mark.parametrize("verbose, level", [(False, logging.INFO), (True, logging.DEBUG)])
def test_package_level(restore_noisy_levels, verbose, level):
    setup_logging(verbose=verbose)
    assert logging.getLogger("papermanager").level == level


def test_repeat_calls_replace_handlers(restore_noisy_levels, tmp_path):
    setup_logging(log_file=tmp_path / "a.log")
    setup_logging()
    assert len(_handlers(logging.StreamHandler)) == 1
    assert _handlers(logging.FileHandler) == []


@pytest.mark.parametrize("verbose, level", [(False, logging.WARNING), (True, logging.INFO)])
def test_third_party_loggers_quieted(restore_noisy_levels, verbose, level):
    setup_logging(verbose=verbose)
    assert logging.getLogger("httpx").level == level
    assert logging.getLogger("docling").level == level


# ---------------------------------------------------------------------------
# Output format
# ---------------------------------------------------------------------------


def test_console_line_has_time_level_and_thread(restore_noisy_levels, capsys):
    setup_logging()
    logging.getLogger("papermanager.importer").info("sentinel-message")
    err = capsys.readouterr().err
    assert re.search(r"^\d{2}:\d{2}:\d{2}  INFO    \[MainThread\] sentinel-message$", err, re.M)


def test_log_file_line_includes_module_name(restore_noisy_levels, tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    setup_logging(log_file=log_file)
    logging.getLogger("papermanager.library").warning("file-sentinel")
    for h in logging.getLogger("papermanager").handlers:
        h.flush()
    line = log_file.read_text(encoding="utf-8").strip()
    assert re.match(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}  WARNING ", line)
    assert "papermanager.library: file-sentinel" in line


def test_debug_hidden_unless_verbose(restore_noisy_levels, capsys):
    setup_logging()
    logging.getLogger("papermanager.response").debug("hidden-sentinel")
    assert "hidden-sentinel" not in capsys.readouterr().err
