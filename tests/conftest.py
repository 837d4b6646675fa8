"""Shared pytest fixtures for the papermanager test suite."""

import json
import logging

import pytest

from papermanager.library import Library


# ---------------------------------------------------------------------------
# Logger isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_papermanager_logger():
    """Clear the papermanager logger between tests.

    Tests that call ``main()`` trigger ``setup_logging()``, which attaches
    handlers and sets ``propagate=False``.  Without this fixture the state
    leaks into subsequent tests and breaks ``caplog`` capture.
    """
    logger = logging.getLogger("papermanager")
    for h in logger.handlers[:]:
        try:
            h.close()
        except Exception:
            pass
        logger.removeHandler(h)
    logger.propagate = True
    yield
    for h in logger.handlers[:]:
        try:
            h.close()
        except Exception:
            pass
        logger.removeHandler(h)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingBackend:
    """Inference backend double that records every call it receives."""

    def __init__(self, name: str, reply: str = "", error: Exception | None = None):
        self.name = name
        self.model = f"{name}-model"
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def complete(self, system: str, prompt: str) -> str:
        self.calls.append((system, prompt))
        if self.error is not None:
            raise self.error
        return self.reply


# ---------------------------------------------------------------------------
# Mock LLM responses
# ---------------------------------------------------------------------------

MOCK_METADATA_DICT = {
    "title": "Attention Is All You Need",
    "authors": "Ashish Vaswani, Noam Shazeer, Niki Parmar",
    "publication": "NeurIPS",
    "year": 2017,
    "summary": (
        "The paper introduces the Transformer, an architecture based solely on "
        "attention. It reaches state-of-the-art translation quality with less "
        "training time."
    ),
}


@pytest.fixture
def mock_metadata_dict() -> dict:
    return MOCK_METADATA_DICT.copy()


@pytest.fixture
def mock_response_text() -> str:
    """A typical chatty, fenced reply from a chat model."""
    return f"Sure! Here is the metadata:\n```json\n{json.dumps(MOCK_METADATA_DICT)}\n```"


@pytest.fixture
def library(tmp_path):
    """A fresh library in a temp directory."""
    lib = Library(tmp_path / "library.sqlite3")
    yield lib
    lib.close()


@pytest.fixture
def make_backend():
    """Factory for ``RecordingBackend`` doubles."""
    return RecordingBackend
