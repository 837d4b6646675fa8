"""Pydantic models, dataclass Config, and exceptions for the paper manager.

This module only defines the *schema* of the data that flows through the
import pipeline: the metadata record decoded from an LLM reply, the request
handed to an inference backend, persisted library rows, batch reporting,
runtime configuration, and the error taxonomy.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Backend selection
# ---------------------------------------------------------------------------


class BackendSelection(str, Enum):
    """Which inference backend answers the metadata prompt.

    Persisted across sessions by ``settings.py``; read once per extraction.
    """

    REMOTE = "remote"
    LOCAL = "local"


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class PaperMetadata(BaseModel):
    """Bibliographic metadata decoded from a single LLM reply.

    Every field is independently optional.  Decoding is permissive: a text
    field whose wire value is missing or not a string resolves to ``None``
    instead of failing the whole record, and ``year`` accepts either a JSON
    number or a numeric string (models frequently quote it).
    """

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    authors: str | None = None
    publication: str | None = None
    year: int | None = None
    summary: str | None = None

    @field_validator("title", "authors", "publication", "summary", mode="before")
    @classmethod
    def _text_or_none(cls, value: object) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: object) -> int | None:
        # bool is an int subclass; "year": true is not a year
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return None
        return None


class InferenceRequest(BaseModel):
    """System instruction and user prompt for one backend call."""

    model_config = ConfigDict(frozen=True)

    system_instruction: str
    user_prompt: str


# ---------------------------------------------------------------------------
# Library rows
# ---------------------------------------------------------------------------


class PaperRecord(BaseModel):
    """A paper persisted in the library (one row of the ``papers`` table)."""

    id: str
    title: str | None = None
    authors: str | None = None
    publication: str | None = None
    year: int | None = None
    summary: str | None = None
    file_path: str
    read_status: bool = False
    added_at: datetime


# ---------------------------------------------------------------------------
# Batch reporting
# ---------------------------------------------------------------------------


class FailedImport(BaseModel):
    """Records a single PDF that could not be imported during a batch run."""

    pdf_path: str
    error: str


class ImportReport(BaseModel):
    """Aggregate result of a batch import over a directory of PDFs."""

    imported: int
    skipped: int
    failed: int
    failed_imports: list[FailedImport] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Config (dataclass — not pydantic; holds runtime settings)
# ---------------------------------------------------------------------------

#: Only the head of a paper carries title, authors, venue and abstract.
#: Sending the first 4 000 characters keeps each call cheap and fast.
_DEFAULT_MAX_CHARS = 4_000

_DATA_DIR = Path.home() / ".papermanager"

#: Quantized model shipped inside the package.
BUNDLED_MODEL_PATH = Path(__file__).parent / "resources" / "gemma-3-4b-it-Q4_0.gguf"


@dataclass
class Config:
    """Runtime configuration for the import pipeline.

    Attributes:
        backend:             Inference backend used for extraction.
        model:               Chat model identifier for the remote backend.
        base_url:            OpenAI-compatible API base URL.
        api_key:             API key for the remote backend.  ``None`` means
                             the key is read from ``OPENAI_API_KEY`` in the
                             environment or ``env_file``.
        local_model_path:    GGUF artifact loaded by the local backend.
                             Defaults to the bundled model.
        n_ctx:               Context window (tokens) of the local model.
        max_chars:           Characters of document text embedded in the prompt.
        max_output_tokens:   Generation cap.  ``None`` leaves it to the backend
                             (the local runtime then uses 512).
        timeout_s:           Seconds before a remote call is abandoned.
        fallback_on_missing: If True, a reply without any JSON object yields
                             the placeholder record instead of ``NoJSONFound``.
                             Applies to both backends.
        extractor:           PDF text extraction strategy: ``pypdf``,
                             ``docling`` or ``auto`` (docling, pypdf fallback).
        max_pages:           Leading pages read from each PDF.  ``None`` reads
                             all of them.
        workers:             Concurrent imports in batch mode.
        dry_run:             List PDFs that would be imported without calling
                             a model or writing to the library.
        library_path:        SQLite library file.
        settings_path:       JSON file holding the persisted backend selection.
        env_file:            dotenv file holding the API key.
        verbose:             Enable DEBUG logging.
    """

    backend: BackendSelection = BackendSelection.REMOTE
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    local_model_path: Path = BUNDLED_MODEL_PATH
    n_ctx: int = 8192
    max_chars: int = _DEFAULT_MAX_CHARS
    max_output_tokens: int | None = None
    timeout_s: int = 120
    fallback_on_missing: bool = False
    extractor: str = "pypdf"
    max_pages: int | None = None
    workers: int = 3
    dry_run: bool = False
    library_path: Path = _DATA_DIR / "library.sqlite3"
    settings_path: Path = _DATA_DIR / "settings.json"
    env_file: Path = _DATA_DIR / ".env"
    verbose: bool = False


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ParseError(Exception):
    """Raised when text cannot be extracted from a PDF (corrupt, scanned, etc.)."""


class LLMError(Exception):
    """Base class for inference backend failures."""


class BackendUnavailable(LLMError):
    """The selected backend is not usable: no API key, missing model artifact,
    or a local runtime that failed to initialize.  Nothing was sent."""


class BackendError(LLMError):
    """A backend call was attempted and failed (transport, HTTP, empty reply)."""


class ResponseError(Exception):
    """Base class for LLM replies that could not be decoded into metadata.

    Attributes:
        candidate: The text that was handed to the JSON decoder, kept for
                   diagnostics (logged, never shown to the user).
    """

    def __init__(self, message: str, candidate: str = "") -> None:
        self.candidate = candidate
        super().__init__(message)


class NoJSONFound(ResponseError):
    """The reply does not contain a JSON object at all."""


class MalformedJSON(ResponseError):
    """A JSON object candidate was found but could not be decoded."""


class DuplicatePaperError(Exception):
    """Raised when a paper with the same file path or title is already stored."""


class PaperNotFoundError(Exception):
    """Raised when a paper id does not exist in the library."""


class PipelineError(Exception):
    """Wraps any sub-error that occurs while importing one PDF.

    Attributes:
        pdf_path: Path to the PDF that failed.
        cause:    The original exception that triggered the failure.
    """

    def __init__(self, pdf_path: Path, cause: Exception) -> None:
        self.pdf_path = pdf_path
        self.cause = cause
        super().__init__(f"Import failed for {pdf_path}: {cause}")
