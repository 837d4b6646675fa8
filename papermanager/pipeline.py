"""Metadata extraction orchestration — document text to ``PaperMetadata``.

One backend call per document: build prompt, dispatch to the selected
backend, parse the reply.  Nothing is retried here; a failed import is
re-run by the user.
"""

import logging
from collections.abc import Mapping

from papermanager.llm import InferenceBackend, call_backend, create_backends
from papermanager.models import (
    BackendSelection,
    BackendUnavailable,
    Config,
    InferenceRequest,
    PaperMetadata,
)
from papermanager.prompts import SYSTEM_INSTRUCTION, build_prompt
from papermanager.response import parse_response

logger = logging.getLogger(__name__)


class MetadataExtractor:
    """Backend-agnostic metadata extractor.

    Holds no per-document state, so one instance can serve concurrent
    imports.  The backend is looked up by selection on every call.
    """

    def __init__(
        self,
        backends: Mapping[BackendSelection, InferenceBackend],
        max_chars: int = 4000,
        fallback_on_missing: bool = False,
    ) -> None:
        self.backends = dict(backends)
        self.max_chars = max_chars
        self.fallback_on_missing = fallback_on_missing

    def extract(
        self, document_text: str, selection: BackendSelection
    ) -> PaperMetadata:
        """Extract metadata from *document_text* with the selected backend.

        Raises:
            BackendUnavailable: backend not configured or not usable.
            BackendError:       the backend call failed.
            NoJSONFound:        the reply held no JSON object.
            MalformedJSON:      the reply's JSON could not be decoded.
        """
        backend = self.backends.get(selection)
        if backend is None:
            raise BackendUnavailable(f"No inference backend configured for {selection!r}")

        prompt = build_prompt(document_text, self.max_chars)
        logger.debug(
            "Built prompt (%s chars from %s chars of text)",
            f"{len(prompt):,}",
            f"{len(document_text):,}",
        )
        request = InferenceRequest(
            system_instruction=SYSTEM_INSTRUCTION, user_prompt=prompt
        )
        raw = call_backend(backend, request)
        return parse_response(raw, fallback_on_missing=self.fallback_on_missing)


def create_extractor(config: Config) -> MetadataExtractor:
    """Wire a ``MetadataExtractor`` with both backends built from *config*."""
    return MetadataExtractor(
        create_backends(config),
        max_chars=config.max_chars,
        fallback_on_missing=config.fallback_on_missing,
    )


def extract_metadata(document_text: str, config: Config) -> PaperMetadata:
    """One-shot extraction using the backend selected in *config*."""
    return create_extractor(config).extract(document_text, config.backend)
