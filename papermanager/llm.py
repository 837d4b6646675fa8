"""Inference backends — remote chat API (openai SDK) and bundled local model.

Both backends expose ``complete(system, prompt) -> str`` so the metadata
extractor never branches on which one is in use.  The backend is chosen by
``BackendSelection`` data, looked up in the mapping built by
``create_backends``.

``RemoteChatBackend`` talks to any OpenAI-compatible chat-completion
endpoint.  ``LocalModelBackend`` runs a quantized GGUF model through
``llama-cpp-python`` with no network access.

Neither backend retries: one request, one response.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Protocol

import openai as _openai

from papermanager.models import (
    BackendError,
    BackendSelection,
    BackendUnavailable,
    Config,
    InferenceRequest,
)
from papermanager.settings import get_api_key

logger = logging.getLogger(__name__)

#: Generation cap for the local runtime when the config sets none.
_LOCAL_DEFAULT_MAX_TOKENS = 512


class InferenceBackend(Protocol):
    """Anything that turns a system instruction and a prompt into reply text."""

    name: str
    model: str

    def complete(self, system: str, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# Remote chat API
# ---------------------------------------------------------------------------


class RemoteChatBackend:
    """OpenAI-compatible chat-completion backend.

    The ``openai.OpenAI`` client is only created once a non-empty API key is
    known; without a key ``complete`` fails fast with ``BackendUnavailable``.

    Attributes:
        model: The model identifier passed to every completion request.
    """

    name = "remote"

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str | None,
        timeout_s: int = 120,
        max_output_tokens: int | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.max_output_tokens = max_output_tokens
        self._client = (
            _openai.OpenAI(base_url=base_url, api_key=api_key) if api_key else None
        )

    def complete(self, system: str, prompt: str) -> str:
        """Send a system + user chat exchange and return the first choice's text.

        Raises:
            BackendUnavailable: if no API key is configured.
            BackendError: on transport/HTTP failure, zero choices, or a
                choice without content.
        """
        if self._client is None:
            raise BackendUnavailable("OpenAI API key not set.")

        kwargs: dict = dict(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            timeout=self.timeout_s,
        )
        if self.max_output_tokens is not None:
            kwargs["max_tokens"] = self.max_output_tokens

        try:
            response = self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            raise BackendError(f"Chat completion request failed: {exc}") from exc

        if not response.choices:
            raise BackendError("Chat completion returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise BackendError("Chat completion returned no content in the first choice")
        return content


# ---------------------------------------------------------------------------
# Local model runtime
# ---------------------------------------------------------------------------


def render_chatml(system: str, prompt: str) -> str:
    """Render a system + user pair in the ChatML conversational template."""
    return (
        f"<|im_start|>system\n{system}<|im_end|>\n"
        f"<|im_start|>user\n{prompt}<|im_end|>\n"
        "<|im_start|>assistant\n"
    )


def _load_model(model_path: Path, n_ctx: int) -> Any:
    """Instantiate a ``llama_cpp.Llama`` for *model_path*.

    Raises:
        BackendUnavailable: if llama-cpp-python is not installed or the model
            fails to initialize.
    """
    try:
        from llama_cpp import Llama
    except ImportError as exc:
        raise BackendUnavailable(
            "The local model runtime is not installed "
            "(pip install 'paper-manager[local]')."
        ) from exc
    try:
        return Llama(model_path=str(model_path), n_ctx=n_ctx, verbose=False)
    except Exception as exc:
        raise BackendUnavailable(
            f"Failed to initialize the local model from {model_path.name}: {exc}"
        ) from exc


class LocalModelBackend:
    """Bundled GGUF model run in-process through llama-cpp-python.

    The model is loaded on first use and kept for the life of the backend.
    A single native model instance cannot serve two generations at once, so
    loading and generation are serialized.
    """

    name = "local"

    def __init__(
        self,
        model_path: Path,
        n_ctx: int = 8192,
        max_output_tokens: int | None = None,
    ) -> None:
        self.model_path = model_path
        self.model = model_path.stem
        self.n_ctx = n_ctx
        self.max_output_tokens = max_output_tokens or _LOCAL_DEFAULT_MAX_TOKENS
        self._llm: Any = None
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        """Return True if the model artifact exists on disk."""
        return self.model_path.is_file()

    def complete(self, system: str, prompt: str) -> str:
        """Run local generation to completion and return the whole reply.

        Raises:
            BackendUnavailable: if the artifact is missing or cannot be loaded.
            BackendError: if generation itself fails.
        """
        if not self.is_available():
            raise BackendUnavailable(
                f"The bundled model could not be found at {self.model_path}. "
                "Please reinstall the application."
            )

        chat = render_chatml(system, prompt)
        with self._lock:
            if self._llm is None:
                logger.info("Loading local model: %s", self.model_path.name)
                self._llm = _load_model(self.model_path, self.n_ctx)
            try:
                output = self._llm(
                    chat,
                    max_tokens=self.max_output_tokens,
                    stop=["<|im_end|>"],
                )
            except Exception as exc:
                raise BackendError(f"Local generation failed: {exc}") from exc

        try:
            return output["choices"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise BackendError("Local model returned no text") from exc


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def create_backends(config: Config) -> dict[BackendSelection, InferenceBackend]:
    """Build both backends from configuration.

    API key resolution order for the remote backend:
        1. ``config.api_key`` (explicit)
        2. ``OPENAI_API_KEY`` environment variable
        3. ``OPENAI_API_KEY`` in ``config.env_file``
    """
    api_key = config.api_key or get_api_key(config.env_file)
    return {
        BackendSelection.REMOTE: RemoteChatBackend(
            model=config.model,
            base_url=config.base_url,
            api_key=api_key,
            timeout_s=config.timeout_s,
            max_output_tokens=config.max_output_tokens,
        ),
        BackendSelection.LOCAL: LocalModelBackend(
            model_path=config.local_model_path,
            n_ctx=config.n_ctx,
            max_output_tokens=config.max_output_tokens,
        ),
    }


def call_backend(backend: InferenceBackend, request: InferenceRequest) -> str:
    """Send *request* to *backend* once and return the raw reply text."""
    logger.info("Calling LLM  model=%s  backend=%s", backend.model, backend.name)
    logger.info("Awaiting response...")
    t0 = time.monotonic()
    text = backend.complete(request.system_instruction, request.user_prompt)
    elapsed = time.monotonic() - t0
    logger.info("Response received (%.1fs, %s chars)", elapsed, f"{len(text):,}")
    return text
