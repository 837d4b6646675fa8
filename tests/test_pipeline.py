"""Tests for papermanager/pipeline.py — backend-agnostic metadata extraction."""

import json
import os
from unittest.mock import patch

import pytest

from papermanager.models import (
    BackendError,
    BackendSelection,
    BackendUnavailable,
    Config,
    MalformedJSON,
    NoJSONFound,
    PaperMetadata,
)
from papermanager.pipeline import MetadataExtractor, create_extractor, extract_metadata
from papermanager.prompts import SYSTEM_INSTRUCTION
from papermanager.response import FALLBACK_METADATA


@pytest.fixture
def build(make_backend):
    """Return a helper building an extractor over two recording backends."""

    def _build(remote_reply="", local_reply="", **kwargs):
        remote = make_backend("remote", reply=remote_reply)
        local = make_backend("local", reply=local_reply)
        extractor = MetadataExtractor(
            {BackendSelection.REMOTE: remote, BackendSelection.LOCAL: local}, **kwargs
        )
        return extractor, remote, local

    return _build


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


def test_extract_returns_metadata(build, mock_response_text, mock_metadata_dict):
    extractor, _, _ = build(remote_reply=mock_response_text)
    meta = extractor.extract("paper text", BackendSelection.REMOTE)
    assert isinstance(meta, PaperMetadata)
    assert meta.model_dump() == mock_metadata_dict


def test_extract_makes_exactly_one_backend_call(build, mock_response_text):
    extractor, remote, _ = build(remote_reply=mock_response_text)
    extractor.extract("paper text", BackendSelection.REMOTE)
    assert len(remote.calls) == 1


def test_extract_sends_system_instruction_and_prompt(build, mock_response_text):
    extractor, remote, _ = build(remote_reply=mock_response_text)
    extractor.extract("UNIQUE_PAPER_TEXT_XYZ", BackendSelection.REMOTE)
    system, prompt = remote.calls[0]
    assert system == SYSTEM_INSTRUCTION
    assert "UNIQUE_PAPER_TEXT_XYZ" in prompt


def test_extract_truncates_document_text(build):
    extractor, remote, _ = build(remote_reply='{"title": "T"}', max_chars=10)
    extractor.extract("0123456789ABCDEF", BackendSelection.REMOTE)
    _, prompt = remote.calls[0]
    assert "0123456789" in prompt
    assert "ABCDEF" not in prompt


# ---------------------------------------------------------------------------
# Backend selection
# ---------------------------------------------------------------------------


def test_local_selection_never_touches_remote(build, mock_response_text):
    extractor, remote, local = build(local_reply=mock_response_text)
    extractor.extract("paper text", BackendSelection.LOCAL)
    assert remote.calls == []
    assert len(local.calls) == 1


def test_remote_selection_never_touches_local(build, mock_response_text):
    extractor, remote, local = build(remote_reply=mock_response_text)
    extractor.extract("paper text", BackendSelection.REMOTE)
    assert local.calls == []
    assert len(remote.calls) == 1


def test_both_backends_receive_identical_prompts(build, mock_response_text):
    extractor, remote, local = build(
        remote_reply=mock_response_text, local_reply=mock_response_text
    )
    extractor.extract("same text", BackendSelection.REMOTE)
    extractor.extract("same text", BackendSelection.LOCAL)
    assert remote.calls == local.calls


def test_unconfigured_selection_is_unavailable(make_backend):
    remote = make_backend("remote", reply="{}")
    extractor = MetadataExtractor({BackendSelection.REMOTE: remote})
    with pytest.raises(BackendUnavailable):
        extractor.extract("text", BackendSelection.LOCAL)
    assert remote.calls == []


# ---------------------------------------------------------------------------
# Failures propagate without retries
# ---------------------------------------------------------------------------


def test_backend_error_propagates_without_retry(make_backend):
    remote = make_backend("remote", error=BackendError("HTTP 500"))
    extractor = MetadataExtractor({BackendSelection.REMOTE: remote})
    with pytest.raises(BackendError, match="HTTP 500"):
        extractor.extract("text", BackendSelection.REMOTE)
    assert len(remote.calls) == 1


def test_malformed_reply_propagates_without_retry(build):
    extractor, remote, _ = build(remote_reply='{"title": oops}')
    with pytest.raises(MalformedJSON):
        extractor.extract("text", BackendSelection.REMOTE)
    assert len(remote.calls) == 1


@pytest.mark.parametrize("selection", list(BackendSelection))
def test_no_json_raises_by_default_for_both_backends(build, selection):
    extractor, _, _ = build(remote_reply="no json", local_reply="no json")
    with pytest.raises(NoJSONFound):
        extractor.extract("text", selection)


@pytest.mark.parametrize("selection", list(BackendSelection))
def test_fallback_policy_applies_to_both_backends(build, selection):
    extractor, _, _ = build(
        remote_reply="no json", local_reply="no json", fallback_on_missing=True
    )
    assert extractor.extract("text", selection) == FALLBACK_METADATA


# ---------------------------------------------------------------------------
# Wiring from Config
# ---------------------------------------------------------------------------


def test_create_extractor_uses_config(tmp_path):
    config = Config(
        api_key="sk-test",
        env_file=tmp_path / ".env",
        max_chars=123,
        fallback_on_missing=True,
    )
    with patch("papermanager.llm._openai.OpenAI"):
        extractor = create_extractor(config)
    assert extractor.max_chars == 123
    assert extractor.fallback_on_missing is True
    assert set(extractor.backends) == set(BackendSelection)


def test_extract_metadata_remote_without_key_fails_before_any_call(tmp_path):
    config = Config(
        backend=BackendSelection.REMOTE, api_key=None, env_file=tmp_path / ".env"
    )
    env = {k: v for k, v in os.environ.items() if k != "OPENAI_API_KEY"}
    with (
        patch("papermanager.llm._openai.OpenAI") as mock_openai,
        patch.dict(os.environ, env, clear=True),
    ):
        with pytest.raises(BackendUnavailable, match="API key not set"):
            extract_metadata("text", config)
    mock_openai.assert_not_called()


def test_extract_metadata_local_without_artifact_fails_before_loading(tmp_path):
    config = Config(
        backend=BackendSelection.LOCAL,
        local_model_path=tmp_path / "missing.gguf",
        env_file=tmp_path / ".env",
    )
    with patch("papermanager.llm._load_model") as mock_load:
        with pytest.raises(BackendUnavailable):
            extract_metadata("text", config)
    mock_load.assert_not_called()


def test_extract_metadata_local_end_to_end(tmp_path, mock_metadata_dict):
    model_path = tmp_path / "model.gguf"
    model_path.write_bytes(b"GGUF")
    config = Config(
        backend=BackendSelection.LOCAL,
        local_model_path=model_path,
        env_file=tmp_path / ".env",
    )
    reply = "```json\n" + json.dumps(mock_metadata_dict) + "\n```"
    fake_llm = lambda prompt, **kwargs: {"choices": [{"text": reply}]}  # noqa: E731
    with (
        patch("papermanager.llm._load_model", return_value=fake_llm),
        patch("papermanager.llm._openai.OpenAI") as mock_openai,
    ):
        meta = extract_metadata("paper text", config)
    assert meta.title == mock_metadata_dict["title"]
    mock_openai.return_value.chat.completions.create.assert_not_called()
