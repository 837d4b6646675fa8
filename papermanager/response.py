"""Decode a metadata record out of free-form LLM reply text.

Models wrap their JSON in markdown fences, prepend "Sure! Here is...",
append commentary, quote numeric fields, or drop keys entirely.  The parser
isolates the outermost ``{...}`` span, decodes it, and validates it
permissively into ``PaperMetadata`` so a partially filled record still
succeeds.
"""

import json
import logging

from papermanager.models import MalformedJSON, NoJSONFound, PaperMetadata

logger = logging.getLogger(__name__)

#: Placeholder returned for replies without any JSON object when the
#: ``fallback_on_missing`` policy is enabled.
FALLBACK_METADATA = PaperMetadata(
    title="Unknown",
    authors="Unknown",
    publication="Unknown",
    year=0,
    summary="No summary available",
)


def parse_response(raw_text: str, fallback_on_missing: bool = False) -> PaperMetadata:
    """Parse a raw LLM reply into ``PaperMetadata``.

    Args:
        raw_text:            The model's reply, unmodified.
        fallback_on_missing: If True, a reply that contains no JSON object
                             yields ``FALLBACK_METADATA`` instead of raising.

    Raises:
        NoJSONFound:   if the reply has no ``{`` (and the fallback is off).
        MalformedJSON: if the candidate cannot be decoded as a JSON object.
    """
    try:
        candidate = extract_json_candidate(raw_text)
    except NoJSONFound:
        if not fallback_on_missing:
            raise
        logger.warning("No JSON object in LLM response; using fallback metadata")
        return FALLBACK_METADATA

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.debug("Undecodable JSON candidate: %s", candidate)
        raise MalformedJSON(
            f"PDF analysis failed: model response is not valid JSON ({exc.msg})",
            candidate=candidate,
        ) from exc

    if not isinstance(data, dict):
        logger.debug("JSON candidate is not an object: %s", candidate)
        raise MalformedJSON(
            "PDF analysis failed: model response is not a JSON object",
            candidate=candidate,
        )

    return PaperMetadata.model_validate(data)


def extract_json_candidate(raw_text: str) -> str:
    """Return the substring from the first ``{`` to the last ``}`` inclusive.

    If the reply opens a brace but never closes it after that point, the
    whole reply is returned so decoding reports it as malformed.

    Raises:
        NoJSONFound: if the reply contains no ``{``.
    """
    start = raw_text.find("{")
    if start == -1:
        logger.debug("LLM response without JSON object: %s", raw_text)
        raise NoJSONFound(
            "PDF analysis failed: model response contains no JSON object",
            candidate=raw_text,
        )
    end = raw_text.rfind("}")
    if end < start:
        return raw_text
    return raw_text[start : end + 1]
