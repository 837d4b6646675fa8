"""LLM prompt builder for metadata extraction.

``build_prompt`` embeds a hard-cut excerpt of the document text into a fixed
instruction template.  Both inference backends receive the same prompt and
the same ``SYSTEM_INSTRUCTION``, so every call is stateless.
"""

SYSTEM_INSTRUCTION = (
    "You are a helpful assistant that extracts metadata from academic papers "
    "in JSON format."
)


def build_prompt(document_text: str, max_chars: int = 4000) -> str:
    """Build the metadata-extraction prompt for one document.

    The document text is truncated to its first ``max_chars`` characters
    (no sentence-boundary handling) before embedding.

    Args:
        document_text: Full plain text extracted from the PDF.
        max_chars:     Maximum characters of ``document_text`` to include.

    Returns:
        A self-contained prompt string ready to send to a backend.
    """
    excerpt = document_text[:max_chars]
    return f"""\
Extract the following information from this academic paper text in JSON format:
- title
- authors (as a comma-separated string)
- publication
- year (as integer)
- summary (summarize the abstract in 2-3 sentences)

Text: {excerpt}

Response format (return ONLY valid JSON, no explanation or extra text):
{{
    "title": "paper title",
    "authors": "author1, author2",
    "publication": "conference or journal name",
    "year": year,
    "summary": "summary text"
}}"""
