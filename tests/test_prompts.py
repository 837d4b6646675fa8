"""Tests for papermanager/prompts.py — metadata prompt building."""

from papermanager.prompts import SYSTEM_INSTRUCTION, build_prompt


def _excerpt(prompt: str) -> str:
    """Return the text embedded between 'Text: ' and the response format block."""
    start = prompt.index("Text: ") + len("Text: ")
    end = prompt.index("\n\nResponse format")
    return prompt[start:end]


def test_build_prompt_embeds_short_text_unchanged():
    prompt = build_prompt("A short paper.")
    assert _excerpt(prompt) == "A short paper."


def test_build_prompt_truncates_to_max_chars():
    prompt = build_prompt("x" * 10_000, max_chars=100)
    assert _excerpt(prompt) == "x" * 100


def test_build_prompt_default_max_chars_is_4000():
    prompt = build_prompt("abcd" * 2_000)
    assert len(_excerpt(prompt)) == 4000


def test_build_prompt_exact_boundary_not_truncated():
    prompt = build_prompt("a" * 50, max_chars=50)
    assert _excerpt(prompt) == "a" * 50


def test_build_prompt_is_deterministic():
    text = "Some paper text " * 500
    assert build_prompt(text) == build_prompt(text)


def test_build_prompt_lists_fields_and_rules():
    prompt = build_prompt("text")
    for field in ("- title", "- authors", "- publication", "- year", "- summary"):
        assert field in prompt
    assert "comma-separated" in prompt
    assert "year (as integer)" in prompt
    assert "2-3 sentences" in prompt
    assert "ONLY valid JSON, no explanation" in prompt


def test_build_prompt_skeleton_key_order():
    prompt = build_prompt("text")
    positions = [
        prompt.index(f'"{key}":')
        for key in ("title", "authors", "publication", "year", "summary")
    ]
    assert positions == sorted(positions)


def test_build_prompt_handles_braces_in_text():
    prompt = build_prompt("set {x | x > 0}")
    assert "set {x | x > 0}" in prompt


def test_system_instruction_mentions_json():
    assert "JSON" in SYSTEM_INSTRUCTION
