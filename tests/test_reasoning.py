"""Tests for splitting reasoning from answers."""

import pytest

from chatnote import ParsedResponse, parse_reasoning_response
from chatnote.reasoning import (
    REASONING_END,
    REASONING_START,
    synthesize_conclusion,
    wrap_reasoning,
)


def test_plain_text_is_all_answer():
    assert parse_reasoning_response("  Just an answer.  ") == ParsedResponse(
        answer="Just an answer."
    )


def test_sentinel_markers():
    text = wrap_reasoning("Let me think.", "The answer is 4.")

    assert text == f"{REASONING_START}Let me think.{REASONING_END}The answer is 4."
    assert parse_reasoning_response(text) == ParsedResponse(
        answer="The answer is 4.", reasoning="Let me think."
    )


def test_think_tags():
    parsed = parse_reasoning_response("<think>\nWeigh options.\n</think>\n\nUse B.")

    assert parsed == ParsedResponse(answer="Use B.", reasoning="Weigh options.")


def test_sentinel_markers_take_priority_over_think_tags():
    text = wrap_reasoning("Outer reasoning.", "<think>inner</think>Answer.")

    parsed = parse_reasoning_response(text)

    assert parsed.reasoning == "Outer reasoning."
    assert parsed.answer == "<think>inner</think>Answer."


@pytest.mark.parametrize(
    "text",
    [
        f"{REASONING_START}still thinking",
        "<think>still thinking",
    ],
)
def test_unclosed_reasoning_has_empty_answer(text):
    parsed = parse_reasoning_response(text)

    assert parsed.answer == ""
    assert parsed.reasoning == "still thinking"


def test_empty_reasoning_block_is_dropped():
    parsed = parse_reasoning_response(wrap_reasoning("  ", "Answer."))

    assert parsed == ParsedResponse(answer="Answer.")


def test_conclusion_from_therefore():
    reasoning = (
        "The first option costs more. The second is slower.\n"
        "Therefore, the first option is the better choice overall."
    )

    assert synthesize_conclusion(reasoning) == (
        "Therefore, the first option is the better choice overall."
    )


def test_conclusion_from_answer_phrase():
    reasoning = "Adding both values gives twelve, so the answer is 12 apples"

    assert synthesize_conclusion(reasoning) == "the answer is 12 apples"


def test_conclusion_falls_back_to_short_last_paragraph():
    reasoning = "Long exploration here.\n\nThe model fits best with two layers"

    assert synthesize_conclusion(reasoning) == "The model fits best with two layers"


def test_no_conclusion_from_long_unstructured_text():
    assert synthesize_conclusion("word " * 200) is None
