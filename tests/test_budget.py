"""Tests for the budget enforcer's degradation cascade."""

import pytest

from chatnote import BudgetEnforcer, ConversationTurn
from chatnote.budget import FORMATTING_INSTRUCTIONS
from chatnote.config import config
from chatnote.tokens import estimate_conversation_tokens, estimate_tokens

SMALL_MODEL = "small-model"
CEILING = 5000


@pytest.fixture
def enforcer():
    return BudgetEnforcer(ceilings={SMALL_MODEL: CEILING})


@pytest.fixture
def big_history():
    """Ten turns of 600 tokens each."""
    return [
        ConversationTurn(role="user" if i % 2 == 0 else "assistant", content="x" * 2400)
        for i in range(10)
    ]


@pytest.fixture
def user_turn():
    return ConversationTurn(role="user", content="What changed?")


def test_payload_under_ceiling_is_left_alone(enforcer, history_factory, user_turn):
    history = history_factory(4)

    payload = enforcer.enforce(
        document_context="Short context.",
        history=history,
        user_turn=user_turn,
        model=SMALL_MODEL,
    )

    assert payload.degradations == []
    assert payload.document_context == "Short context."
    assert payload.turns[0].kind == "preamble"
    assert payload.turns[0].content == FORMATTING_INSTRUCTIONS
    assert payload.turns[1:] == [*history, user_turn]
    assert payload.within_ceiling


def test_context_shrinks_then_history_collapses(
    enforcer, long_document, big_history, user_turn
):
    context = long_document[:12000]
    assert estimate_tokens(context) == 3000
    total = estimate_conversation_tokens([*big_history, user_turn], context)
    expected_context_tokens = 3000 * (CEILING / total) * 0.9

    payload = enforcer.enforce(
        document_context=context,
        history=big_history,
        user_turn=user_turn,
        model=SMALL_MODEL,
    )

    assert payload.degradations == ["shrink_context", "collapse_history"]
    assert payload.document_context is not None
    shrunk = estimate_tokens(payload.document_context)
    assert expected_context_tokens - 100 <= shrunk <= expected_context_tokens + 10
    assert [turn.kind for turn in payload.turns] == ["preamble"] + ["message"] * 3
    assert payload.turns[1:3] == big_history[-2:]
    assert payload.turns[-1] is user_turn
    assert payload.within_ceiling


def test_collapse_keeps_existing_summary(enforcer, big_history, user_turn):
    summary = ConversationTurn(
        role="system", content="[Previous conversation (8 msgs)]", kind="summary"
    )

    payload = enforcer.enforce(
        document_context=None,
        history=[summary, *big_history],
        user_turn=user_turn,
        model=SMALL_MODEL,
    )

    assert payload.degradations == ["collapse_history"]
    assert payload.turns[0].kind == "preamble"
    assert payload.turns[1] is summary
    assert payload.turns[2:4] == big_history[-2:]


def test_context_dropped_as_last_resort(enforcer, long_document, history_factory):
    huge_question = ConversationTurn(role="user", content="y" * 24000)

    payload = enforcer.enforce(
        document_context=long_document[:8000],
        history=history_factory(2),
        user_turn=huge_question,
        model=SMALL_MODEL,
    )

    assert payload.degradations[-1] == "drop_context"
    assert payload.document_context is None
    assert payload.turns[0].kind == "preamble"
    assert payload.turns[-1] is huge_question
    assert not payload.within_ceiling


def test_existing_system_turn_counts_as_preamble(enforcer, user_turn):
    custom = ConversationTurn(role="system", content="Answer in French.")

    payload = enforcer.enforce(
        document_context=None,
        history=[custom],
        user_turn=user_turn,
        model=SMALL_MODEL,
    )

    assert payload.turns == [custom, user_turn]


def test_ceiling_is_smallest_across_fallback_chain():
    enforcer = BudgetEnforcer()

    assert enforcer.ceiling_for("openai/gpt-oss-120b") == config.DEFAULT_TOKEN_CEILING
    assert enforcer.ceiling_for(["openai/gpt-oss-120b", "qwen/qwen3-32b"]) == 5000
    assert enforcer.ceiling_for([]) == config.DEFAULT_TOKEN_CEILING


def test_fallback_models_tighten_the_budget(long_document, user_turn):
    enforcer = BudgetEnforcer(ceilings={SMALL_MODEL: CEILING})
    context = long_document[:24000]

    alone = enforcer.enforce(
        document_context=context, history=[], user_turn=user_turn, model="big-model"
    )
    chained = enforcer.enforce(
        document_context=context,
        history=[],
        user_turn=user_turn,
        model="big-model",
        fallback_models=[SMALL_MODEL],
    )

    assert alone.degradations == []
    assert chained.ceiling == CEILING
    assert chained.degradations == ["shrink_context"]


@pytest.mark.parametrize("context_chars", [0, 2000, 20000, 60000])
@pytest.mark.parametrize("history_turns", [0, 3, 20])
@pytest.mark.parametrize("question_chars", [20, 12000, 30000])
def test_payload_fits_or_context_is_gone(
    enforcer,
    long_document,
    history_factory,
    context_chars,
    history_turns,
    question_chars,
):
    question = ConversationTurn(role="user", content="q" * question_chars)
    history = [
        ConversationTurn(role=turn.role, content=turn.content * 100)
        for turn in history_factory(history_turns)
    ]

    payload = enforcer.enforce(
        document_context=long_document[:context_chars],
        history=history,
        user_turn=question,
        model=SMALL_MODEL,
    )

    assert payload.within_ceiling or payload.document_context is None
    assert payload.turns[-1] is question
    assert payload.turns[0].kind == "preamble"
    assert payload.estimated_tokens == estimate_conversation_tokens(
        payload.turns, payload.document_context
    )
