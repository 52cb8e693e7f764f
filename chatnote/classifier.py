"""Question classification: a rule table first, an LLM for ambiguous cases.

The rule stage matches the question against named pattern families and then
reads scores off small ordered tables of weighted predicates, so each rule
can be tested on its own. When the rules are not confident enough the
question is sent to a structured-output model, trying each configured
classifier model in turn. Any failure there yields the rule-based result.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from .config import config
from .exceptions import AllAttemptsFailedError
from .fallback import first_success
from .models import ConversationTurn, QuestionClassification
from .tokens import extract_text

logger = config.get_logger(__name__)

LLM_ESCALATION_THRESHOLD = 0.85


@dataclass(frozen=True)
class PatternFamily:
    """A named group of regexes; the family matches if any regex does."""

    name: str
    patterns: tuple[re.Pattern[str], ...]

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


def _family(name: str, *patterns: str) -> PatternFamily:
    return PatternFamily(name, tuple(re.compile(p) for p in patterns))


DOCUMENT_NOUNS = (
    r"pdf|document|doc|paper|file|article|report|book|textbook|slides?"
    r"|chapter|section|paragraph|passage|page"
)

PATTERN_FAMILIES: tuple[PatternFamily, ...] = (
    _family(
        "quick",
        r"^(hi|hello|hey|thanks|thank you|ok|okay|cool|great|got it)\b",
        r"^(yes|no|sure|yep|nope)[.!?]*$",
        r"^(who|when|where) (is|was|are|were|did)\b",
    ),
    _family(
        "follow_up",
        r"^(and|but|also|so|then|or)\b",
        r"^(what|how) about\b",
        r"\b(you (said|mentioned|wrote)|earlier|previous(ly)?)\b",
        r"\byour (last |previous )?(answer|response|explanation)\b",
        r"^(tell me more|go on|continue|elaborate|more)\b",
        r"\b(more|further) (detail|details|info|information) (on|about) (that|it)\b",
        r"^(why|how)\??$",
    ),
    _family(
        "leading_pronoun",
        rf"^(it|they|them|that|those|these|this|he|she)\b(?!\s+({DOCUMENT_NOUNS})\b)",
    ),
    _family(
        "doc_reference",
        rf"\b({DOCUMENT_NOUNS})s?\b",
        r"\bpages? \d+\b",
        r"\b(author|authors|abstract|appendix|figure|table|equation)\b",
        r"\b(selected|highlighted) (text|part|section)\b",
        r"\baccording to (the|this)\b",
        r"\b(in|from) the (text|reading)\b",
    ),
    _family(
        "about_content",
        r"\bwhat('s| is) (this|it) about\b",
        r"\bwhat('s| is) (this|the|that) \w+ about\b",
        r"\b(summari[sz]e|summary|overview|gist|tl;?dr)\b",
        r"\bmain (point|idea|topic|argument|theme)s?\b",
        r"\bkey (point|takeaway|finding|concept)s?\b",
        r"\bwhat does (this|it) (say|cover|discuss)\b",
    ),
    _family(
        "complexity",
        r"^why\b",
        r"\bhow (does|do|did|can|could|would|should)\b",
        r"\b(explain|analy[sz]e|evaluate|assess|critique|justify|derive|prove)\b",
        r"\b(implications?|consequences?|trade-?offs?|step by step|reasoning)\b",
        r"\b(what would happen|what if)\b",
    ),
    _family(
        "definition",
        # A short term lookup, not a question about the document itself
        r"^what (is|are) (?!.*\b(about|of|in|for|from|on)\b)"
        r"(?!(the |an? )?(this|that|these|those|it|they|main|key)\b)"
        r"(an? |the )?[\w-]+( [\w-]+){0,2}\??$",
        r"\b(define|definition of|meaning of)\b",
        r"\bwhat does [\w\s-]+ mean\b",
        r"\bwhat('s| is) meant by\b",
    ),
    _family(
        "calculation",
        r"\b(calculate|compute|solve|estimate)\b",
        r"\bhow (many|much)\b",
        r"\b(percent(age)?|average|median|total|sum|ratio|probability)\b",
        r"\d+(\.\d+)?\s*[-+*/^x]\s*\d+",
    ),
    _family(
        "comparison",
        r"\b(compare|comparison|comparing|versus|vs\.?|contrast)\b",
        r"\bdifferen(ce|ces|t) (between|from)\b",
        r"\bdiffer\b",
        r"\b(similarit(y|ies)|pros and cons|better than|worse than)\b",
    ),
    _family(
        "clarification",
        r"\bwhat do you mean\b",
        r"\bi (don'?t|do not) (understand|get it)\b",
        r"\b(clarify|rephrase|in other words|simpler terms|confused|confusing)\b",
        r"\b(can|could) you (explain|say) (that|it) again\b",
    ),
)


@dataclass(frozen=True)
class QuestionSignals:
    """Matched pattern families plus what the conversation already has."""

    matched: frozenset[str]
    has_document: bool
    has_history: bool

    def has(self, family: str) -> bool:
        return family in self.matched


@dataclass(frozen=True)
class ScoreRule:
    """A named predicate that assigns ``weight`` when it holds."""

    name: str
    predicate: Callable[[QuestionSignals], bool]
    weight: float


# First rule that holds wins; nothing holding scores 0.
DOC_RELEVANCE_RULES: tuple[ScoreRule, ...] = (
    ScoreRule("explicit_reference", lambda s: s.has("doc_reference"), 0.9),
    ScoreRule(
        "asks_about_content",
        lambda s: s.has("about_content") and s.has_document and not s.has("follow_up"),
        0.85,
    ),
    ScoreRule(
        "open_question_with_document",
        lambda s: s.has_document and not s.has("quick") and not s.has("follow_up"),
        0.4,
    ),
    ScoreRule("document_present", lambda s: s.has_document, 0.2),
)

HISTORY_RELEVANCE_RULES: tuple[ScoreRule, ...] = (
    ScoreRule("follow_up", lambda s: s.has("follow_up"), 0.9),
    ScoreRule(
        "clarification_or_pronoun",
        lambda s: s.has_history
        and (s.has("clarification") or s.has("leading_pronoun")),
        0.7,
    ),
    ScoreRule("history_present", lambda s: s.has_history, 0.2),
)

CONFIDENCE_RULES: tuple[ScoreRule, ...] = (
    ScoreRule(
        "decisive_pattern",
        lambda s: s.has("quick") or s.has("follow_up") or s.has("doc_reference"),
        0.9,
    ),
    ScoreRule("undecided", lambda s: True, 0.6),
)


def match_families(question: str) -> frozenset[str]:
    """Return the names of every pattern family the question matches."""
    text = question.strip().lower()
    return frozenset(
        family.name for family in PATTERN_FAMILIES if family.matches(text)
    )


def score(rules: Sequence[ScoreRule], signals: QuestionSignals) -> float:
    """Return the weight of the first rule that holds, or 0.0."""
    for rule in rules:
        if rule.predicate(signals):
            return rule.weight
    return 0.0


def classify_rules(
    question: str, *, has_document: bool, has_history: bool
) -> QuestionClassification:
    """Classify a question from pattern matches alone.

    Returns:
        A rule-based classification.
    """
    signals = QuestionSignals(
        matched=match_families(question),
        has_document=has_document,
        has_history=has_history,
    )
    is_quick = signals.has("quick")
    is_follow_up = signals.has("follow_up")
    asks_about_content = signals.has("about_content")

    if is_quick or signals.has("definition"):
        complexity = "quick"
    elif (
        signals.has("complexity")
        or signals.has("calculation")
        or signals.has("comparison")
    ):
        complexity = "reasoning"
    else:
        complexity = "detailed"

    history_score = score(HISTORY_RELEVANCE_RULES, signals)
    needs_doc_context = has_document and (
        signals.has("doc_reference")
        or (asks_about_content and not is_follow_up)
        or (not is_follow_up and not is_quick)
    )
    needs_history = has_history and (
        is_follow_up or signals.has("clarification") or history_score > 0.5
    )

    classification = QuestionClassification(
        needs_doc_context=needs_doc_context,
        needs_history=needs_history,
        needs_full_context=has_document and asks_about_content and not is_follow_up,
        answer_complexity=complexity,
        is_clarification=signals.has("clarification"),
        is_follow_up=is_follow_up,
        is_definition=signals.has("definition"),
        is_calculation=signals.has("calculation"),
        is_comparison=signals.has("comparison"),
        doc_relevance_score=score(DOC_RELEVANCE_RULES, signals),
        history_relevance_score=history_score,
        classification_method="rule-based",
        confidence=score(CONFIDENCE_RULES, signals),
    )
    logger.debug(
        "Rule classification: families=%s confidence=%.2f",
        sorted(signals.matched),
        classification.confidence,
    )
    return classification


class LLMClassification(BaseModel):
    """Structured output expected from the classifier model."""

    needs_doc_context: bool = Field(
        description="Whether the answer depends on the uploaded document"
    )
    needs_history: bool = Field(
        description="Whether the answer depends on earlier messages"
    )
    needs_full_context: bool = Field(
        default=False,
        description="Whether the whole document is needed (e.g. a summary request)",
    )
    answer_complexity: Literal["quick", "detailed", "reasoning"]
    is_clarification: bool = False
    is_follow_up: bool = False
    is_definition: bool = False
    is_calculation: bool = False
    is_comparison: bool = False
    doc_relevance_score: float = Field(ge=0.0, le=1.0)
    history_relevance_score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)


CLASSIFIER_PROMPT = """You classify questions a user asks while reading a document \
in a chat assistant. Decide what information the assistant needs to answer.

- needs_doc_context: the answer depends on the uploaded document.
- needs_history: the answer depends on earlier messages (follow-ups, pronouns \
like "it" or "that", requests to clarify a previous answer).
- needs_full_context: the user wants the whole document covered (summary, overview).
- answer_complexity: "quick" for greetings, short facts and definitions; \
"reasoning" for explanations, calculations and comparisons; otherwise "detailed".
- doc_relevance_score, history_relevance_score, confidence: numbers from 0 to 1.

Answer with a single JSON object and nothing else."""

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def summarize_for_classifier(
    history: Sequence[ConversationTurn], *, has_document: bool
) -> str:
    """Describe the conversation state in a few lines for the classifier model.

    Returns:
        Document presence, message count and the last user message.
    """
    lines = [
        f"Document loaded: {'yes' if has_document else 'no'}",
        f"Previous messages: {len(history)}",
    ]
    for turn in reversed(history):
        if turn.role == "user":
            text = " ".join(extract_text(turn.content).split())
            lines.append(f"Last user message: {text[:150]}")
            break
    return "\n".join(lines)


class QuestionClassifier:
    """Hybrid classifier: rules first, LLM when rules are unsure."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        models: Sequence[str] | None = None,
    ) -> None:
        """Initialize QuestionClassifier.

        Args:
            client: OpenAI-compatible client. Without one only rules are used.
            models: Classifier models in the order to try them. If None,
                uses config.CLASSIFICATION_MODELS.
        """
        self.client = client
        self.models = list(
            models if models is not None else config.CLASSIFICATION_MODELS
        )

    async def classify(
        self,
        question: str,
        *,
        has_document: bool,
        history: Sequence[ConversationTurn] = (),
    ) -> QuestionClassification:
        """Classify a question, escalating to the LLM below 0.85 confidence.

        Returns:
            The LLM classification when one was obtained, else the rule-based one.
        """
        rules = classify_rules(
            question, has_document=has_document, has_history=bool(history)
        )
        if rules.confidence >= LLM_ESCALATION_THRESHOLD:
            return rules
        if self.client is None or not self.models:
            return rules

        try:
            return await self.classify_llm(
                question, has_document=has_document, history=history, fallback=rules
            )
        except Exception:
            logger.warning("LLM classification failed, using rules", exc_info=True)
            return rules

    async def classify_llm(
        self,
        question: str,
        *,
        has_document: bool,
        history: Sequence[ConversationTurn],
        fallback: QuestionClassification,
    ) -> QuestionClassification:
        """Ask the classifier models in turn for a structured classification.

        Returns:
            The first valid model classification, or ``fallback`` if every
            model failed.
        """
        summary = summarize_for_classifier(history, has_document=has_document)

        async def attempt(model: str) -> LLMClassification:
            return await self._request(model, question, summary)

        try:
            model, result = await first_success(self.models, attempt)
        except AllAttemptsFailedError as exc:
            logger.info("No classifier model succeeded (%s)", ", ".join(exc.errors))
            return fallback

        logger.info(
            "LLM classification via %s: complexity=%s confidence=%.2f",
            model,
            result.answer_complexity,
            result.confidence,
        )
        return QuestionClassification(
            needs_doc_context=result.needs_doc_context and has_document,
            needs_history=result.needs_history and bool(history),
            needs_full_context=result.needs_full_context and has_document,
            answer_complexity=result.answer_complexity,
            is_clarification=result.is_clarification,
            is_follow_up=result.is_follow_up,
            is_definition=result.is_definition,
            is_calculation=result.is_calculation,
            is_comparison=result.is_comparison,
            doc_relevance_score=result.doc_relevance_score,
            history_relevance_score=result.history_relevance_score,
            classification_method="llm",
            confidence=result.confidence,
        )

    async def _request(
        self, model: str, question: str, summary: str
    ) -> LLMClassification:
        response = await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": CLASSIFIER_PROMPT},
                {"role": "user", "content": f"{summary}\n\nQuestion: {question}"},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "question_classification",
                    "schema": LLMClassification.model_json_schema(),
                },
            },
            max_tokens=config.CLASSIFIER_MAX_TOKENS,
            temperature=config.CLASSIFIER_TEMPERATURE,
        )
        content = response.choices[0].message.content
        if not content:
            msg = f"Empty classification from {model}"
            raise ValueError(msg)
        return LLMClassification.model_validate_json(
            _CODE_FENCE.sub("", content.strip())
        )
