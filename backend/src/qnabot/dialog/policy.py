"""Confidence-based answer aggregation.

Pure decision functions over scored results and the configured thresholds.
Nothing here performs I/O or touches conversation state; the state machine
feeds results in and acts on the decisions that come out.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from qnabot.config import DialogConfig
from qnabot.dialog.gateway import SearchResult
from qnabot.dialog.models import AnswerCandidate, QuestionContext


class Decision(Enum):
    """What the dialog should do with a set of scored results."""

    ANSWER = "answer"
    DISAMBIGUATE = "disambiguate"
    BROADEN = "broaden"
    NOT_FOUND = "not_found"


@dataclass
class TopLevelDecision:
    """Outcome of the top-level rule."""

    decision: Decision
    options: list[QuestionContext] = field(default_factory=list)
    answer: AnswerCandidate | None = None
    context: QuestionContext | None = None


@dataclass
class FollowupDecision:
    """Outcome of the in-context follow-up rule."""

    decision: Decision
    answer: AnswerCandidate | None = None


@dataclass(frozen=True)
class ContextReference:
    """A reply that names a context explicitly, e.g. "@Billing: how do I cancel"."""

    name: str
    question: str


# "@<name>: <question>" with a non-empty name and question
_CONTEXT_REFERENCE_RE = re.compile(r"^\s*@(?P<name>[^:@\n]+?)\s*:\s*(?P<question>\S.*?)\s*$")


def sort_contexts(contexts: list[QuestionContext]) -> list[QuestionContext]:
    """Contexts by descending score; equal scores keep their original order."""
    return sorted(contexts, key=lambda c: -c.score)


def sort_candidates(candidates: list[AnswerCandidate]) -> list[AnswerCandidate]:
    """Candidates by descending score; equal scores keep their original order."""
    return sorted(candidates, key=lambda c: -c.score)


def decide_top_level(result: SearchResult, config: DialogConfig) -> TopLevelDecision:
    """Apply the top-level rule to a search_and_score result.

    Args:
        result: Answers and contexts found for the question.
        config: Dialog thresholds.

    Returns:
        NOT_FOUND when nothing scores at least qna_min_confidence,
        DISAMBIGUATE when several contexts are within choice_confidence_delta
        of the best one, ANSWER otherwise.
    """
    answers = sort_candidates(result.answers)
    contexts = sort_contexts(result.contexts)

    best_score = answers[0].score if answers else 0.0
    if not answers or best_score == 0 or best_score < config.qna_min_confidence:
        return TopLevelDecision(Decision.NOT_FOUND)

    if not contexts:
        # Answers without a context to select cannot be followed up
        return TopLevelDecision(Decision.NOT_FOUND)

    score_to_beat = contexts[0].score - config.choice_confidence_delta
    options = [c for c in contexts if c.score >= score_to_beat]

    if len(options) > 1:
        return TopLevelDecision(Decision.DISAMBIGUATE, options=options)

    return TopLevelDecision(Decision.ANSWER, answer=answers[0], context=contexts[0])


def decide_followup(candidates: list[AnswerCandidate], config: DialogConfig) -> FollowupDecision:
    """Apply the follow-up rule to candidates scored within one context."""
    ranked = sort_candidates(candidates)
    if ranked and ranked[0].score > config.qna_confidence_prompt:
        return FollowupDecision(Decision.ANSWER, answer=ranked[0])
    return FollowupDecision(Decision.BROADEN)


def is_uncertain(candidate: AnswerCandidate, config: DialogConfig) -> bool:
    """Whether an answer should be shown with a "not the right answer?" option."""
    return candidate.score < config.answer_uncertain_warning


def discovered_contexts_to_merge(discovered: list[QuestionContext] | None) -> list[QuestionContext]:
    """Newly discovered contexts worth tracking.

    A lone discovered context is treated as noise and dropped.
    """
    if not discovered or len(discovered) <= 1:
        return []
    return list(discovered)


def merge_contexts(
    existing: list[QuestionContext],
    discovered: list[QuestionContext],
    *,
    limit: int,
    keep: QuestionContext | None = None,
) -> list[QuestionContext]:
    """Merge tracked and discovered contexts, de-duplicated by name.

    The first occurrence of a name keeps its position; a later duplicate only
    contributes a higher score. When more than `limit` contexts remain, the
    lowest scoring ones are evicted, except `keep`.

    Args:
        existing: Contexts already tracked by the conversation.
        discovered: Contexts found by the latest search.
        limit: Maximum number of contexts to return.
        keep: Context that must survive eviction (usually the selected one).

    Returns:
        New list of independent context objects.
    """
    merged: dict[str, QuestionContext] = {}
    for context in [*existing, *discovered]:
        current = merged.get(context.name)
        if current is None:
            merged[context.name] = QuestionContext.from_dict(context.to_dict())
        elif context.score > current.score:
            current.score = context.score

    result = list(merged.values())
    if len(result) <= limit:
        return result

    keep_name = keep.name if keep is not None else None
    ranked = sort_contexts(result)
    survivors = {c.name for c in ranked[:limit]}
    if keep_name in merged and keep_name not in survivors:
        survivors.discard(ranked[limit - 1].name)
        survivors.add(keep_name)

    return [c for c in result if c.name in survivors]


def select_suggestions(
    candidates: list[AnswerCandidate], config: DialogConfig
) -> list[AnswerCandidate]:
    """Top candidates above qna_min_confidence, capped at max_suggestions."""
    confident = [c for c in candidates if c.score > config.qna_min_confidence]
    return sort_candidates(confident)[: config.max_suggestions]


def parse_context_reference(text: str | None) -> ContextReference | None:
    """Parse a "@<name>: <question>" reply.

    Returns:
        The reference, or None if the text does not have exactly that shape.
    """
    if not text:
        return None
    match = _CONTEXT_REFERENCE_RE.match(text)
    if match is None:
        return None
    return ContextReference(name=match.group("name"), question=match.group("question"))


def format_context_reference(candidate: AnswerCandidate) -> str:
    """Reply text that asks a suggested question in its own context."""
    return f"@{candidate.name}: {candidate.question_matched}"


def resolve_context(name: str, contexts: list[QuestionContext]) -> QuestionContext | None:
    """Find a context by name, falling back to a case-insensitive match."""
    for context in contexts:
        if context.name == name:
            return context
    lowered = name.casefold()
    for context in contexts:
        if context.name.casefold() == lowered:
            return context
    return None
