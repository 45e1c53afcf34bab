"""Scoring gateway that combines the search index and the QnA service."""

from __future__ import annotations

import asyncio
import logging

from qnabot.clients.qnamaker import QnAMakerClient
from qnabot.clients.search import SearchClient
from qnabot.config import SearchConfig
from qnabot.dialog.gateway import ScoringGateway, SearchResult
from qnabot.dialog.models import AnswerCandidate, QuestionContext
from qnabot.dialog.policy import sort_candidates, sort_contexts

logger = logging.getLogger(__name__)


class AggregateGateway(ScoringGateway):
    """Searches for relevant knowledge bases, then scores the question in each.

    The search index decides which knowledge bases might be relevant; the QnA
    service decides how well each of them answers the question. A context's
    score is the score of its best answer.
    """

    def __init__(self, search: SearchClient, qna: QnAMakerClient, config: SearchConfig) -> None:
        """Initialize the gateway.

        Args:
            search: Search index client.
            qna: QnA scoring client.
            config: Search thresholds and limits.
        """
        self._search = search
        self._qna = qna
        self._config = config

    async def search_and_score(self, question: str) -> SearchResult:
        hits = await self._search.search(question, top=self._config.result_limit)
        contexts = _unique_contexts([hit.to_context() for hit in hits])
        if not contexts:
            return SearchResult()

        per_context = await self._score_each(contexts, question)

        answers: list[AnswerCandidate] = []
        for context, candidates in zip(contexts, per_context):
            context.score = candidates[0].score if candidates else 0.0
            answers.extend(candidates)

        answers = sort_candidates(answers)
        contexts = sort_contexts(contexts)
        best = answers[0].score if answers else 0.0
        logger.info(
            f"search_and_score: {len(contexts)} context(s), {len(answers)} answer(s), "
            f"best {best:.2f}"
        )
        return SearchResult(answers=answers, contexts=contexts, score=best)

    async def find_relevant_qna_docs(self, question: str) -> list[QuestionContext]:
        hits = await self._search.search(question, top=self._config.result_limit)
        relevant = [hit for hit in hits if hit.score >= self._config.search_confidence]
        return _unique_contexts([hit.to_context() for hit in relevant])

    async def score_relevant_answers(
        self, contexts: list[QuestionContext], question: str
    ) -> list[AnswerCandidate]:
        if not contexts:
            return []
        per_context = await self._score_each(contexts, question)
        return sort_candidates([c for candidates in per_context for c in candidates])

    async def score_context(
        self, context: QuestionContext, question: str
    ) -> list[AnswerCandidate]:
        return await self._qna.generate_answer(
            context, question, top=self._config.answers_per_context
        )

    async def ping(self) -> None:
        """Run a throwaway search to check the index is reachable.

        Raises:
            UpstreamUnavailable: If the search service cannot be used.
        """
        await self._search.search("Is search available?", top=1)

    async def _score_each(
        self, contexts: list[QuestionContext], question: str
    ) -> list[list[AnswerCandidate]]:
        # Knowledge bases are independent, so they are scored concurrently
        return list(
            await asyncio.gather(*(self.score_context(context, question) for context in contexts))
        )


def _unique_contexts(contexts: list[QuestionContext]) -> list[QuestionContext]:
    seen: set[str] = set()
    unique = []
    for context in contexts:
        if context.name not in seen:
            seen.add(context.name)
            unique.append(context)
    return unique
