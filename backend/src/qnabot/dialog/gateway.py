"""Scoring gateway contract used by the conversation state machine."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TypeVar

from qnabot.dialog.models import AnswerCandidate, QuestionContext

T = TypeVar("T")


class UpstreamUnavailable(Exception):
    """Raised when a search or scoring call fails (network, auth, timeout)."""

    pass


@dataclass
class SearchResult:
    """Result of a top-level search across all knowledge bases."""

    answers: list[AnswerCandidate] = field(default_factory=list)
    contexts: list[QuestionContext] = field(default_factory=list)
    score: float = 0.0  # Best answer confidence found


class ScoringGateway(ABC):
    """Search and QnA scoring collaborators, seen from the dialog.

    Implementations are stateless. Every operation may fail with
    UpstreamUnavailable; callers must not see any other exception type for
    upstream problems.
    """

    @abstractmethod
    async def search_and_score(self, question: str) -> SearchResult:
        """Search all knowledge bases and score the question in each hit.

        Args:
            question: The user's question.

        Returns:
            SearchResult with answers and contexts sorted by descending score.
        """
        pass

    @abstractmethod
    async def find_relevant_qna_docs(self, question: str) -> list[QuestionContext]:
        """Discover contexts relevant to a question. May return an empty list."""
        pass

    @abstractmethod
    async def score_relevant_answers(
        self, contexts: list[QuestionContext], question: str
    ) -> list[AnswerCandidate]:
        """Score a question across the given contexts.

        Returns:
            Candidates from all contexts, sorted by descending score.
        """
        pass

    @abstractmethod
    async def score_context(
        self, context: QuestionContext, question: str
    ) -> list[AnswerCandidate]:
        """Score a question within a single context."""
        pass


async def call_with_timeout(awaitable: Awaitable[T], timeout: float) -> T:
    """Await a gateway call, reporting a timeout as UpstreamUnavailable.

    Args:
        awaitable: The pending gateway call.
        timeout: Seconds to wait before giving up.

    Raises:
        UpstreamUnavailable: If the call fails or does not finish in time.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise UpstreamUnavailable(f"Upstream call timed out after {timeout}s") from e
