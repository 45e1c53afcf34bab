"""QnA scoring service client."""

from __future__ import annotations

import httpx

from qnabot.clients.base import UpstreamResponseError, request_json
from qnabot.constants.gateway import (
    QNAMAKER_KEY_HEADER,
    QNAMAKER_NO_MATCH_ANSWER,
    QNAMAKER_SCORE_SCALE,
)
from qnabot.dialog.models import AnswerCandidate, QuestionContext


class QnAMakerClient:
    """Scores a question against one knowledge base."""

    def __init__(self, client: httpx.AsyncClient, endpoint: str, api_key: str | None) -> None:
        """Initialize QnA client.

        Args:
            client: Shared async HTTP client.
            endpoint: Base URL of the knowledge base API.
            api_key: Subscription key.
        """
        self._client = client
        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key

    async def generate_answer(
        self, context: QuestionContext, question: str, top: int
    ) -> list[AnswerCandidate]:
        """Ask the knowledge base behind `context` for its best answers.

        Args:
            context: Context whose knowledge base is queried.
            question: The user's question.
            top: Maximum number of answers.

        Returns:
            Candidates sorted by descending score, scores normalized to 0-1.
        """
        headers = {QNAMAKER_KEY_HEADER: self._api_key} if self._api_key else {}
        body = await request_json(
            self._client,
            "POST",
            f"{self._endpoint}/{context.kb_id}/generateAnswer",
            service="qnamaker",
            headers=headers,
            json={"question": question, "top": top},
        )

        answers = body.get("answers") if isinstance(body, dict) else None
        if not isinstance(answers, list):
            raise UpstreamResponseError("qnamaker response has no 'answers' list")

        candidates = []
        for item in answers:
            if not isinstance(item, dict):
                raise UpstreamResponseError(f"qnamaker answer is not an object: {item!r}")
            if item.get("answer") == QNAMAKER_NO_MATCH_ANSWER:
                continue
            try:
                raw_score = float(item.get("score", 0.0))
            except (TypeError, ValueError) as e:
                raise UpstreamResponseError(f"qnamaker answer has invalid score: {item!r}") from e
            questions = item.get("questions") or [question]
            if not isinstance(questions, list):
                raise UpstreamResponseError(f"qnamaker answer has invalid questions: {item!r}")
            candidates.append(
                AnswerCandidate(
                    question_matched=str(questions[0]),
                    name=context.name,
                    entity=str(item.get("answer", "")),
                    score=min(max(raw_score / QNAMAKER_SCORE_SCALE, 0.0), 1.0),
                )
            )

        return sorted(candidates, key=lambda c: -c.score)
