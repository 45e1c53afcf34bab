"""Search index client used to discover knowledge-base contexts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from qnabot.clients.base import UpstreamConnectionError, UpstreamResponseError, request_json
from qnabot.constants.gateway import SEARCH_API_VERSION, SEARCH_KEY_HEADER, SEARCH_SCORE_FIELD
from qnabot.dialog.models import QuestionContext


@dataclass
class SearchHit:
    """One knowledge base returned by the search index."""

    kb_id: str
    name: str
    entity: str = ""
    questions: list[str] = field(default_factory=list)
    score: float = 0.0  # Raw search relevance, not normalized

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> SearchHit:
        """Build a hit from a search index document.

        Raises:
            UpstreamResponseError: If the document lacks a knowledge base id.
        """
        if not isinstance(doc, dict):
            raise UpstreamResponseError(f"Search document is not an object: {doc!r}")
        kb_id = doc.get("kbId") or doc.get("kb_id")
        if not kb_id:
            raise UpstreamResponseError(f"Search document without kbId: {doc!r}")
        try:
            score = float(doc.get(SEARCH_SCORE_FIELD, 0.0))
        except (TypeError, ValueError) as e:
            raise UpstreamResponseError(f"Search document has invalid score: {doc!r}") from e
        questions = doc.get("questions") or []
        if not isinstance(questions, list):
            raise UpstreamResponseError(f"Search document has invalid questions: {doc!r}")
        return cls(
            kb_id=str(kb_id),
            name=str(doc.get("name") or kb_id),
            entity=str(doc.get("entity") or ""),
            questions=[str(q) for q in questions],
            score=score,
        )

    def to_context(self) -> QuestionContext:
        """Context for this hit; its score is filled in once answers are scored."""
        return QuestionContext(
            name=self.name,
            entity=self.entity,
            possible_questions=list(self.questions),
            kb_id=self.kb_id,
        )


class SearchClient:
    """Full-text search over the index of knowledge bases."""

    def __init__(self, client: httpx.AsyncClient, url: str | None, api_key: str | None) -> None:
        """Initialize search client.

        Args:
            client: Shared async HTTP client.
            url: Query endpoint of the index (see Config.search_url), None if not configured.
            api_key: Query key for the search service.
        """
        self._client = client
        self._url = url
        self._api_key = api_key

    async def search(self, query: str, top: int) -> list[SearchHit]:
        """Search the index.

        Args:
            query: Free-text query.
            top: Maximum number of hits.

        Returns:
            Hits in the order the index ranked them.
        """
        if self._url is None:
            raise UpstreamConnectionError("search endpoint is not configured")

        headers = {SEARCH_KEY_HEADER: self._api_key} if self._api_key else {}
        body = await request_json(
            self._client,
            "POST",
            self._url,
            service="search",
            params={"api-version": SEARCH_API_VERSION},
            headers=headers,
            json={"search": query, "top": top},
        )

        documents = body.get("value") if isinstance(body, dict) else None
        if not isinstance(documents, list):
            raise UpstreamResponseError("search response has no 'value' list")
        return [SearchHit.from_document(doc) for doc in documents]
