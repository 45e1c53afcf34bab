"""HTTP clients for the search, QnA scoring and spell-check services."""

from qnabot.clients.aggregate import AggregateGateway
from qnabot.clients.qnamaker import QnAMakerClient
from qnabot.clients.search import SearchClient, SearchHit
from qnabot.clients.spellcheck import SpellcheckClient, SpellcheckResult

__all__ = [
    "AggregateGateway",
    "QnAMakerClient",
    "SearchClient",
    "SearchHit",
    "SpellcheckClient",
    "SpellcheckResult",
]
