"""Conversation state machine and confidence-based answer aggregation."""

from qnabot.dialog.gateway import ScoringGateway, SearchResult, UpstreamUnavailable
from qnabot.dialog.machine import ConversationStateMachine, TurnResult
from qnabot.dialog.models import (
    AnswerCandidate,
    ConversationState,
    DialogState,
    QuestionContext,
)
from qnabot.dialog.schemas import MessageRequest, MessageResponse

__all__ = [
    "AnswerCandidate",
    "ConversationState",
    "ConversationStateMachine",
    "DialogState",
    "MessageRequest",
    "MessageResponse",
    "QuestionContext",
    "ScoringGateway",
    "SearchResult",
    "TurnResult",
    "UpstreamUnavailable",
]
