"""Data models for conversation state and scored answers."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from qnabot.dialog.gateway import ScoringGateway

# Bumped whenever the persisted snapshot layout changes.
STATE_SCHEMA_VERSION = 1


class StateVersionError(Exception):
    """Raised when a persisted conversation snapshot has an unknown layout."""

    pass


class DialogState(Enum):
    """States of the conversation state machine.

    The stored value names the state whose reply step consumes the next
    user message.
    """

    WELCOME = "welcome"
    TOP_LEVEL_QUESTION = "top_level_question"
    SELECT_CONTEXT = "select_context"
    FOLLOWUP_QUESTION = "followup_question"
    FOLLOWUP_QUESTION_LOW_CONFIDENCE = "followup_question_low_confidence"
    NOT_FOUND = "not_found"
    NOT_FOUND_WITH_CONTEXT = "not_found_with_context"


@dataclass(frozen=True)
class AnswerCandidate:
    """One ranked answer from a knowledge base."""

    question_matched: str  # Canonical question the answer responds to
    name: str  # Owning context name
    entity: str  # Answer text shown to the user
    score: float  # Confidence, 0.0 to 1.0


@dataclass
class QuestionContext:
    """One knowledge-base area and the questions it is known to answer."""

    name: str
    entity: str = ""
    possible_questions: list[str] = field(default_factory=list)
    score: float = 0.0
    kb_id: str = ""

    def __post_init__(self) -> None:
        if not self.kb_id:
            self.kb_id = self.name

    def question_options(self) -> list[str]:
        """Copy of possible_questions, safe to extend when building a prompt."""
        return list(self.possible_questions)

    async def score_question(
        self, question: str, gateway: ScoringGateway
    ) -> list[AnswerCandidate]:
        """Score a question against this context only.

        Args:
            question: The user's question.
            gateway: Gateway that reaches the QnA scoring service.

        Returns:
            Candidates sorted by descending score.
        """
        candidates = await gateway.score_context(self, question)
        return sorted(candidates, key=lambda c: -c.score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "entity": self.entity,
            "possible_questions": list(self.possible_questions),
            "score": self.score,
            "kb_id": self.kb_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionContext:
        return cls(
            name=data["name"],
            entity=data.get("entity", ""),
            possible_questions=list(data.get("possible_questions", [])),
            score=float(data.get("score", 0.0)),
            kb_id=data.get("kb_id", ""),
        )


@dataclass
class ConversationState:
    """Per-conversation memory carried between turns.

    A state object is a snapshot: the state machine copies it on entry and
    hands back a replacement, so the caller's object is never modified.
    """

    conversation_id: str
    dialog_state: DialogState = DialogState.WELCOME
    last_question: str | None = None
    question_contexts: list[QuestionContext] = field(default_factory=list)
    selected_context: QuestionContext | None = None
    version: int = 0

    @classmethod
    def new(cls, conversation_id: str) -> ConversationState:
        """Create the state for a conversation's first turn."""
        return cls(conversation_id=conversation_id)

    def copy(self) -> ConversationState:
        """Deep, independent copy of this snapshot."""
        return copy.deepcopy(self)

    def context_names(self) -> list[str]:
        return [c.name for c in self.question_contexts]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the snapshot for the session store."""
        return {
            "schema_version": STATE_SCHEMA_VERSION,
            "conversation_id": self.conversation_id,
            "dialog_state": self.dialog_state.value,
            "last_question": self.last_question,
            "question_contexts": [c.to_dict() for c in self.question_contexts],
            "selected_context": (
                self.selected_context.to_dict() if self.selected_context else None
            ),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationState:
        """Rebuild a snapshot produced by to_dict().

        Raises:
            StateVersionError: If the snapshot was written with another layout.
        """
        schema_version = data.get("schema_version")
        if schema_version != STATE_SCHEMA_VERSION:
            raise StateVersionError(
                f"Unsupported conversation state schema version: {schema_version!r}"
            )

        selected = data.get("selected_context")
        return cls(
            conversation_id=data["conversation_id"],
            dialog_state=DialogState(data.get("dialog_state", DialogState.WELCOME.value)),
            last_question=data.get("last_question"),
            question_contexts=[
                QuestionContext.from_dict(c) for c in data.get("question_contexts", [])
            ],
            selected_context=QuestionContext.from_dict(selected) if selected else None,
            version=int(data.get("version", 0)),
        )
