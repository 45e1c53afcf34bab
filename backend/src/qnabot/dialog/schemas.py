"""Conversation request, response and rendering action schemas."""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class DialogAction(str, Enum):
    """Buttons the user can press at any point in the conversation."""

    NOT_RIGHT_ANSWER = "not_right_answer"
    WHAT_CAN_I_ASK = "what_can_i_ask"


class ContextSelection(BaseModel):
    """Structured "ask this question in that context" token."""

    context_name: str = Field(..., min_length=1, description="Name of the context to ask in")
    question: str = Field(..., min_length=1, description="Question to ask in that context")


class MessageRequest(BaseModel):
    """One inbound user turn."""

    text: str = Field(default="", description="Spell-corrected user utterance")
    choice_index: int | None = Field(
        default=None,
        ge=0,
        description="Zero-based index of a picked choice option",
    )
    selection: ContextSelection | None = Field(
        default=None,
        description="Suggestion picked after a broadened search",
    )
    action: DialogAction | None = Field(
        default=None,
        description="Affordance button pressed instead of typing",
    )


# =============================================================================
# Rendering Actions
# =============================================================================


class MessageAction(BaseModel):
    """Plain message that does not expect a reply (e.g. an apology)."""

    kind: Literal["message"] = "message"
    text: str


class PromptAction(BaseModel):
    """Free-text prompt (welcome, reword the question)."""

    kind: Literal["prompt"] = "prompt"
    text: str


class AnswerAction(BaseModel):
    """An answer card."""

    kind: Literal["answer"] = "answer"
    question_matched: str = Field(..., description="Question the answer responds to")
    context_name: str = Field(..., description="Context the answer came from")
    entity: str = Field(..., description="Answer text")
    score: float = Field(..., ge=0.0, le=1.0)
    uncertain: bool = Field(
        False,
        description="Score is below answer_uncertain_warning",
    )
    followup_action: DialogAction | None = Field(
        None,
        description="Affordance to offer alongside the answer",
    )
    followup_label: str | None = None


class ChoiceAction(BaseModel):
    """A numbered choice whose last option is an escape."""

    kind: Literal["choice"] = "choice"
    purpose: Literal["select_context", "context_questions"]
    text: str
    options: list[str]


class Suggestion(BaseModel):
    """One suggested question from a broadened search."""

    question_matched: str
    context_name: str
    score: float = Field(..., ge=0.0, le=1.0)
    reply_text: str = Field(..., description="Free-text form, e.g. '@Billing: how do I cancel'")
    selection: ContextSelection
    label: str = Field(..., description="Button label for picking this suggestion")


class SuggestionsAction(BaseModel):
    """Low-confidence suggestions across several contexts."""

    kind: Literal["suggestions"] = "suggestions"
    text: str
    suggestions: list[Suggestion]
    browse_context: str | None = Field(
        None,
        description="Selected context offered via 'What can I ask?' when no suggestion is from it",
    )
    browse_text: str | None = None
    browse_action: DialogAction | None = None
    browse_label: str | None = None


Action = Annotated[
    Union[MessageAction, PromptAction, AnswerAction, ChoiceAction, SuggestionsAction],
    Field(discriminator="kind"),
]


class MessageResponse(BaseModel):
    """Reply to one user turn."""

    conversation_id: str
    dialog_state: str = Field(..., description="State that will consume the next message")
    version: int = Field(..., description="Conversation state version after this turn")
    actions: list[Action] = Field(default_factory=list)


class ConversationSummary(BaseModel):
    """Read-only view of a conversation's stored state."""

    conversation_id: str
    dialog_state: str
    version: int
    last_question: str | None = None
    contexts: list[str] = Field(default_factory=list)
    selected_context: str | None = None
