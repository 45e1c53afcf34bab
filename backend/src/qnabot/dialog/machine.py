"""Conversation state machine.

Each dialog state has two steps:

- enter: runs when the conversation transitions into the state. It either
  emits a prompt and stops (the state then waits for the user), or hands off
  to another state with a Transition.
- respond: consumes the user's next message while the conversation waits in
  that state, and returns the Transition to follow.

One call to handle() runs a respond step and then as many enter steps as it
takes to reach the next prompt.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from qnabot.config import DialogConfig
from qnabot.constants.dialog import (
    APOLOGY_MESSAGE,
    ASK_THIS_LABEL,
    EMPTY_MESSAGE_PROMPT,
    MAX_TRANSITIONS_PER_TURN,
    NO_ANSWERS_IN_CONTEXT_LABEL,
    NONE_OF_THE_ABOVE,
    NONE_OF_THESE_USEFUL,
    NOT_FOUND_WITH_CONTEXT_MESSAGE,
    NOT_RIGHT_ANSWER_LABEL,
    REWORD_MESSAGE,
    SELECT_CONTEXT_MESSAGE,
    SUGGESTIONS_MESSAGE,
    SUGGESTIONS_MESSAGE_NO_CONTEXT,
    WELCOME_MESSAGE,
    WHAT_CAN_I_ASK_LABEL,
)
from qnabot.dialog.gateway import ScoringGateway, UpstreamUnavailable, call_with_timeout
from qnabot.dialog.models import AnswerCandidate, ConversationState, DialogState, QuestionContext
from qnabot.dialog.policy import (
    ContextReference,
    Decision,
    decide_followup,
    decide_top_level,
    discovered_contexts_to_merge,
    format_context_reference,
    is_uncertain,
    merge_contexts,
    parse_context_reference,
    resolve_context,
    select_suggestions,
)
from qnabot.dialog.schemas import (
    Action,
    AnswerAction,
    ChoiceAction,
    ContextSelection,
    DialogAction,
    MessageAction,
    MessageRequest,
    PromptAction,
    Suggestion,
    SuggestionsAction,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# States whose reply step needs typed text rather than a choice
_TEXT_STATES = {
    DialogState.WELCOME,
    DialogState.TOP_LEVEL_QUESTION,
    DialogState.FOLLOWUP_QUESTION,
    DialogState.NOT_FOUND,
}


@dataclass(frozen=True)
class Transition:
    """Move to `target`, carrying the question and an optional context override."""

    target: DialogState
    question: str | None = None
    context: QuestionContext | None = None


@dataclass
class TurnResult:
    """Replacement state plus the actions to render for one turn."""

    state: ConversationState
    actions: list[Action] = field(default_factory=list)


@dataclass
class _Turn:
    state: ConversationState
    actions: list[Action] = field(default_factory=list)


_EnterStep = Callable[[_Turn, Transition], Awaitable[Transition | None]]
_RespondStep = Callable[[ConversationState, MessageRequest], Transition]


class ConversationStateMachine:
    """Decides, turn by turn, whether to answer, disambiguate, broaden or re-prompt."""

    def __init__(self, gateway: ScoringGateway, config: DialogConfig) -> None:
        """Initialize the state machine.

        Args:
            gateway: Search and scoring collaborators.
            config: Dialog thresholds and limits.
        """
        self._gateway = gateway
        self._config = config
        self._enter: dict[DialogState, _EnterStep] = {
            DialogState.TOP_LEVEL_QUESTION: self._enter_top_level_question,
            DialogState.SELECT_CONTEXT: self._enter_select_context,
            DialogState.FOLLOWUP_QUESTION: self._enter_followup_question,
            DialogState.FOLLOWUP_QUESTION_LOW_CONFIDENCE: self._enter_low_confidence,
            DialogState.NOT_FOUND: self._enter_not_found,
            DialogState.NOT_FOUND_WITH_CONTEXT: self._enter_not_found_with_context,
        }
        self._respond: dict[DialogState, _RespondStep] = {
            DialogState.WELCOME: self._respond_welcome,
            DialogState.TOP_LEVEL_QUESTION: self._respond_top_level_question,
            DialogState.SELECT_CONTEXT: self._respond_select_context,
            DialogState.FOLLOWUP_QUESTION: self._respond_followup_question,
            DialogState.FOLLOWUP_QUESTION_LOW_CONFIDENCE: self._respond_low_confidence,
            DialogState.NOT_FOUND: self._respond_not_found,
            DialogState.NOT_FOUND_WITH_CONTEXT: self._respond_not_found_with_context,
        }

    def greet(self, state: ConversationState) -> TurnResult:
        """Welcome prompt for a conversation that has just (re)started.

        Everything but the version is reset, so a restarted conversation
        carries no contexts or question from before.
        """
        new_state = ConversationState.new(state.conversation_id)
        new_state.version = state.version + 1
        return TurnResult(new_state, [PromptAction(text=WELCOME_MESSAGE)])

    async def handle(self, state: ConversationState, message: MessageRequest) -> TurnResult:
        """Handle one user message.

        Args:
            state: Snapshot persisted after the previous turn. Not modified.
            message: The user's message, already spell-corrected.

        Returns:
            TurnResult with the replacement state and the actions to render.
        """
        turn = _Turn(state=state.copy())
        transition = self._route(turn, message)
        await self._run(turn, transition)
        turn.state.version += 1
        return TurnResult(turn.state, turn.actions)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _route(self, turn: _Turn, message: MessageRequest) -> Transition | None:
        state = turn.state

        if message.action is DialogAction.NOT_RIGHT_ANSWER:
            return Transition(
                DialogState.FOLLOWUP_QUESTION_LOW_CONFIDENCE, question=state.last_question
            )
        if message.action is DialogAction.WHAT_CAN_I_ASK:
            return Transition(DialogState.NOT_FOUND)

        needs_text = state.dialog_state in _TEXT_STATES or (
            state.dialog_state is DialogState.FOLLOWUP_QUESTION_LOW_CONFIDENCE
            and message.selection is None
        )
        if needs_text and not message.text.strip():
            turn.actions.append(PromptAction(text=EMPTY_MESSAGE_PROMPT))
            return None

        return self._respond[state.dialog_state](state, message)

    async def _run(self, turn: _Turn, transition: Transition | None) -> None:
        for _ in range(MAX_TRANSITIONS_PER_TURN):
            if transition is None:
                return
            logger.debug(
                f"Conversation {turn.state.conversation_id}: entering {transition.target.value}"
            )
            transition = await self._enter[transition.target](turn, transition)

        if transition is not None:
            logger.error(
                f"Conversation {turn.state.conversation_id}: too many transitions in one turn, "
                f"stopped before {transition.target.value}"
            )
            turn.state.selected_context = None
            turn.state.dialog_state = DialogState.TOP_LEVEL_QUESTION
            turn.actions.append(MessageAction(text=APOLOGY_MESSAGE))

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await call_with_timeout(awaitable, self._config.gateway_timeout_seconds)

    def _apologize(self, turn: _Turn, operation: str, error: Exception) -> None:
        logger.error(
            f"Conversation {turn.state.conversation_id}: {operation} failed: {error}"
        )
        turn.actions.append(MessageAction(text=APOLOGY_MESSAGE))

    def _answer(self, turn: _Turn, candidate: AnswerCandidate) -> None:
        uncertain = is_uncertain(candidate, self._config)
        turn.actions.append(
            AnswerAction(
                question_matched=candidate.question_matched,
                context_name=candidate.name,
                entity=candidate.entity,
                score=candidate.score,
                uncertain=uncertain,
                followup_action=DialogAction.NOT_RIGHT_ANSWER if uncertain else None,
                followup_label=NOT_RIGHT_ANSWER_LABEL if uncertain else None,
            )
        )

    # =========================================================================
    # Welcome
    # =========================================================================

    def _respond_welcome(self, state: ConversationState, message: MessageRequest) -> Transition:
        return Transition(DialogState.TOP_LEVEL_QUESTION, question=message.text.strip())

    # =========================================================================
    # TopLevelQuestion
    # =========================================================================

    async def _enter_top_level_question(
        self, turn: _Turn, transition: Transition
    ) -> Transition | None:
        state = turn.state
        question = transition.question or state.last_question
        if not question:
            return Transition(DialogState.NOT_FOUND)

        # Recorded before the call so a failure leaves the question available
        state.last_question = question
        state.dialog_state = DialogState.TOP_LEVEL_QUESTION

        try:
            result = await self._call(self._gateway.search_and_score(question))
        except UpstreamUnavailable as e:
            self._apologize(turn, "search_and_score", e)
            return None

        decision = decide_top_level(result, self._config)

        if decision.decision is Decision.NOT_FOUND:
            return Transition(DialogState.NOT_FOUND)

        if decision.decision is Decision.DISAMBIGUATE:
            state.question_contexts = merge_contexts(
                [], decision.options, limit=self._config.max_tracked_contexts
            )
            return Transition(DialogState.SELECT_CONTEXT)

        assert decision.answer is not None and decision.context is not None
        state.question_contexts = merge_contexts(
            state.question_contexts,
            result.contexts,
            limit=self._config.max_tracked_contexts,
            keep=decision.context,
        )
        state.selected_context = QuestionContext.from_dict(decision.context.to_dict())
        self._answer(turn, decision.answer)
        return None

    def _respond_top_level_question(
        self, state: ConversationState, message: MessageRequest
    ) -> Transition:
        text = message.text.strip()
        if state.selected_context is None:
            # The last search failed; treat this as a fresh question
            return Transition(DialogState.TOP_LEVEL_QUESTION, question=text)
        state.last_question = text
        return Transition(DialogState.FOLLOWUP_QUESTION, question=text)

    # =========================================================================
    # SelectContext
    # =========================================================================

    async def _enter_select_context(
        self, turn: _Turn, transition: Transition
    ) -> Transition | None:
        state = turn.state
        if not state.question_contexts:
            return Transition(DialogState.NOT_FOUND)

        options = state.context_names()
        options.append(NONE_OF_THE_ABOVE)
        turn.actions.append(
            ChoiceAction(purpose="select_context", text=SELECT_CONTEXT_MESSAGE, options=options)
        )
        state.dialog_state = DialogState.SELECT_CONTEXT
        return None

    def _respond_select_context(
        self, state: ConversationState, message: MessageRequest
    ) -> Transition:
        options = state.context_names()
        options.append(NONE_OF_THE_ABOVE)
        index = _picked_index(message, options)

        if index is None or index > len(state.question_contexts) - 1:
            return Transition(DialogState.NOT_FOUND)

        state.selected_context = QuestionContext.from_dict(
            state.question_contexts[index].to_dict()
        )
        return Transition(DialogState.FOLLOWUP_QUESTION, question=state.last_question)

    # =========================================================================
    # FollowupQuestion
    # =========================================================================

    async def _enter_followup_question(
        self, turn: _Turn, transition: Transition
    ) -> Transition | None:
        state = turn.state

        # A context picked from low-confidence suggestions replaces the selection
        if transition.context is not None:
            state.selected_context = QuestionContext.from_dict(transition.context.to_dict())

        question = transition.question or state.last_question
        if state.selected_context is None:
            return Transition(DialogState.TOP_LEVEL_QUESTION, question=question)
        if not question:
            return Transition(DialogState.NOT_FOUND)

        state.last_question = question
        state.dialog_state = DialogState.FOLLOWUP_QUESTION

        try:
            candidates = await self._call(
                state.selected_context.score_question(question, self._gateway)
            )
        except UpstreamUnavailable as e:
            self._apologize(turn, "score_question", e)
            return None

        decision = decide_followup(candidates, self._config)
        if decision.decision is Decision.ANSWER:
            assert decision.answer is not None
            self._answer(turn, decision.answer)
            return None

        return Transition(DialogState.FOLLOWUP_QUESTION_LOW_CONFIDENCE, question=question)

    def _respond_followup_question(
        self, state: ConversationState, message: MessageRequest
    ) -> Transition:
        text = message.text.strip()
        state.last_question = text
        return Transition(DialogState.FOLLOWUP_QUESTION, question=text)

    # =========================================================================
    # FollowupQuestionLowConfidence
    # =========================================================================

    async def _enter_low_confidence(
        self, turn: _Turn, transition: Transition
    ) -> Transition | None:
        state = turn.state
        question = transition.question or state.last_question
        if not question:
            return Transition(DialogState.NOT_FOUND)

        current = state.selected_context
        state.dialog_state = DialogState.FOLLOWUP_QUESTION_LOW_CONFIDENCE

        try:
            discovered = await self._call(self._gateway.find_relevant_qna_docs(question))
        except UpstreamUnavailable as e:
            self._low_confidence_failed(turn, "find_relevant_qna_docs", e)
            return None

        existing = list(state.question_contexts)
        if current is not None and current.name not in state.context_names():
            existing.append(current)
        contexts = merge_contexts(
            existing,
            discovered_contexts_to_merge(discovered),
            limit=self._config.max_tracked_contexts,
            keep=current,
        )
        state.question_contexts = contexts

        try:
            candidates = await self._call(
                self._gateway.score_relevant_answers(contexts, question)
            )
        except UpstreamUnavailable as e:
            self._low_confidence_failed(turn, "score_relevant_answers", e)
            return None

        suggestions = select_suggestions(candidates, self._config)
        if not suggestions:
            return Transition(DialogState.NOT_FOUND)

        browse_context = None
        if current is not None and not any(s.name == current.name for s in suggestions):
            browse_context = current.name

        text = (
            SUGGESTIONS_MESSAGE.format(name=current.name)
            if current is not None
            else SUGGESTIONS_MESSAGE_NO_CONTEXT
        )
        turn.actions.append(
            SuggestionsAction(
                text=text,
                suggestions=[
                    Suggestion(
                        question_matched=s.question_matched,
                        context_name=s.name,
                        score=s.score,
                        reply_text=format_context_reference(s),
                        selection=ContextSelection(
                            context_name=s.name, question=s.question_matched
                        ),
                        label=ASK_THIS_LABEL,
                    )
                    for s in suggestions
                ],
                browse_context=browse_context,
                browse_text=NO_ANSWERS_IN_CONTEXT_LABEL if browse_context else None,
                browse_action=DialogAction.WHAT_CAN_I_ASK if browse_context else None,
                browse_label=WHAT_CAN_I_ASK_LABEL if browse_context else None,
            )
        )
        return None

    def _low_confidence_failed(self, turn: _Turn, operation: str, error: Exception) -> None:
        self._apologize(turn, operation, error)
        # The next message is scored normally rather than as a suggestion pick
        if turn.state.selected_context is not None:
            turn.state.dialog_state = DialogState.FOLLOWUP_QUESTION
        else:
            turn.state.dialog_state = DialogState.TOP_LEVEL_QUESTION

    def _respond_low_confidence(
        self, state: ConversationState, message: MessageRequest
    ) -> Transition:
        reference: ContextReference | None
        if message.selection is not None:
            reference = ContextReference(
                name=message.selection.context_name, question=message.selection.question
            )
        else:
            reference = parse_context_reference(message.text)

        if reference is not None:
            known = list(state.question_contexts)
            if state.selected_context is not None:
                known.append(state.selected_context)
            context = resolve_context(reference.name, known)
            if context is not None:
                return Transition(
                    DialogState.FOLLOWUP_QUESTION, question=reference.question, context=context
                )
            logger.info(
                f"Conversation {state.conversation_id}: unknown context @{reference.name}, "
                "treating reply as a new question"
            )
            state.last_question = reference.question
            return Transition(DialogState.FOLLOWUP_QUESTION, question=reference.question)

        text = message.text.strip()
        state.last_question = text
        return Transition(DialogState.FOLLOWUP_QUESTION, question=text)

    # =========================================================================
    # NotFound
    # =========================================================================

    async def _enter_not_found(self, turn: _Turn, transition: Transition) -> Transition | None:
        state = turn.state
        if state.selected_context is not None:
            return Transition(DialogState.NOT_FOUND_WITH_CONTEXT)

        turn.actions.append(PromptAction(text=REWORD_MESSAGE))
        state.dialog_state = DialogState.NOT_FOUND
        return None

    def _respond_not_found(self, state: ConversationState, message: MessageRequest) -> Transition:
        return Transition(DialogState.TOP_LEVEL_QUESTION, question=message.text.strip())

    # =========================================================================
    # NotFoundWithContext
    # =========================================================================

    async def _enter_not_found_with_context(
        self, turn: _Turn, transition: Transition
    ) -> Transition | None:
        state = turn.state
        context = state.selected_context
        if context is None:
            return Transition(DialogState.NOT_FOUND)

        options = context.question_options()
        options.append(NONE_OF_THESE_USEFUL)
        turn.actions.append(
            ChoiceAction(
                purpose="context_questions",
                text=NOT_FOUND_WITH_CONTEXT_MESSAGE.format(name=context.name),
                options=options,
            )
        )
        state.dialog_state = DialogState.NOT_FOUND_WITH_CONTEXT
        return None

    def _respond_not_found_with_context(
        self, state: ConversationState, message: MessageRequest
    ) -> Transition:
        context = state.selected_context
        if context is None:
            return Transition(DialogState.NOT_FOUND)

        options = context.question_options()
        options.append(NONE_OF_THESE_USEFUL)
        index = _picked_index(message, options)

        if index is None or index > len(context.possible_questions) - 1:
            state.selected_context = None
            return Transition(DialogState.NOT_FOUND)

        question = context.possible_questions[index]
        state.last_question = question
        return Transition(DialogState.FOLLOWUP_QUESTION, question=question)


def _picked_index(message: MessageRequest, options: list[str]) -> int | None:
    """Resolve a choice reply to a zero-based option index.

    Accepts an explicit index, a 1-based number typed as text, or the option
    text itself (case-insensitive). Returns None when nothing matches.
    """
    if message.choice_index is not None:
        return message.choice_index

    text = message.text.strip()
    if not text:
        return None
    if text.isdigit():
        number = int(text)
        return number - 1 if number >= 1 else None

    lowered = text.casefold()
    for index, option in enumerate(options):
        if option.casefold() == lowered:
            return index
    return None
