"""Conversation service: binds the state machine to stored sessions."""

from __future__ import annotations

import logging

from qnabot.clients.spellcheck import SpellcheckClient
from qnabot.dialog.gateway import UpstreamUnavailable
from qnabot.dialog.machine import ConversationStateMachine, TurnResult
from qnabot.dialog.models import ConversationState
from qnabot.dialog.schemas import ConversationSummary, MessageRequest, MessageResponse
from qnabot.dialog.session import SessionStore

logger = logging.getLogger(__name__)


class ConversationService:
    """Handles user messages one conversation turn at a time."""

    def __init__(
        self,
        machine: ConversationStateMachine,
        sessions: SessionStore,
        spellcheck: SpellcheckClient | None = None,
    ) -> None:
        """Initialize conversation service.

        Args:
            machine: The conversation state machine.
            sessions: Store holding each conversation's state between turns.
            spellcheck: Optional spell corrector applied to typed messages.
        """
        self._machine = machine
        self._sessions = sessions
        self._spellcheck = spellcheck

    async def start(self, conversation_id: str) -> MessageResponse:
        """Start (or restart) a conversation with the welcome prompt."""
        async with self._sessions.lock(conversation_id):
            state = self._sessions.load(conversation_id)
            result = self._machine.greet(state)
            self._sessions.save(result.state)
        return _to_response(result)

    async def handle_message(
        self, conversation_id: str, request: MessageRequest
    ) -> MessageResponse:
        """Handle one user message.

        Turns of the same conversation are serialized in arrival order,
        spell correction included; the state saved by one turn is what the
        next turn loads.

        Args:
            conversation_id: Conversation the message belongs to.
            request: The user's message.

        Returns:
            Actions to render plus the conversation's new state and version.
        """
        async with self._sessions.lock(conversation_id):
            request = await self._correct(request)
            state = self._sessions.load(conversation_id)
            result = await self._machine.handle(state, request)
            self._sessions.save(result.state)

        logger.info(
            f"Conversation {conversation_id} v{result.state.version}: "
            f"{state.dialog_state.value} -> {result.state.dialog_state.value}"
        )
        return _to_response(result)

    def summary(self, conversation_id: str) -> ConversationSummary | None:
        """Read-only view of a stored conversation, or None if unknown."""
        state = self._sessions.get(conversation_id)
        if state is None:
            return None
        return ConversationSummary(
            conversation_id=state.conversation_id,
            dialog_state=state.dialog_state.value,
            version=state.version,
            last_question=state.last_question,
            contexts=state.context_names(),
            selected_context=state.selected_context.name if state.selected_context else None,
        )

    async def _correct(self, request: MessageRequest) -> MessageRequest:
        if self._spellcheck is None or not request.text.strip():
            return request
        # Choice replies and picked suggestions must reach the dialog verbatim
        if request.choice_index is not None or request.selection is not None:
            return request

        try:
            result = await self._spellcheck.correct(request.text)
        except UpstreamUnavailable as e:
            logger.warning(f"Spellcheck failed, using original text: {e}")
            return request
        return request.model_copy(update={"text": result.corrected})


def _to_response(result: TurnResult) -> MessageResponse:
    state: ConversationState = result.state
    return MessageResponse(
        conversation_id=state.conversation_id,
        dialog_state=state.dialog_state.value,
        version=state.version,
        actions=result.actions,
    )
