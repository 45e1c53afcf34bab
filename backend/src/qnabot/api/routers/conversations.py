"""Conversation API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from qnabot.api.deps import get_conversation_service
from qnabot.dialog.schemas import ConversationSummary, MessageRequest, MessageResponse
from qnabot.dialog.service import ConversationService

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.post("/{conversation_id}/start", response_model=MessageResponse)
async def start_conversation(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> MessageResponse:
    """Start a conversation and return the welcome prompt."""
    return await service.start(conversation_id)


@router.post("/{conversation_id}/messages", response_model=MessageResponse)
async def post_message(
    conversation_id: str,
    request: MessageRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> MessageResponse:
    """Handle one user message.

    The reply lists the actions to render (answer, choice, suggestions,
    prompt or apology). Upstream failures never surface as HTTP errors; they
    produce an apology and the conversation stays usable.
    """
    return await service.handle_message(conversation_id, request)


@router.get("/{conversation_id}", response_model=ConversationSummary)
async def get_conversation(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationSummary:
    """Get the stored state of a conversation."""
    summary = service.summary(conversation_id)
    if summary is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Conversation not found: {conversation_id}",
        )
    return summary
