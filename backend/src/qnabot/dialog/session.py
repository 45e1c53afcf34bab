"""Conversation session storage with per-conversation turn serialization."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from qnabot.dialog.models import ConversationState, StateVersionError

logger = logging.getLogger(__name__)


@dataclass
class ConversationRecord:
    """Stored snapshot of one conversation.

    The snapshot is kept in serialized form so that no live object is shared
    between the store and a turn in progress.
    """

    snapshot: dict[str, Any]
    created_at: datetime = field(default_factory=datetime.now)
    last_accessed: datetime = field(default_factory=datetime.now)

    def is_expired(self, ttl_minutes: int) -> bool:
        """Check if the conversation has been idle longer than the TTL."""
        expiry = self.last_accessed + timedelta(minutes=ttl_minutes)
        return datetime.now() > expiry

    def touch(self) -> None:
        """Update last_accessed timestamp."""
        self.last_accessed = datetime.now()


class SessionStore:
    """In-memory store for conversation state.

    Conversations expire after `ttl_minutes` of inactivity. Each conversation
    also gets an asyncio.Lock; holding it for a whole load/handle/save cycle
    keeps turns of the same conversation strictly sequential while different
    conversations proceed in parallel.
    """

    def __init__(self, ttl_minutes: int = 60, max_conversations: int = 10_000) -> None:
        """Initialize empty session store.

        Args:
            ttl_minutes: Idle time after which a conversation is forgotten.
            max_conversations: Upper bound on stored conversations; the least
                recently used ones are evicted first.
        """
        self._ttl_minutes = ttl_minutes
        self._max_conversations = max_conversations
        self._records: OrderedDict[str, ConversationRecord] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._records)

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Get the lock that serializes turns for a conversation."""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def get(self, conversation_id: str) -> ConversationState | None:
        """Get the stored state, or None if missing, expired or unreadable."""
        record = self._records.get(conversation_id)
        if record is None:
            return None
        if record.is_expired(self._ttl_minutes):
            del self._records[conversation_id]
            return None

        try:
            state = ConversationState.from_dict(record.snapshot)
        except StateVersionError as e:
            logger.warning(f"Discarding conversation {conversation_id}: {e}")
            del self._records[conversation_id]
            return None

        record.touch()
        self._records.move_to_end(conversation_id)
        return state

    def load(self, conversation_id: str) -> ConversationState:
        """Get the stored state, creating a fresh one for a new conversation."""
        state = self.get(conversation_id)
        if state is None:
            state = ConversationState.new(conversation_id)
        return state

    def save(self, state: ConversationState) -> None:
        """Replace the stored snapshot for a conversation."""
        record = self._records.get(state.conversation_id)
        if record is None:
            # New conversations sweep out idle ones before taking a slot
            removed = self.cleanup_expired()
            if removed:
                logger.debug(f"Removed {removed} expired conversation(s)")
            self._records[state.conversation_id] = ConversationRecord(snapshot=state.to_dict())
        else:
            record.snapshot = state.to_dict()
            record.touch()
            self._records.move_to_end(state.conversation_id)

        while len(self._records) > self._max_conversations:
            evicted_id, _ = self._records.popitem(last=False)
            self._drop_lock(evicted_id)

    def cleanup_expired(self) -> int:
        """Remove all expired conversations.

        Returns:
            Number of conversations removed.
        """
        expired_ids = [
            cid for cid, record in self._records.items() if record.is_expired(self._ttl_minutes)
        ]
        for cid in expired_ids:
            del self._records[cid]
            self._drop_lock(cid)
        return len(expired_ids)

    def _drop_lock(self, conversation_id: str) -> None:
        lock = self._locks.get(conversation_id)
        if lock is not None and not lock.locked():
            del self._locks[conversation_id]
