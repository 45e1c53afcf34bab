"""FastAPI dependency injection functions."""

import logging
from functools import lru_cache

import httpx

from qnabot.clients.aggregate import AggregateGateway
from qnabot.clients.base import create_http_client
from qnabot.clients.qnamaker import QnAMakerClient
from qnabot.clients.search import SearchClient
from qnabot.clients.spellcheck import SpellcheckClient
from qnabot.config import Settings, load_settings
from qnabot.dialog.machine import ConversationStateMachine
from qnabot.dialog.service import ConversationService
from qnabot.dialog.session import SessionStore

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return load_settings()


_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Get the HTTP client shared by all upstream service clients."""
    global _http_client
    if _http_client is None:
        settings = get_settings()
        _http_client = create_http_client(
            timeout=settings.dialog.gateway_timeout_seconds,
            retries=settings.search.http_retries,
        )
    return _http_client


async def close_http_client() -> None:
    """Close the shared HTTP client (on shutdown)."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


_gateway_instance: AggregateGateway | None = None


def get_gateway() -> AggregateGateway:
    """Get the scoring gateway backed by the search index and QnA service."""
    global _gateway_instance
    if _gateway_instance is None:
        settings = get_settings()
        if settings.search_url is None:
            logger.warning("SEARCH_ENDPOINT/SEARCH_NAME or SEARCH_INDEX_NAME not set")
        client = get_http_client()
        _gateway_instance = AggregateGateway(
            search=SearchClient(client, settings.search_url, settings.search_key),
            qna=QnAMakerClient(client, settings.qnamaker_endpoint, settings.qnamaker_key),
            config=settings.search,
        )
    return _gateway_instance


_spellcheck_instance: SpellcheckClient | None = None


def get_spellcheck() -> SpellcheckClient:
    """Get the spell-check client (a pass-through when not configured)."""
    global _spellcheck_instance
    if _spellcheck_instance is None:
        settings = get_settings()
        client = None
        if settings.spellcheck_enabled:
            client = get_http_client()
        _spellcheck_instance = SpellcheckClient(
            client,
            settings.spellcheck_endpoint,
            settings.spellcheck_key,
            mode=settings.spellcheck_mode,
            market=settings.spellcheck_mkt,
        )
    return _spellcheck_instance


_session_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """Get the in-memory conversation store."""
    global _session_store
    if _session_store is None:
        settings = get_settings()
        _session_store = SessionStore(
            ttl_minutes=settings.session.ttl_minutes,
            max_conversations=settings.session.max_conversations,
        )
    return _session_store


_conversation_service: ConversationService | None = None


def get_conversation_service() -> ConversationService:
    """Get the conversation service."""
    global _conversation_service
    if _conversation_service is None:
        settings = get_settings()
        machine = ConversationStateMachine(get_gateway(), settings.dialog)
        _conversation_service = ConversationService(
            machine, get_session_store(), spellcheck=get_spellcheck()
        )
    return _conversation_service


def _reset_instances() -> None:
    """Reset cached instances (for testing only)."""
    global _http_client, _gateway_instance, _spellcheck_instance
    global _session_store, _conversation_service
    _http_client = None
    _gateway_instance = None
    _spellcheck_instance = None
    _session_store = None
    _conversation_service = None
    get_settings.cache_clear()
    load_settings.cache_clear()
