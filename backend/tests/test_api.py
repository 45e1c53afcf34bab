"""Conversation and health endpoint tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from fakes import make_answer
from qnabot.api.deps import _reset_instances, get_conversation_service, get_gateway
from qnabot.constants.dialog import WELCOME_MESSAGE
from qnabot.dialog.gateway import UpstreamUnavailable
from qnabot.dialog.service import ConversationService
from qnabot.dialog.session import SessionStore
from qnabot.main import app
from qnabot.state import get_app_state, reset_app_state


@pytest.fixture(autouse=True)
def reset_app():
    """Fresh dependency instances and readiness flag for each test."""
    _reset_instances()
    reset_app_state()
    yield
    app.dependency_overrides.clear()
    _reset_instances()
    reset_app_state()


@pytest.fixture
def service(machine):
    service = ConversationService(machine, SessionStore())
    app.dependency_overrides[get_conversation_service] = lambda: service
    return service


@pytest.fixture
async def client():
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


class TestConversationEndpoints:
    """Tests for /api/conversations endpoints."""

    @pytest.mark.asyncio
    async def test_start_returns_welcome(self, client, service):
        response = await client.post("/api/conversations/conv-1/start")

        assert response.status_code == 200
        data = response.json()
        assert data["conversation_id"] == "conv-1"
        assert data["dialog_state"] == "welcome"
        assert data["actions"] == [{"kind": "prompt", "text": WELCOME_MESSAGE}]

    @pytest.mark.asyncio
    async def test_message_returns_answer(self, client, service, gateway, single_answer_result):
        gateway.search_result = single_answer_result

        response = await client.post(
            "/api/conversations/conv-1/messages", json={"text": "reset password"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == 1
        [action] = data["actions"]
        assert action["kind"] == "answer"
        assert action["context_name"] == "Billing"
        assert action["uncertain"] is False

    @pytest.mark.asyncio
    async def test_suggestion_selection_round_trip(
        self, client, service, gateway, single_answer_result
    ):
        """A suggestion's selection token can be posted back as-is."""
        gateway.search_result = single_answer_result
        gateway.context_answers["Billing"] = [make_answer("Billing", 0.5)]
        gateway.relevant_answers = [
            make_answer("Billing", 0.55, question="How do I cancel?"),
            make_answer("Accounts", 0.5, question="How do I close my account?"),
        ]
        await client.post("/api/conversations/conv-1/messages", json={"text": "reset password"})
        response = await client.post(
            "/api/conversations/conv-1/messages", json={"text": "cancel"}
        )
        [suggestions] = response.json()["actions"]
        assert suggestions["kind"] == "suggestions"

        gateway.context_answers["Billing"] = [make_answer("Billing", 0.9)]
        response = await client.post(
            "/api/conversations/conv-1/messages",
            json={"selection": suggestions["suggestions"][0]["selection"]},
        )

        data = response.json()
        assert data["dialog_state"] == "followup_question"
        assert data["actions"][0]["kind"] == "answer"
        assert gateway.calls[-1] == ("score_context", "Billing", "How do I cancel?")

    @pytest.mark.asyncio
    async def test_upstream_failure_is_an_apology_not_an_error(self, client, service, gateway):
        gateway.fail.add("search_and_score")

        response = await client.post(
            "/api/conversations/conv-1/messages", json={"text": "reset password"}
        )

        assert response.status_code == 200
        assert response.json()["actions"][0]["kind"] == "message"

    @pytest.mark.asyncio
    async def test_negative_choice_index_is_rejected(self, client, service):
        response = await client.post(
            "/api/conversations/conv-1/messages", json={"choice_index": -1}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_conversation(self, client, service, gateway, single_answer_result):
        gateway.search_result = single_answer_result
        await client.post("/api/conversations/conv-1/messages", json={"text": "reset password"})

        response = await client.get("/api/conversations/conv-1")

        assert response.status_code == 200
        assert response.json()["selected_context"] == "Billing"
        assert response.json()["contexts"] == ["Billing"]

    @pytest.mark.asyncio
    async def test_get_unknown_conversation_is_404(self, client, service):
        response = await client.get("/api/conversations/missing")

        assert response.status_code == 404


class TestHealthEndpoints:
    """Tests for /health and /healthz."""

    @pytest.mark.asyncio
    async def test_health_check_returns_healthy(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_readiness_probes_gateway(self, client):
        gateway = MagicMock()
        gateway.ping = AsyncMock()
        app.dependency_overrides[get_gateway] = lambda: gateway

        response = await client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}
        assert get_app_state().upstream_ready
        gateway.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_readiness_reports_unavailable(self, client):
        gateway = MagicMock()
        gateway.ping = AsyncMock(side_effect=UpstreamUnavailable("search down"))
        app.dependency_overrides[get_gateway] = lambda: gateway

        response = await client.get("/healthz")

        assert response.status_code == 503
        assert response.json() == {"status": "unavailable"}

    @pytest.mark.asyncio
    async def test_readiness_skips_probe_once_ready(self, client):
        gateway = MagicMock()
        gateway.ping = AsyncMock()
        app.dependency_overrides[get_gateway] = lambda: gateway
        get_app_state().upstream_ready = True

        response = await client.get("/healthz")

        assert response.status_code == 200
        gateway.ping.assert_not_awaited()
