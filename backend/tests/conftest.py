"""Shared pytest fixtures for all tests."""

import pytest

from fakes import FakeGateway, make_answer, make_context
from qnabot.config import default_dialog_config, load_settings
from qnabot.dialog.gateway import SearchResult
from qnabot.dialog.machine import ConversationStateMachine
from qnabot.dialog.models import ConversationState


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Clear the load_settings cache around each test."""
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


@pytest.fixture
def dialog_config():
    """Dialog thresholds at their schema defaults.

    qna_min_confidence=0.4, qna_confidence_prompt=0.6,
    choice_confidence_delta=0.2, answer_uncertain_warning=0.85.
    """
    return default_dialog_config()


@pytest.fixture
def gateway():
    """Fake gateway with no results configured."""
    return FakeGateway()


@pytest.fixture
def machine(gateway, dialog_config):
    """State machine wired to the fake gateway."""
    return ConversationStateMachine(gateway, dialog_config)


@pytest.fixture
def billing():
    return make_context(
        "Billing", score=0.9, questions=["How do I pay?", "How do I cancel?"]
    )


@pytest.fixture
def accounts():
    return make_context("Accounts", score=0.7, questions=["How do I reset my password?"])


@pytest.fixture
def new_state():
    return ConversationState.new("conv-1")


@pytest.fixture
def single_answer_result(billing):
    """Top-level result with one confident context (no disambiguation)."""
    return SearchResult(
        answers=[make_answer("Billing", 0.9, question="How do I reset my password?")],
        contexts=[billing],
        score=0.9,
    )
