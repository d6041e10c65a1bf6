"""
Core pytest configuration and fixtures for PolyChat testing.

This module provides shared test fixtures, fake providers and clocks that
keep the store, dispatcher and orchestrator tests deterministic and offline.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest
from polychat.dispatcher import Dispatcher, RetryPolicy
from polychat.llm import LLM
from polychat.models import ASSISTANT_ROLE, USER_ROLE, Message
from polychat.orchestrator import Orchestrator
from polychat.storage import InMemory
from polychat.store import Store

# ===== FAKES =====


class ScriptedLLM(LLM):
    """LLM that replays a script of responses and exceptions, in order.

    Once the script runs out, the last entry repeats. Every call is recorded
    as ``(messages, model, kwargs)``.
    """

    def __init__(self, script: List[Any] = None):
        self.model = "scripted-v1"
        self.script = list(script or ["Scripted reply"])
        self.calls: List[Dict[str, Any]] = []

    async def generate_response(self, messages, model=None, **kwargs):
        self.calls.append({"messages": messages, "model": model, "kwargs": kwargs})
        index = min(len(self.calls) - 1, len(self.script) - 1)
        step = self.script[index]
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, dict):
            return step
        return {
            "model": model,
            "choices": [{"message": {"role": "assistant", "content": step}}],
            "usage": {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7},
        }

    def extract_content(self, response):
        return response["choices"][0]["message"]["content"]

    def extract_usage(self, response):
        return dict(response.get("usage") or {})


class RecordingSleep:
    """Awaitable sleep that records requested delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class StepClock:
    """UTC clock advancing by ``step`` on every call."""

    def __init__(self, start: datetime = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class StatusError(Exception):
    """Looks like a provider SDK error carrying an HTTP status."""

    def __init__(self, status_code: int, message: str = "provider error"):
        super().__init__(message)
        self.status_code = status_code
        self.body = {"error": {"message": message}}


# ===== STORE FIXTURES =====


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def backend() -> InMemory:
    return InMemory()


@pytest.fixture
def store(backend, clock) -> Store:
    """An in-memory store with a deterministic clock."""
    return Store(storage=backend, clock=clock)


@pytest.fixture
def session(store):
    return store.create_session(model_id="x-ai/grok-4-fast")


@pytest.fixture
def sample_messages(store, session) -> List[Message]:
    """A committed four-message exchange in ``session``."""
    return [
        store.add_message(session.id, USER_ROLE, "Hello, how are you?"),
        store.add_message(
            session.id,
            ASSISTANT_ROLE,
            "I'm doing well, thank you! How can I help you today?",
            model_id="x-ai/grok-4-fast",
            token_count=12,
            response_time_ms=400,
        ),
        store.add_message(session.id, USER_ROLE, "Can you explain quantum computing?"),
        store.add_message(
            session.id,
            ASSISTANT_ROLE,
            "Quantum computing uses quantum mechanics principles...",
            model_id="x-ai/grok-4-fast",
            token_count=20,
            response_time_ms=600,
        ),
    ]


# ===== DISPATCH FIXTURES =====


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def dispatcher(scripted_llm, recording_sleep) -> Dispatcher:
    return Dispatcher(scripted_llm, retry=RetryPolicy(attempts=3, base_delay=1.0), sleep=recording_sleep)


@pytest.fixture
def orchestrator(store, dispatcher) -> Orchestrator:
    return Orchestrator(store, dispatcher, default_model="x-ai/grok-4-fast")


# ===== DIRECTORY FIXTURES =====


@pytest.fixture
def temp_dir():
    """Temporary directory for file-based tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ===== MOCK FIXTURES =====


@pytest.fixture
def mock_layout():
    """Mock layout builder whose tree contains no ids."""
    from dash import html

    mock = MagicMock()
    mock.build_layout.return_value = html.Div(id="test-layout")
    mock.build_messages.return_value = []
    mock.get_external_stylesheets.return_value = []
    mock.get_external_scripts.return_value = []
    return mock


# ===== APP FIXTURES =====


@pytest.fixture
def test_app():
    """
    Provides a PolyChat app with an in-memory store and an offline Echo LLM.

    The loop thread is stopped after the test.
    """
    from polychat import PolyChat
    from polychat.config import Settings
    from polychat.llm import Echo

    app = PolyChat(
        llm=Echo(delay=0),
        store=Store(),
        settings=Settings(api_key="", storage_dir=None, reveal_delay=0.0),
    )
    yield app
    app.shutdown()


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
