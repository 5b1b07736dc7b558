from __future__ import annotations

import asyncio
from itertools import count
from typing import Callable, Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from agent.assistant import RunState
from agent.core.memory import InMemorySessionStore
from agent.core.models import SearchResult
from app.main import create_app
from config.settings import Settings


CONFIG_VARS = [
    "APP_ENV",
    "CHAT_STRATEGY",
    "GOOGLE_API_KEY",
    "GOOGLE_CX",
    "SEARCH_API_URL",
    "SEARCH_TIMEOUT",
    "OPENAI_API_KEY",
    "OPENAI_ASSISTANT_ID",
    "ASSISTANT_POLL_INTERVAL",
    "ASSISTANT_RUN_TIMEOUT",
    "SESSION_MAX_AGE",
    "SESSION_SWEEP_INTERVAL",
    "AUTO_CREATE_SESSIONS",
    "CORS_ORIGINS",
    "HOST",
    "PORT",
]


def make_results(n: int) -> List[SearchResult]:
    return [
        SearchResult(
            name=f"Fachowiec {i}",
            contact=f"+48 600 100 20{i}",
            link=f"https://example.pl/fachowiec-{i}",
        )
        for i in range(n)
    ]


class FakeSearch:
    """Async search stand-in that records every query it receives."""

    def __init__(self, results: Optional[List[SearchResult]] = None) -> None:
        self.results = results if results is not None else make_results(3)
        self.queries: List[str] = []

    async def __call__(self, query: str) -> List[SearchResult]:
        self.queries.append(query)
        return self.results


class FakeAssistantClient:
    """Scripted assistant: ``get_run`` walks through ``states``, repeating the last one."""

    def __init__(self, states: Iterable[RunState], answer: str = "Polecam pana Jana.") -> None:
        self.states = list(states)
        self.answer = answer
        self.threads = count(1)
        self.threads_created = 0
        self.messages: List[tuple] = []
        self.runs_started: List[str] = []
        self.tools: List[Dict] = []
        self.submitted: List[List[Dict[str, str]]] = []
        self.cancelled: List[tuple] = []

    async def create_thread(self) -> str:
        await asyncio.sleep(0)
        self.threads_created += 1
        return f"thread-{next(self.threads)}"

    async def add_user_message(self, thread_id: str, content: str) -> None:
        self.messages.append((thread_id, content))

    async def start_run(self, thread_id: str, tools: List[Dict]) -> RunState:
        self.tools = tools
        self.runs_started.append(thread_id)
        return RunState(id="run-1", status="queued")

    async def get_run(self, thread_id: str, run_id: str) -> RunState:
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: List[Dict[str, str]]) -> RunState:
        self.submitted.append(outputs)
        return RunState(id=run_id, status="queued")

    async def cancel_run(self, thread_id: str, run_id: str) -> RunState:
        self.cancelled.append((thread_id, run_id))
        return RunState(id=run_id, status="cancelling")

    async def latest_message_text(self, thread_id: str) -> str:
        return self.answer


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Clean configuration environment with both providers configured."""
    for name in CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    monkeypatch.setenv("GOOGLE_CX", "engine-id")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_ASSISTANT_ID", "asst_test")
    return monkeypatch


@pytest.fixture
def settings_factory(env: pytest.MonkeyPatch) -> Callable[..., Settings]:
    def _factory(**overrides: str) -> Settings:
        for name, value in overrides.items():
            if value is None:
                env.delenv(name, raising=False)
            else:
                env.setenv(name, value)
        return Settings()

    return _factory


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def client_factory(settings_factory, store):
    """Builds a started TestClient around the given engine."""
    clients: List[TestClient] = []

    def _factory(engine, **overrides: str) -> TestClient:
        app = create_app(settings=settings_factory(**overrides), store=store, engine=engine)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _factory

    for client in clients:
        client.__exit__(None, None, None)
