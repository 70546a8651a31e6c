import os

# Settings are read at import time; keep tests off Postgres and out of dev mode
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["APP_MODE"] = "production"

import asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.main import app
from src.artifacts.service import ArtifactService
from src.chat.persistence import MessagePersistence, SqlMessageRepository
from src.database import Base
from src.llm.factory import ModelSelection
from src.patents.store import PatentDocumentStore
from src.providers.sandbox import ExecutionResult
from src.providers.search import SearchResult


PATENT_A = """# Solid-state lithium battery with ceramic separator

**Patent Number:** US 11,234,567 B2
**Publication Date:** 2023-05-02
**Application Number:** 16,987,654
**Filing Date:** 2021-01-15
**Number of Claims:** 20

### Assignees
- **QuantumScape Corporation** (San Jose, CA)

### Inventors
- **Jane Smith**
- **John Doe**

## Abstract

A solid-state lithium battery comprising a ceramic electrolyte separator that suppresses dendrite growth during fast charging.

## Description

The invention relates to rechargeable batteries with a garnet-type oxide separator.

## Claims

1. A battery comprising an anode, a cathode and a ceramic separator.
2. The battery of claim 1, wherein the separator is garnet-type.
"""

PATENT_B = """# Thermal management system for battery packs

**Patent Number:** US 10,555,123 B1
**Publication Date:** 2020-02-11
**Filing Date:** 2018-06-30

### Assignees
- **Tesla, Inc.** (Austin, TX)

## Abstract

A cooling loop arrangement that routes coolant between cylindrical cells to keep the pack within a safe temperature window.

## Claims

1. A battery pack comprising a coolant channel between cells.
"""


def make_result(content: str, title: str, url: str, score: float = 0.9) -> SearchResult:
    return SearchResult(title=title, url=url, content=content, relevance_score=score, source="valyu/valyu-patents")


class FakeClock:
    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeSearchProvider:
    def __init__(self, results: Optional[List[SearchResult]] = None, error: Optional[Exception] = None):
        self.results = results or []
        self.error = error
        self.queries: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.called = asyncio.Event()

    async def search(self, query, *, max_results, included_sources=None):
        self.queries.append(query)
        self.called.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return self.results[:max_results]


class FakeSandbox:
    def __init__(self, provider: "FakeSandboxProvider"):
        self.provider = provider

    async def run(self, code: str) -> ExecutionResult:
        self.provider.executed.append(code)
        if self.provider.error:
            raise self.provider.error
        return self.provider.result

    async def destroy(self) -> None:
        self.provider.released += 1


class FakeSandboxProvider:
    def __init__(self, result: Optional[ExecutionResult] = None, error: Optional[Exception] = None):
        self.result = result or ExecutionResult(exit_code=0, stdout="42\n")
        self.error = error
        self.provisioned = 0
        self.released = 0
        self.executed: List[str] = []

    async def create(self) -> FakeSandbox:
        self.provisioned += 1
        return FakeSandbox(self)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """File-backed SQLite so concurrent per-operation sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def patent_store(session_factory, clock) -> PatentDocumentStore:
    return PatentDocumentStore(session_factory, ttl=timedelta(hours=1), clock=clock)


@pytest.fixture
def artifact_service(session_factory) -> ArtifactService:
    return ArtifactService(session_factory)


@pytest.fixture
def message_repository(session_factory) -> SqlMessageRepository:
    return SqlMessageRepository(session_factory)


@pytest.fixture
def message_persistence(message_repository) -> MessagePersistence:
    return MessagePersistence(message_repository)


@pytest.fixture
def search_provider() -> FakeSearchProvider:
    return FakeSearchProvider([
        make_result(PATENT_A, "Solid-state lithium battery with ceramic separator", "https://patents.example/US11234567B2"),
        make_result(PATENT_B, "Thermal management system for battery packs", "https://patents.example/US10555123B1", 0.8),
    ])


@pytest.fixture
def sandbox_provider() -> FakeSandboxProvider:
    return FakeSandboxProvider()


@pytest_asyncio.fixture(scope="function")
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Client for testing API endpoints."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


class FakeChatModel:
    """Replays scripted streaming steps, one per model call."""

    def __init__(
        self,
        steps: List[list],
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
        hang_after: Optional[int] = None,
    ):
        self.steps = steps
        self.fail_after = fail_after
        self.error = error
        self.hang_after = hang_after
        self.histories: List[list] = []
        self.bound_tools: Optional[list] = None

    def bind_tools(self, tools):
        self.bound_tools = tools
        return self

    async def astream(self, history):
        self.histories.append(list(history))
        index = min(len(self.histories), len(self.steps)) - 1
        for position, chunk in enumerate(self.steps[index]):
            if self.fail_after is not None and position == self.fail_after:
                raise self.error
            if self.hang_after is not None and position == self.hang_after:
                # Stands in for a provider that stops sending mid-answer
                await asyncio.Event().wait()
            yield chunk


class FakeSelector:
    def __init__(self, model=None, error: Optional[Exception] = None):
        self.model = model
        self.error = error

    async def select(self, prefs=None):
        if self.error:
            raise self.error
        return ModelSelection(client=self.model, model_name="fake-model", provider="Fake")
