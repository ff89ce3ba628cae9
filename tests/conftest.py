"""Shared pytest fixtures for all test suites."""

import os
import re
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from backend.app.db.inmemory import InMemoryChatHistoryStore, InMemoryDocumentStore
from backend.app.db.models import Base
from backend.app.errors import RAGError

# Keyword axes for the deterministic test embedder
EMBEDDING_VOCAB = ("registration", "fees", "library", "lab", "internship", "deadline")


class FakeEmbedder:
    """Deterministic embedder: one dimension per vocabulary word.

    Any text containing a string listed in ``fail_on`` raises ``error``.
    """

    def __init__(self, error: Exception | None = None, fail_on: tuple[str, ...] = ()) -> None:
        self.error = error
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None and (not self.fail_on or any(m in text for m in self.fail_on)):
            raise self.error
        words = re.findall(r"\w+", text.lower())
        return [float(words.count(term)) + 0.01 for term in EMBEDDING_VOCAB]


class FakeGenerator:
    """Generation client returning a canned answer and recording prompts."""

    def __init__(self, answer: str = "Go to the registrar office.", error: RAGError | None = None) -> None:
        self.answer = answer
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def embedder_factory() -> type[FakeEmbedder]:
    """The fake embedder class, for tests that configure failures."""
    return FakeEmbedder


@pytest.fixture
def generator_factory() -> type[FakeGenerator]:
    """The fake generator class, for tests that configure failures."""
    return FakeGenerator


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def history_store() -> InMemoryChatHistoryStore:
    return InMemoryChatHistoryStore()


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with all tables created.

    A file database is shared by every pooled connection, unlike :memory:.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(sqlite_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_session(postgres_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(postgres_engine, expire_on_commit=False) as session:
        yield session
        await session.rollback()
