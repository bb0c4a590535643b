"""Pytest configuration"""
import asyncio
import inspect
import sys
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from lakiapu.config import Settings
from lakiapu.database import Database, get_db
from lakiapu.main import create_app
from lakiapu.middleware.rate_limit import chat_limiter
from lakiapu.schemas.chat import Confidence
from lakiapu.services.answer_generation import FileSummary, GeneratedAnswer
from lakiapu.services.retrieval import RetrievedSource
from lakiapu.services.storage_service import LocalStorageProvider

# in-memory database, one per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeRetriever:
    """Retrieval collaborator returning canned hits"""

    corpora: tuple[str, ...] = ("finlex", "kkv")

    def __init__(self) -> None:
        self.results: list[RetrievedSource] = []
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.delay: float = 0.0

    async def search(self, query: str) -> list[RetrievedSource]:
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.results)


class FakeGenerator:
    """Answer-generation collaborator returning a canned answer"""

    configured: bool = True

    def __init__(self) -> None:
        self.answer: GeneratedAnswer = GeneratedAnswer(
            answer="Kuluttajalla on 14 päivän peruuttamisoikeus etämyynnissä.",
            confidence=Confidence(score=0.8, reasoning="Covered by the Consumer Protection Act"),
            sources=[],
        )
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None
        self.delay: float = 0.0

    async def generate(
        self,
        question: str,
        context: str | None = None,
        file_summaries: list[FileSummary] | None = None,
        language_mode: Any = "regular",
    ) -> GeneratedAnswer:
        self.calls.append(
            {
                "question": question,
                "context": context,
                "file_summaries": list(file_summaries or []),
                "language_mode": language_mode,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        upload_dir=str(tmp_path / "uploads"),
        log_dir=str(tmp_path / "logs"),
        rate_limit_per_minute=10000,
        rate_limit_per_second=10000,
        retrieval_timeout_seconds=1.0,
        generation_timeout_seconds=1.0,
    )


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    db = Database(TEST_DATABASE_URL)
    await db.init()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def test_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def fake_retriever() -> FakeRetriever:
    return FakeRetriever()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def storage(settings: Settings) -> LocalStorageProvider:
    return LocalStorageProvider(base_dir=settings.upload_dir, api_prefix="/api/v1/uploads")


@pytest.fixture
def app(
    settings: Settings,
    fake_retriever: FakeRetriever,
    fake_generator: FakeGenerator,
    storage: LocalStorageProvider,
    database: Database,
) -> FastAPI:
    application = create_app(
        settings,
        retriever=fake_retriever,
        generator=fake_generator,  # type: ignore[arg-type]
        storage=storage,
    )
    application.state.database = database
    chat_limiter.reset()
    return application


def make_transport(app: FastAPI) -> ASGITransport:
    transport_kwargs: dict[str, Any] = {"app": app}
    if "lifespan" in inspect.signature(ASGITransport.__init__).parameters:
        transport_kwargs["lifespan"] = "off"
    return ASGITransport(**transport_kwargs)


@pytest_asyncio.fixture
async def client(app: FastAPI, test_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=make_transport(app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
