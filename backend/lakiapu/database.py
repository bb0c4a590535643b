"""Database handle and session dependency"""
import importlib
import logging
from collections.abc import AsyncGenerator
from pathlib import Path

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

MODEL_MODULES = (
    "lakiapu.models.chat",
    "lakiapu.models.feedback",
    "lakiapu.models.legal_document",
)


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _ensure_sqlite_dir(url: str) -> None:
    parts = url.split("///", 1)
    if len(parts) == 2 and parts[1].startswith("./"):
        Path(parts[1]).parent.mkdir(parents=True, exist_ok=True)


class Database:
    """Owns the process-wide engine and session factory.

    Built once at startup (see the app lifespan), stored on `app.state`
    and closed on shutdown.
    """

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        if url.startswith("sqlite"):
            _ensure_sqlite_dir(url)
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, future=True)
        if self.engine.url.get_backend_name() == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def init(self) -> None:
        """Create tables for every registered model"""
        for module_name in MODEL_MODULES:
            _ = importlib.import_module(module_name)
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except DBAPIError as e:
            logger.exception("database init failed url=%s", self.engine.url.render_as_string(hide_password=True))
            raise StoreUnavailableError("Storage is unavailable") from e

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            _ = await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self.engine.dispose()

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the database attached to the running app"""
    database: Database = request.app.state.database
    async for session in database.session():
        yield session
