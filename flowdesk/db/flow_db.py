from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel

from . import models  # noqa: F401  registers the tables on SQLModel.metadata


def to_async_url(database_url: str) -> str:
    """Map a plain ``sqlite://`` or ``postgres://`` URL onto an async driver."""

    if database_url.startswith(("sqlite+", "postgresql+")):
        return database_url
    if database_url.startswith("sqlite://"):
        # everything after the scheme is a filesystem path
        path = database_url.replace("sqlite://", "", 1)
        return f"sqlite+aiosqlite:///{path}"
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    raise ValueError(f"Unsupported database backend: {database_url}")


class FlowDB:
    """Simple async database helper for flow persistence."""

    def __init__(self, database_url: str) -> None:
        self.database_url = to_async_url(database_url)
        connect_args = (
            {"check_same_thread": False}
            if self.database_url.startswith("sqlite")
            else {}
        )
        self.engine = create_async_engine(
            self.database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False

    async def init_db(self) -> None:
        if self._initialized:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        await self.init_db()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    async def dispose(self) -> None:
        await self.engine.dispose()
