"""
Database session configuration.

The engine and session factory live on a Database object that the
application creates at startup and disposes at shutdown, so nothing holds a
process-global connection pool.
"""

from typing import AsyncIterator
from fastapi import Request
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

# Create declarative base for models
Base = declarative_base()


class Database:
    """Owns one async engine and the session factory bound to it."""

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        self.engine = create_async_engine(url, future=True, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    database = get_database(request)
    async with database.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
