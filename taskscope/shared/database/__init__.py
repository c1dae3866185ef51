"""Async SQLAlchemy session factory."""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


class DatabaseSessionManager:
    """Manages async database engine and session factory."""

    def __init__(self) -> None:
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None

    def init(self, database_url: str, echo: bool = False) -> None:
        engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
        # SQLite pools do not take sizing arguments
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(pool_size=20, max_overflow=10)

        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        if not self.engine:
            raise RuntimeError("DatabaseSessionManager not initialized")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
        self.engine = None
        self.session_factory = None

    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Yield one unit of work: commit on success, roll back on any error."""
        if not self.session_factory:
            raise RuntimeError("DatabaseSessionManager not initialized")
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


# Global instance; the app lifespan calls db_manager.init(url) at startup
db_manager = DatabaseSessionManager()
