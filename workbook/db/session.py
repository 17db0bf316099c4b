from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from workbook.config import DatabaseSettings, database_settings
from workbook.db.models import Base


def get_async_engine(settings: DatabaseSettings = database_settings) -> AsyncEngine:
    """Creates an asynchronous SQLAlchemy engine instance."""
    kwargs = {"echo": settings.echo}
    if not settings.url.startswith("sqlite"):
        # SQLite uses a static/null pool; sizing only applies to server databases
        kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True, pool_recycle=1800)
    return create_async_engine(settings.url, **kwargs)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Creates an asynchronous session factory."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def session_scope(factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """
    Yields a session that commits on success and rolls back on error.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
