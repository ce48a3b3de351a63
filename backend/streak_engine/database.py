"""
Streak Engine — Database Engine & Session Lifecycle
=====================================================

What:  Declarative base, engine construction and the scoped store lifecycle.
Why:   Every run (HTTP trigger or cron CLI) gets an explicit store handle that
       is created for the run and disposed on exit, instead of a client tied
       to the process lifetime.
How:   `create_store_engine()` builds an async engine from Settings;
       `open_store()` wraps it in a StreakStore and disposes it afterwards.

Connection Pooling Strategy:
    pool_size + max_overflow bound the connections a run can hold. The job's
    fan-out width (job_max_concurrency) should stay at or below pool_size so
    workers do not queue on the pool.
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from streak_engine.config import Settings

if TYPE_CHECKING:
    from streak_engine.services.streak_store import StreakStore


class Base(DeclarativeBase):
    """Base class for all ORM models; its metadata is what Alembic tracks."""
    pass


def create_store_engine(config: Settings) -> AsyncEngine:
    """
    Build an async engine for the configured store.

    SQLite (used in development and tests) does not accept pool sizing
    arguments, so they are only passed for server databases.
    """
    kwargs = {
        "echo": config.log_level == "DEBUG",
        "pool_pre_ping": config.db_pool_pre_ping,
    }
    if not config.is_sqlite:
        kwargs.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_recycle=3600,
        )
    return create_async_engine(config.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows are read inside a short transaction and
    # used after it closes
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables directly. Development and tests only; production uses Alembic."""
    # Registers every model with Base.metadata
    from streak_engine.models import circle, profile, sprint, streak  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def open_store(config: Settings) -> AsyncIterator["StreakStore"]:
    """
    Scoped acquisition of the data store handle.

    Usage:
        async with open_store(settings) as store:
            report = await StreakJob(store, settings).run()

    The engine (and its pooled connections) is disposed when the block exits,
    including on error or cancellation.
    """
    from streak_engine.services.streak_store import StreakStore

    engine = create_store_engine(config)
    try:
        yield StreakStore(engine, config)
    finally:
        await engine.dispose()
