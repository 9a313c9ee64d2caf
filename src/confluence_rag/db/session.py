"""
Database Session Management

Builds the async SQLAlchemy engine and session factory for PostgreSQL, and
bootstraps the schema. Nothing is created at import time: the composition
root (application lifespan or script) owns the engine and passes the session
factory to the components that need it.
"""

from __future__ import annotations

from typing import Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from .models import Base


def create_session_factory(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create the async engine and its session factory.

    The engine's pool is the only shared mutable resource in the process;
    the reconciler and request handlers each check out their own sessions.
    """
    engine = create_async_engine(
        database_url,
        echo=echo,  # Set True for SQL debugging
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    return engine, session_factory


async def init_db(engine: AsyncEngine) -> None:
    """
    Ensure the pgvector extension, table, unique key and vector index exist.
    """
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
