# coffee_finder/db.py
from __future__ import annotations

from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from coffee_finder.core.config import get_settings

engine: AsyncEngine
SessionLocal: async_sessionmaker[AsyncSession]


def _apply_async_scheme(database_url: str) -> str:
    if database_url.startswith("postgresql+psycopg://"):
        return database_url.replace("postgresql+psycopg://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql+psycopg2://"):
        return database_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://") and not database_url.startswith("sqlite+"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_engine_for(database_url: str) -> AsyncEngine:
    url = make_url(_apply_async_scheme(database_url))
    connect_args: dict = {}

    if url.get_backend_name() == "postgresql" and url.get_driver_name() == "asyncpg":
        query = dict(url.query)
        if "sslmode" in query:
            # asyncpg takes the ssl mode as a connect argument
            connect_args["ssl"] = query.pop("sslmode")
        query.pop("channel_binding", None)
        url = url._replace(query=query)
        return create_async_engine(url, pool_pre_ping=True, connect_args=connect_args)

    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        # A single shared connection keeps the in-memory database alive
        return create_async_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, pool_pre_ping=True)


def configure_engine(database_url: str | None = None) -> AsyncEngine:
    """Configure SQLAlchemy engine and session factory."""

    global engine, SessionLocal

    engine = create_engine_for(database_url or get_settings().database_url)
    SessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine


configure_engine()
