"""Transaction boundary for the per-device key/value store."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coffee_finder.repositories.interfaces import KeyValueRepository
from coffee_finder.repositories.kv_store import SqlAlchemyKeyValueRepository


class UnitOfWork(Protocol, AbstractAsyncContextManager["UnitOfWork"]):
    """One read-transform-write cycle; commits on clean exit, rolls back otherwise."""

    kv: KeyValueRepository


class SqlAlchemyUnitOfWork(UnitOfWork):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self.kv: KeyValueRepository

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        self._session = self._session_factory()
        self.kv = SqlAlchemyKeyValueRepository(self._session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            if exc_type is None:
                await session.commit()
            else:
                await session.rollback()
        finally:
            await session.close()
