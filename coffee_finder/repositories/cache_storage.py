"""Database-backed storage for the offline shell cache."""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coffee_finder.models.shell_cache_entry import ShellCacheEntry
from coffee_finder.services.shell_cache import CachedResponse


class SqlAlchemyCacheStorage:
    """Cache generations stored as rows keyed by (cache_name, request_key).

    A generation exists as long as it has at least one entry, so ``open`` has nothing
    to create.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def open(self, name: str) -> None:
        return None

    async def match(self, name: str, key: str) -> CachedResponse | None:
        async with self._session_factory() as session:
            row = await session.get(ShellCacheEntry, (name, key))
            if row is None:
                return None
            return CachedResponse(
                status=int(row.status),
                body=bytes(row.body),
                headers=dict(row.headers or {}),
                type="basic",
                url=key,
            )

    async def put(self, name: str, key: str, response: CachedResponse) -> None:
        async with self._session_factory() as session:
            await session.merge(
                ShellCacheEntry(
                    cache_name=name,
                    request_key=key,
                    status=response.status,
                    headers=dict(response.headers),
                    body=response.body,
                )
            )
            await session.commit()

    async def names(self) -> list[str]:
        async with self._session_factory() as session:
            rows = await session.execute(
                select(ShellCacheEntry.cache_name).distinct().order_by(ShellCacheEntry.cache_name)
            )
            return list(rows.scalars())

    async def delete(self, name: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ShellCacheEntry).where(ShellCacheEntry.cache_name == name)
            )
            await session.commit()
            return bool(result.rowcount)
