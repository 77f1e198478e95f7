from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coffee_finder.core.exceptions import ConflictError
from coffee_finder.models.kv_entry import KeyValueEntry
from coffee_finder.repositories.interfaces import StoredValue


class SqlAlchemyKeyValueRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, device_id: str, key: str) -> StoredValue | None:
        stmt = select(KeyValueEntry.value, KeyValueEntry.version).where(
            KeyValueEntry.device_id == device_id, KeyValueEntry.key == key
        )
        row = (await self._session.execute(stmt)).one_or_none()
        if row is None:
            return None
        value, version = row
        return StoredValue(value=value, version=int(version))

    async def put(
        self, device_id: str, key: str, value: str, *, expected_version: int | None = None
    ) -> int:
        """Write ``value`` under ``key`` and return the new version."""
        if expected_version is None:
            current = await self.get(device_id, key)
            expected_version = current.version if current else 0

        if expected_version == 0:
            self._session.add(
                KeyValueEntry(device_id=device_id, key=key, value=value, version=1)
            )
            try:
                await self._session.flush()
            except IntegrityError as exc:
                await self._session.rollback()
                raise ConflictError(f"{key} was created concurrently") from exc
            return 1

        stmt = (
            update(KeyValueEntry)
            .where(
                KeyValueEntry.device_id == device_id,
                KeyValueEntry.key == key,
                KeyValueEntry.version == expected_version,
            )
            .values(value=value, version=KeyValueEntry.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConflictError(f"{key} changed since version {expected_version}")
        return expected_version + 1

    async def delete(self, device_id: str, key: str) -> bool:
        stmt = delete(KeyValueEntry).where(
            KeyValueEntry.device_id == device_id, KeyValueEntry.key == key
        )
        result = await self._session.execute(stmt)
        return bool(result.rowcount)

    async def keys(self, device_id: str, *, prefix: str = "") -> list[str]:
        stmt = select(KeyValueEntry.key).where(KeyValueEntry.device_id == device_id)
        if prefix:
            stmt = stmt.where(KeyValueEntry.key.startswith(prefix, autoescape=True))
        rows = (await self._session.execute(stmt.order_by(KeyValueEntry.key.asc()))).scalars()
        return list(rows)
