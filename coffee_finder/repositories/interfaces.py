"""Repository abstractions for the service layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class StoredValue:
    value: str
    version: int


class KeyValueRepository(Protocol):
    """String key/value storage scoped to one client device.

    ``expected_version`` on writes is an optimistic concurrency token: ``0`` means the key
    must not exist yet, a positive integer must match the stored version, ``None`` skips
    the check.
    """

    async def get(self, device_id: str, key: str) -> StoredValue | None: ...

    async def put(
        self, device_id: str, key: str, value: str, *, expected_version: int | None = None
    ) -> int: ...

    async def delete(self, device_id: str, key: str) -> bool: ...

    async def keys(self, device_id: str, *, prefix: str = "") -> list[str]: ...
