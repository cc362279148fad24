"""Process-local durable store.

Holds serialized values in a dict. Survives clearing the engine's memory
tier but not the process, which makes it the store of choice for tests.
"""

from __future__ import annotations

from transitcache.storage.base import DurableStore


class InMemoryStore(DurableStore):
    """Dict-backed store."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(data or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data
