"""Base durable store interface.

Defines the key-value persistence capability the cache engine writes
through to. Values are serialized text; the engine handles encoding of its
payloads before calling the store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class DurableStore(ABC):
    """Abstract base class for durable key-value stores."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Read a value.

        Returns:
            The stored text, or None if the key is absent
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one."""
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        ...

    @abstractmethod
    async def list_keys(self) -> list[str]:
        """Return every key currently held by the store."""
        ...

    async def remove_many(self, keys: list[str]) -> int:
        """Remove several keys.

        Returns:
            Number of keys passed to remove
        """
        for key in keys:
            await self.remove(key)
        return len(keys)

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
