"""Redis durable store.

Uses the redis-py async client. Values are stored as UTF-8 text without
expiry; freshness is decided by the cache engine, not by Redis TTLs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import redis.asyncio as redis

from transitcache.storage.base import DurableStore

if TYPE_CHECKING:
    from redis.asyncio import Redis


def create_redis_client(url: str) -> Redis:
    """Create a Redis client returning decoded strings."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
    )


class RedisStore(DurableStore):
    """Redis-backed store.

    ``match`` limits ``list_keys`` to a key pattern so a shared database
    is not scanned in full; the default covers every key.
    """

    def __init__(self, client: Redis, match: str = "*", owns_client: bool = False):
        self.client = client
        self.match = match
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str, namespace: str | None = None) -> "RedisStore":
        """Create a store with its own client, scanning only ``namespace``."""
        match = f"{namespace}*" if namespace else "*"
        return cls(create_redis_client(url), match=match, owns_client=True)

    async def get(self, key: str) -> str | None:
        value = await self.client.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        await self.client.set(key, value)

    async def remove(self, key: str) -> None:
        await self.client.delete(key)

    async def remove_many(self, keys: list[str]) -> int:
        if not keys:
            return 0
        await self.client.delete(*keys)
        return len(keys)

    async def list_keys(self) -> list[str]:
        # Use SCAN to avoid blocking on large keyspaces
        keys: list[str] = []
        async for key in self.client.scan_iter(match=self.match):
            keys.append(key.decode("utf-8") if isinstance(key, bytes) else key)
        return keys

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
