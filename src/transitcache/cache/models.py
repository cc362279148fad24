"""Cache data model.

TTL is not stored with an entry: every call supplies its own CachePolicy, so
a policy can change between calls without migrating cached rows.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")

# Zero-argument coroutine function returning a JSON-serializable payload
FetchFn = Callable[[], Awaitable[Any]]

# Start refreshing an entry this long before it expires
DEFAULT_REFRESH_THRESHOLD = 120.0


@dataclass
class CacheEntry:
    """One in-memory cache row."""

    key: str
    value: Any
    stored_at: float

    def age(self, now: float) -> float:
        """Seconds since the value was fetched."""
        return now - self.stored_at


@dataclass(frozen=True)
class CachePolicy:
    """Freshness policy supplied with each cache call."""

    ttl: float
    persist: bool = True
    background_refresh: bool = True
    refresh_threshold: float | None = None

    def is_fresh(self, age: float) -> bool:
        """True while an entry of this age may be served."""
        return age < self.ttl

    def needs_background_refresh(
        self, age: float, default_threshold: float = DEFAULT_REFRESH_THRESHOLD
    ) -> bool:
        """True if a fresh entry is close enough to expiry to revalidate.

        ``default_threshold`` applies when the policy sets no threshold.
        """
        if not self.background_refresh:
            return False
        threshold = (
            self.refresh_threshold if self.refresh_threshold is not None else default_threshold
        )
        return age > self.ttl - threshold


class CacheOutcome(str, Enum):
    """How a cache call was resolved."""

    HIT = "hit"
    DURABLE_HIT = "durable_hit"
    FETCHED = "fetched"
    STALE = "stale"
    EMPTY = "empty"


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    """Resolved value of a cache call.

    STALE means the fetch failed and an older value was served instead.
    EMPTY means the fetch failed with nothing to fall back on; ``error``
    holds the exception.
    """

    key: str
    outcome: CacheOutcome
    value: T | None = None
    error: BaseException | None = None

    @property
    def has_value(self) -> bool:
        return self.outcome is not CacheOutcome.EMPTY

    def unwrap(self) -> T | None:
        """Return the value, raising the fetch error for EMPTY results."""
        if self.outcome is CacheOutcome.EMPTY:
            if self.error is not None:
                raise self.error
            raise LookupError(f"No cached value for {self.key}")
        return self.value

    def value_or(self, default: Any) -> Any:
        """Return the value, or ``default`` when empty or None."""
        if self.outcome is CacheOutcome.EMPTY or self.value is None:
            return default
        return self.value


@dataclass(frozen=True)
class PreloadItem:
    """One key to warm through CacheEngine.preload."""

    key: str
    fetch: FetchFn
    policy: CachePolicy | None = None


@dataclass(frozen=True)
class CacheStats:
    """Process-lifetime cache counters."""

    hits: int
    misses: int
    background_refreshes: int
    durable_hits: int
    memory_entries: int
    durable_keys: int

    @property
    def hit_rate(self) -> float:
        """Hit percentage over hits and misses, rounded to 2 places."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return round(self.hits / total * 100, 2)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data


@dataclass(frozen=True)
class KeyStatus:
    """Where a key lives and how old it is."""

    key: str
    exists: bool
    in_memory: bool
    age: float | None

    @property
    def age_formatted(self) -> str | None:
        if self.age is None:
            return None
        return f"{round(self.age)}s"

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "exists": self.exists,
            "in_memory": self.in_memory,
            "age": self.age,
            "age_formatted": self.age_formatted,
        }
