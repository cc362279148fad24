"""Per-key subscriber registry.

Subscribers are plain callables invoked with the freshly fetched value after
every successful fetch of their key, whether the fetch was triggered by a
caller, a background refresh or a periodic timer.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Handler type for value updates
Subscriber = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class SubscriberRegistry:
    """Maps cache keys to the callbacks interested in them."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[Subscriber]] = {}

    def subscribe(self, key: str, callback: Subscriber) -> Unsubscribe:
        """Register a callback for a key.

        Returns a function removing this registration. Calling it again
        after the first time does nothing.
        """
        self._subscribers.setdefault(key, set()).add(callback)
        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            callbacks = self._subscribers.get(key)
            if callbacks is None:
                return
            callbacks.discard(callback)
            if not callbacks:
                del self._subscribers[key]

        return unsubscribe

    def notify(self, key: str, value: Any) -> int:
        """Deliver a value to every subscriber of a key.

        A failing callback is logged and does not stop delivery to the rest.
        Returns the number of callbacks that ran without raising.
        """
        callbacks = self._subscribers.get(key)
        if not callbacks:
            return 0

        delivered = 0
        for callback in list(callbacks):
            try:
                callback(value)
                delivered += 1
            except Exception as e:
                callback_name = getattr(callback, "__name__", callback.__class__.__name__)
                logger.error(f"Subscriber {callback_name} failed for {key}: {e}")
        return delivered

    def count(self, key: str | None = None) -> int:
        """Number of callbacks for a key, or across all keys."""
        if key is not None:
            return len(self._subscribers.get(key, ()))
        return sum(len(callbacks) for callbacks in self._subscribers.values())

    def keys(self) -> list[str]:
        """Keys that currently have at least one subscriber."""
        return list(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()
