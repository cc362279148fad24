"""Shared CLI option handling."""

from __future__ import annotations

from transitcache.config import Settings, settings


def resolve_settings(
    backend: str | None = None,
    path: str | None = None,
    namespace: str | None = None,
) -> Settings:
    """Apply command-line overrides on top of environment settings."""
    updates: dict[str, str] = {}
    if backend:
        updates["store_backend"] = backend
    if path:
        updates["store_path"] = path
    if namespace:
        updates["namespace"] = namespace
    return settings.model_copy(update=updates)
