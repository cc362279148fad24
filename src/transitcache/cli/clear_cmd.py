"""CLI command for clearing cache entries.

Usage:
    transitcache clear
    transitcache clear --key live_buses
    transitcache clear --backend redis
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from transitcache.cache.engine import CacheEngine
from transitcache.cli.options import resolve_settings
from transitcache.config import Settings

app = typer.Typer(help="Clear cache entries")


@app.callback(invoke_without_command=True)
def clear(
    key: str | None = typer.Option(
        None,
        "--key",
        "-k",
        help="Clear only this cache key",
    ),
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Store backend: memory, local, redis (default from settings)",
    ),
    path: str | None = typer.Option(
        None,
        "--path",
        "-p",
        help="Directory of the local store",
    ),
    namespace: str | None = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Cache namespace prefix",
    ),
) -> None:
    """Remove one cache key, or every entry in the namespace."""
    console = Console()
    config = resolve_settings(backend, path, namespace)

    asyncio.run(_clear(config, key))

    if key:
        console.print(f"[green]Cleared[/green] {key}")
    else:
        console.print(f"[green]Cleared all entries in[/green] {config.namespace}")


async def _clear(config: Settings, key: str | None) -> None:
    engine = CacheEngine.from_settings(config)
    try:
        await engine.clear(key)
    finally:
        await engine.close()
