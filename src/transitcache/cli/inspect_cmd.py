"""CLI command for listing durable cache entries.

Usage:
    transitcache inspect
    transitcache inspect --backend local --path ./cache
    transitcache inspect --format json
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import TypedDict

import orjson
import typer
from rich.console import Console
from rich.table import Table

from transitcache.cache.keys import CacheKeys
from transitcache.cli.options import resolve_settings
from transitcache.storage.base import DurableStore
from transitcache.storage.factory import create_store


class EntryRow(TypedDict):
    key: str
    age: float | None
    size: int


app = typer.Typer(help="List durable cache entries")


@app.callback(invoke_without_command=True)
def inspect(
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
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """List cached entries with their age and size."""
    console = Console()
    config = resolve_settings(backend, path, namespace)
    store = create_store(config)

    rows = asyncio.run(_collect(store, config.namespace, time.time()))

    if output_format == "json":
        console.print(json.dumps(rows, indent=2))
        return

    if not rows:
        console.print(f"[yellow]No cache entries in namespace {config.namespace}[/yellow]")
        return

    table = Table(title=f"Cache entries ({config.namespace})")
    table.add_column("Key")
    table.add_column("Age", justify="right")
    table.add_column("Size", justify="right")
    for row in rows:
        age = f"{round(row['age'])}s" if row["age"] is not None else "-"
        table.add_row(row["key"], age, str(row["size"]))
    console.print(table)


async def _collect(store: DurableStore, namespace: str, now: float) -> list[EntryRow]:
    """Read every entry of a namespace together with its index timestamp."""
    try:
        index_key = CacheKeys.timestamp_index(namespace)
        timestamps: dict[str, float] = {}
        raw_index = await store.get(index_key)
        if raw_index:
            try:
                parsed = orjson.loads(raw_index)
            except orjson.JSONDecodeError:
                parsed = {}
            if isinstance(parsed, dict):
                timestamps = {
                    k: float(v) for k, v in parsed.items() if isinstance(v, (int, float))
                }

        rows: list[EntryRow] = []
        for durable_key in sorted(await store.list_keys()):
            if durable_key == index_key:
                continue
            key = CacheKeys.strip_namespace(namespace, durable_key)
            if key is None:
                continue
            value = await store.get(durable_key)
            stored_at = timestamps.get(key)
            rows.append(
                {
                    "key": key,
                    "age": now - stored_at if stored_at is not None else None,
                    "size": len(value or ""),
                }
            )
        return rows
    finally:
        await store.close()
