"""Local filesystem durable store.

Stores one file per key:
    {base_path}/{base64url(key)}.json

Keys are Base64URL-encoded so any cache key maps to a safe file name and the
original key can be recovered when listing.
"""

from __future__ import annotations

import base64
import logging
import os
from pathlib import Path
from typing import cast
from uuid import uuid4

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from transitcache.errors import StoreError
from transitcache.storage.base import DurableStore

logger = logging.getLogger(__name__)

SUFFIX = ".json"


def encode_key(key: str) -> str:
    """Encode a key as an unpadded Base64URL file stem."""
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii").rstrip("=")


def decode_key(stem: str) -> str:
    """Decode a file stem produced by encode_key."""
    padding = "=" * (-len(stem) % 4)
    return base64.urlsafe_b64decode(stem + padding).decode("utf-8")


class LocalFileStore(DurableStore):
    """Local filesystem store backend."""

    def __init__(self, base_path: str | Path = "~/.cache/transitcache"):
        """Initialize local file store.

        Args:
            base_path: Directory holding one file per key
        """
        self.base_path = Path(base_path).expanduser()

    def _path_for(self, key: str) -> Path:
        return self.base_path / f"{encode_key(key)}{SUFFIX}"

    async def _ensure_directory(self) -> None:
        """Ensure the base directory exists."""
        if not await aiofiles.os.path.exists(self.base_path):
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)

    async def get(self, key: str) -> str | None:
        path = self._path_for(key)
        if not await aiofiles.os.path.exists(path):
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return cast(str, await f.read())
        except OSError as e:
            raise StoreError(f"Failed to read {key}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        # Write to a temp file then rename so readers never see partial rows
        tmp_path = path.with_name(f".{path.name}.{uuid4().hex[:8]}.tmp")
        try:
            await self._ensure_directory()
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(value)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise StoreError(f"Failed to write {key}: {e}") from e
        logger.debug(f"Stored {key} at {path} ({len(value)} chars)")

    async def remove(self, key: str) -> None:
        path = self._path_for(key)
        if not await aiofiles.os.path.exists(path):
            return
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StoreError(f"Failed to remove {key}: {e}") from e

    async def list_keys(self) -> list[str]:
        if not await aiofiles.os.path.exists(self.base_path):
            return []

        keys: list[str] = []
        for name in await aiofiles.os.listdir(self.base_path):
            if name.startswith(".") or not name.endswith(SUFFIX):
                continue
            try:
                keys.append(decode_key(name[: -len(SUFFIX)]))
            except (ValueError, UnicodeDecodeError):
                logger.debug(f"Skipping foreign file {os.path.join(self.base_path, name)}")
        return keys
