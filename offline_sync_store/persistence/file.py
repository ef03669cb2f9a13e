"""
JSON file persistence.

Stores each key as ``{base_path}/{key}.json`` with:
- Atomic writes using temp file + rename
- fsync before rename so a completed ``set`` survives a crash
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import PersistenceIOError
from .base import KeyValuePersistence

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.\-]+$")


class JsonFilePersistence(KeyValuePersistence):
    """Key/value persistence backed by one JSON file per key.

    Directory structure:
    {base_path}/
      {store_id}-created.json
      {store_id}-updated.json
      {store_id}-removed.json
      {store_id}-records.json
    """

    def __init__(self, base_path: Path) -> None:
        self.base_path = Path(base_path)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key) or key in (".", ".."):
            raise PersistenceIOError("resolve_key", key, ValueError("unsafe key"))
        return self.base_path / f"{key}.json"

    async def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            if not await aiofiles.os.path.exists(path):
                return None
            async with aiofiles.open(path, encoding="utf-8") as f:
                return await f.read()
        except OSError as e:
            raise PersistenceIOError("read", key, e) from e

    async def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
        except OSError as e:
            raise PersistenceIOError("create_directory", key, e) from e

        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=".json")
        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(value)
                await f.flush()
                os.fsync(f.fileno())

            # Atomic rename
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            # Clean up temp file on error
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                logger.debug(f"Could not remove temp file {temp_path}")
            raise PersistenceIOError("write", key, e) from e

    async def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            raise PersistenceIOError("remove", key, e) from e
