"""JSON-file backed document store."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

from marketsim.errors import StoreWriteError
from marketsim.store.memory import MemoryDocumentStore

logger = logging.getLogger(__name__)


class JsonFileDocumentStore(MemoryDocumentStore):
    """
    Persist the document tree to a JSON file.

    Every write saves the whole tree. Other processes sharing the file are
    picked up by polling its modification time; their changes are fanned out
    to local watches. Concurrent writers race and the last save wins. A write
    that cannot be saved leaves the in-memory tree unchanged.
    """

    def __init__(self, file_path: str | Path, poll_interval_sec: float = 1.0) -> None:
        super().__init__()
        self.file_path = Path(file_path)
        self.poll_interval_sec = poll_interval_sec
        self._mtime_ns: int | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._load()

    def _load(self) -> bool:
        """Load the tree from disk. Returns True if anything was read."""
        if not self.file_path.exists():
            return False
        try:
            with open(self.file_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load store file {self.file_path}: {e}")
            return False

        if not isinstance(data, dict):
            logger.warning(f"Ignoring store file {self.file_path}: root is not an object")
            return False

        self._root = data
        self._mtime_ns = self.file_path.stat().st_mtime_ns
        return True

    def _save(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._root, f, indent=2)
        os.replace(tmp_path, self.file_path)
        self._mtime_ns = self.file_path.stat().st_mtime_ns

    async def set(self, path: str, value: Any) -> None:
        previous = copy.deepcopy(self._root)
        try:
            await super().set(path, value)
        except StoreWriteError:
            self._root = previous
            raise

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        previous = copy.deepcopy(self._root)
        try:
            await super().update(path, fields)
        except StoreWriteError:
            self._root = previous
            raise

    def _after_write(self, path: str) -> None:
        try:
            self._save()
        except OSError as e:
            raise StoreWriteError(path, str(e)) from e
        super()._after_write(path)

    def reload(self) -> bool:
        """Re-read the file if another process changed it, notifying watches."""
        if not self.file_path.exists():
            return False
        mtime = self.file_path.stat().st_mtime_ns
        if mtime == self._mtime_ns:
            return False
        if not self._load():
            return False
        logger.debug(f"Store file changed externally: {self.file_path}")
        self._fan_out("")
        return True

    async def start(self) -> None:
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll())

    async def close(self) -> None:
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        await super().close()

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_sec)
            try:
                self.reload()
            except OSError as e:
                logger.warning(f"Store poll failed: {e}")
