"""In-process document store."""

from __future__ import annotations

import copy
import logging
from typing import Any

from marketsim.errors import StoreWriteError
from marketsim.store.base import DocumentStore, split_path

logger = logging.getLogger(__name__)


class MemoryDocumentStore(DocumentStore):
    """
    Nested-dict document store shared by every client in the process.

    Several `MarketService` instances pointed at one store behave like
    several browser tabs pointed at one realtime database.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        super().__init__()
        self._root: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def snapshot(self, path: str) -> Any:
        node: Any = self._root
        for part in split_path(path):
            if isinstance(node, dict):
                node = node.get(part)
            elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
                node = node[int(part)]
            else:
                return None
            if node is None:
                return None
        return copy.deepcopy(node)

    def dump(self) -> dict[str, Any]:
        """Deep copy of the whole tree."""
        return copy.deepcopy(self._root)

    async def set(self, path: str, value: Any) -> None:
        self._write(path, copy.deepcopy(value))
        self._after_write(path)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        current = self.snapshot(path)
        if current is None:
            current = {}
        if not isinstance(current, dict):
            raise StoreWriteError(path, "update target is not a mapping")
        current.update(copy.deepcopy(fields))
        self._write(path, current)
        self._after_write(path)

    def _write(self, path: str, value: Any) -> None:
        parts = split_path(path)
        if not parts:
            if not isinstance(value, dict):
                raise StoreWriteError(path, "root must be a mapping")
            self._root = value
            return

        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child

        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value

    def _after_write(self, path: str) -> None:
        logger.debug(f"Store write: {path}")
        self._fan_out(path)
