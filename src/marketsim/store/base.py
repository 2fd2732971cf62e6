"""Document store interface."""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

_CLOSED = object()


def split_path(path: str) -> list[str]:
    """Split a slash-separated store path into segments."""
    return [part for part in path.strip("/").split("/") if part]


def paths_overlap(a: str, b: str) -> bool:
    """True if one path is an ancestor of (or equal to) the other."""
    pa, pb = split_path(a), split_path(b)
    n = min(len(pa), len(pb))
    return pa[:n] == pb[:n]


class Watch:
    """
    Async stream of full-value snapshots for one path.

    The current value is delivered first, then one snapshot per write that
    touches the path, in write order. Consecutive identical snapshots are
    collapsed.
    """

    def __init__(self, path: str, on_close: Callable[[Watch], None]) -> None:
        self.path = path
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._on_close = on_close
        self._last: Any = _CLOSED
        self.closed = False

    def push(self, value: Any) -> None:
        if self.closed or value == self._last:
            return
        self._last = copy.deepcopy(value)
        self._queue.put_nowait(value)

    def __aiter__(self) -> Watch:
        return self

    async def __anext__(self) -> Any:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        value = await self._queue.get()
        if value is _CLOSED:
            raise StopAsyncIteration
        return value

    def close(self) -> None:
        """Unsubscribe. Pending iteration ends."""
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)
        self._on_close(self)


class DocumentStore(ABC):
    """
    Shared key-value document store.

    No transactions and no server-side compute: `set` overwrites the whole
    value at a path, `update` shallow-merges fields into it.
    """

    def __init__(self) -> None:
        self._watches: list[Watch] = []

    @abstractmethod
    def snapshot(self, path: str) -> Any:
        """Return a deep copy of the current value at `path` (None if absent)."""
        pass

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        """Overwrite the value at `path`. Raises StoreWriteError on failure."""
        pass

    @abstractmethod
    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Shallow-merge `fields` into the value at `path`. Raises StoreWriteError."""
        pass

    async def get(self, path: str) -> Any:
        return self.snapshot(path)

    def watch(self, path: str) -> Watch:
        """Subscribe to `path`."""
        w = Watch(path, self._remove_watch)
        self._watches.append(w)
        w.push(self.snapshot(path))
        return w

    async def start(self) -> None:
        """Start background work, if any."""
        pass

    async def close(self) -> None:
        """Stop background work and close all watches."""
        for w in list(self._watches):
            w.close()

    def _remove_watch(self, w: Watch) -> None:
        if w in self._watches:
            self._watches.remove(w)

    def _fan_out(self, written_path: str) -> None:
        """Notify every watch whose path overlaps the written path."""
        for w in list(self._watches):
            if paths_overlap(w.path, written_path):
                w.push(self.snapshot(w.path))
