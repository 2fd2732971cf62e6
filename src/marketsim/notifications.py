"""Transient user notifications and throttled warnings."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """A dismissible message for the presentation layer."""

    level: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


class Notifier:
    """
    Fan-out for transient notifications.

    Listeners receive every notification; the most recent ones are kept in a
    bounded buffer so a late-attaching consumer can render them.
    """

    def __init__(self, recent_limit: int = 50) -> None:
        self._listeners: list[Callable[[Notification], None]] = []
        self.recent: deque[Notification] = deque(maxlen=recent_limit)

    def add_listener(self, callback: Callable[[Notification], None]) -> None:
        """Register a notification callback."""
        self._listeners.append(callback)

    def notify(self, message: str, level: str = "info") -> Notification:
        note = Notification(level=level, message=message)
        self.recent.append(note)
        for cb in self._listeners:
            try:
                cb(note)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}", exc_info=True)
        return note

    def warning(self, message: str) -> Notification:
        return self.notify(message, level="warning")

    def dismiss_all(self) -> None:
        self.recent.clear()


class SampledWarner:
    """
    Throttle for recurring anomalies.

    A key is surfaced on its first occurrence, then only when both
    `sample_every` more occurrences have accumulated and `min_interval_sec`
    has passed since the last surfaced warning. Every occurrence is logged at
    DEBUG so nothing is lost.
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        sample_every: int = 10,
        min_interval_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.notifier = notifier
        self.sample_every = max(1, sample_every)
        self.min_interval_sec = min_interval_sec
        self._clock = clock
        self.counts: dict[str, int] = {}
        self._last_surfaced: dict[str, tuple[int, float]] = {}

    def record(self, key: str, message: str) -> bool:
        """
        Record one occurrence of `key`.

        Returns:
            True if this occurrence was surfaced as a warning.
        """
        count = self.counts.get(key, 0) + 1
        self.counts[key] = count
        now = self._clock()

        last = self._last_surfaced.get(key)
        if last is not None:
            last_count, last_time = last
            if count - last_count < self.sample_every or now - last_time < self.min_interval_sec:
                logger.debug(f"{message} (occurrence {count}, throttled)")
                return False

        self._last_surfaced[key] = (count, now)
        text = f"{message} (occurrence {count})" if count > 1 else message
        logger.warning(text)
        if self.notifier:
            self.notifier.warning(text)
        return True
