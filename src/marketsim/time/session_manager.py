"""Session manager for intraday bar alignment and session regimes."""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from marketsim.config_loader import SessionConfig
from marketsim.constants import BAR_MINUTES, SessionPhase

logger = logging.getLogger(__name__)


def format_clock_label(dt: datetime, minute: int | None = None) -> str:
    """Format a 12-hour clock label such as '9:05 AM'."""
    hour = dt.hour
    minute = dt.minute if minute is None else minute
    display_hour = hour % 12 or 12
    ampm = "AM" if hour < 12 else "PM"
    return f"{display_hour}:{minute:02d} {ampm}"


class SessionManager:
    """
    Maps wall-clock times onto the simulated exchange day.

    All times are handled in the configured exchange timezone (default
    America/New_York). Naive datetimes are taken as already local.
    """

    def __init__(self, config: SessionConfig | None = None) -> None:
        """
        Initialize the session manager.

        Args:
            config: Session configuration.
        """
        self.config = config or SessionConfig()
        self.tz = ZoneInfo(self.config.timezone)

        self.day_start_time = self._parse_time(self.config.day_start)
        self.pre_market_start = self._parse_time(self.config.pre_market_start)
        self.regular_start = self._parse_time(self.config.regular_start)
        self.regular_end = self._parse_time(self.config.regular_end)
        self.after_hours_end = self._parse_time(self.config.after_hours_end)

        self.trading_days = set(self.config.trading_days)

    def _parse_time(self, time_str: str) -> time:
        """Parse H:M string to time object."""
        hour, minute = map(int, time_str.split(":"))
        return time(hour, minute)

    def now(self) -> datetime:
        """Get current time in exchange timezone."""
        return datetime.now(self.tz)

    def is_trading_day(self, dt: datetime | None = None) -> bool:
        """Check if the given date (default now) is a configured trading day."""
        if dt is None:
            dt = self.now()
        return dt.weekday() in self.trading_days

    def phase(self, dt: datetime | None = None) -> SessionPhase:
        """Classify `dt` into a session regime."""
        if dt is None:
            dt = self.now()

        if not self.is_trading_day(dt):
            return SessionPhase.OVERNIGHT

        t = dt.time()
        if self.regular_start <= t < self.regular_end:
            return SessionPhase.REGULAR
        if self.pre_market_start <= t < self.regular_start:
            return SessionPhase.PRE_MARKET
        if self.regular_end <= t < self.after_hours_end:
            return SessionPhase.AFTER_HOURS
        return SessionPhase.OVERNIGHT

    def regular_progress(self, dt: datetime) -> float:
        """Fraction of the regular session elapsed at `dt`, clamped to [0, 1]."""
        start = datetime.combine(dt.date(), self.regular_start)
        end = datetime.combine(dt.date(), self.regular_end)
        total = (end - start).total_seconds()
        elapsed = (dt.replace(tzinfo=None) - start).total_seconds()
        return min(1.0, max(0.0, elapsed / total))

    def day_start(self, dt: datetime | None = None) -> datetime:
        """Start of the simulated day containing `dt`."""
        if dt is None:
            dt = self.now()
        start = dt.replace(
            hour=self.day_start_time.hour,
            minute=self.day_start_time.minute,
            second=0,
            microsecond=0,
        )
        if start > dt:
            start -= timedelta(days=1)
        return start

    def bar_index(self, dt: datetime | None = None, bar_minutes: int = BAR_MINUTES) -> int:
        """Index of the `bar_minutes` bucket containing `dt`."""
        if dt is None:
            dt = self.now()
        elapsed = dt - self.day_start(dt)
        return int(elapsed.total_seconds() // (bar_minutes * 60))

    def bar_time(
        self, index: int, dt: datetime | None = None, bar_minutes: int = BAR_MINUTES
    ) -> datetime:
        """Start time of bar `index` on the day containing `dt`."""
        return self.day_start(dt) + timedelta(minutes=index * bar_minutes)

    def bar_label(self, dt: datetime, bar_minutes: int = BAR_MINUTES) -> str:
        """Clock label of the bucket containing `dt`, minutes rounded down."""
        return format_clock_label(dt, (dt.minute // bar_minutes) * bar_minutes)
