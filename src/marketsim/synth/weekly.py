"""Seven-day path with hourly bars on weekdays."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from marketsim.synth.common import (
    bounded_step,
    clamp,
    month_day_label,
    require_base_price,
    round_within,
)
from marketsim.synth.seeded import factor_streams, horizon_seed
from marketsim.time.session_manager import SessionManager

WEEK_DAYS = 7
FIRST_HOUR = 9
LAST_HOUR = 16

WEEKLY_MAX_STEP = 0.05
WEEKLY_FLOOR = 0.70
WEEKLY_CEILING = 1.45

TREND_PERSISTENCE = 0.9
TREND_RESET_PROB = 0.05
SENTIMENT_PERSISTENCE = 0.85
NEWS_PROB = 0.02
NEWS_DECAY = 0.5
NOISE_SCALE = 0.004
WEEKEND_ACTIVITY = 0.2

BASE_HOURLY_VOLUME = 250_000


def synthesize_weekly(
    base_price: float,
    ticker: str,
    now: datetime | None = None,
    session: SessionManager | None = None,
) -> list[dict[str, Any]]:
    """
    Build hourly bars for the seven calendar days ending at `now`.

    Weekdays get one bar per hour from 9:00 to 16:00; each weekend day
    collapses to a single low-activity point. Today stops at the current
    hour, so a later `now` on the same day only appends bars. Prices stay within
    [0.70x, 1.45x] of the base and move at most 5% per bar.
    """
    base = require_base_price(base_price)
    session = session or SessionManager()
    now = now or session.now()

    streams = factor_streams(horizon_seed(ticker, base))
    floor = base * WEEKLY_FLOOR
    ceiling = base * WEEKLY_CEILING

    price = round_within(base * streams.regime.uniform(0.97, 1.03), floor, ceiling)
    trend = 0.0
    sentiment = 0.0
    news = 0.0
    points: list[dict[str, Any]] = []

    for day_offset in range(WEEK_DAYS - 1, -1, -1):
        day = (now - timedelta(days=day_offset)).date()
        weekend = day.weekday() >= 5
        hours = [None] if weekend else list(range(FIRST_HOUR, LAST_HOUR + 1))
        if day_offset == 0 and not weekend:
            hours = [h for h in hours if h <= now.hour]

        for hour in hours:
            trend = TREND_PERSISTENCE * trend + 0.1 * streams.order_flow.normal() * 0.002
            if streams.regime.next() < TREND_RESET_PROB:
                trend = 0.0
            sentiment = clamp(
                SENTIMENT_PERSISTENCE * sentiment + 0.15 * streams.institutional.normal(),
                -1.0,
                1.0,
            )
            if streams.news.next() < NEWS_PROB:
                news += streams.news.normal() * 0.02
            noise = streams.volatility.fat_tailed() * NOISE_SCALE

            change = trend + 0.001 * sentiment + news + noise
            if weekend:
                change *= WEEKEND_ACTIVITY
            news *= NEWS_DECAY

            prev = price
            price = bounded_step(prev, prev * (1 + change), WEEKLY_MAX_STEP, floor, ceiling)

            activity = WEEKEND_ACTIVITY if weekend else 1.0
            volume = int(
                BASE_HOURLY_VOLUME
                * activity
                * (1.0 + min(abs(price / prev - 1) / 0.01, 3.0))
                * (0.7 + 0.6 * streams.news.next())
            )
            label = month_day_label(day)
            if hour is not None:
                label = f"{label} {hour:02d}:00"
            points.append({"time": label, "price": price, "volume": volume})

    return points
