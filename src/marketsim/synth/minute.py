"""Minute-resolution price path for short chart windows."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from marketsim.synth.common import bounded_step, require_base_price, round_within
from marketsim.synth.seeded import MASK_32, SeededStream, daily_seed
from marketsim.time.session_manager import SessionManager, format_clock_label

MINUTE_BAND = 0.015
MICRO_TREND_RESET_PROB = 0.05
MINUTE_SIGMA = 0.0005


def synthesize_minutes(
    base_price: float,
    ticker: str,
    minutes: int,
    now: datetime | None = None,
    session: SessionManager | None = None,
) -> list[dict[str, Any]]:
    """
    Build `minutes + 1` one-minute points ending at `now`.

    A momentum-weighted random walk with occasional micro-trend resets,
    held within ±1.5% of the base price.
    """
    base = require_base_price(base_price)
    if minutes < 0:
        raise ValueError(f"minutes must be non-negative, got: {minutes}")

    session = session or SessionManager()
    now = now or session.now()
    start = now - timedelta(minutes=minutes)

    seed = (daily_seed(ticker, start.date()) + start.hour * 60 + start.minute) & MASK_32
    walk = SeededStream.order_flow(seed)
    trends = SeededStream.regime(seed)

    floor = base * (1 - MINUTE_BAND)
    ceiling = base * (1 + MINUTE_BAND)

    price = round_within(base, floor, ceiling)
    momentum = 0.0
    micro_trend = 0.0
    points: list[dict[str, Any]] = []

    for i in range(minutes + 1):
        if i > 0:
            if trends.next() < MICRO_TREND_RESET_PROB:
                micro_trend = trends.uniform(-1.0, 1.0) * 0.0003
            shock = walk.normal() * MINUTE_SIGMA
            momentum = 0.7 * momentum + 0.3 * shock
            raw = price * (1 + shock + 0.5 * momentum + micro_trend)
            # No per-minute cap beyond the band itself
            price = bounded_step(price, raw, 1.0, floor, ceiling)

        t = start + timedelta(minutes=i)
        points.append({"time": format_clock_label(t), "price": price})

    return points
