"""Daily bars over the last month."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from marketsim.synth.common import bounded_step, month_day_label, require_base_price, round_within
from marketsim.synth.seeded import MASK_32, factor_streams, horizon_seed
from marketsim.time.session_manager import SessionManager

MONTH_DAYS = 30
MONTHLY_MAX_STEP = 0.08
MONTHLY_FLOOR = 0.60
MONTHLY_CEILING = 1.60

DAILY_SIGMA = 0.012
VOL_SPIKE_PROB = 0.05
NEWS_PROB = 0.03
BASE_DAILY_VOLUME = 2_000_000


def synthesize_monthly(
    base_price: float,
    ticker: str,
    now: datetime | None = None,
    session: SessionManager | None = None,
) -> list[dict[str, Any]]:
    """One bar per trading day over the 30 calendar days before `now`."""
    base = require_base_price(base_price)
    session = session or SessionManager()
    now = now or session.now()

    # Offset from the weekly seed so the two windows do not share a path
    streams = factor_streams((horizon_seed(ticker, base) + 30_011) & MASK_32)
    floor = base * MONTHLY_FLOOR
    ceiling = base * MONTHLY_CEILING

    price = round_within(base * streams.regime.uniform(0.94, 1.06), floor, ceiling)
    trend = streams.order_flow.normal() * 0.001
    vol_mult = 1.0
    news = 0.0
    points: list[dict[str, Any]] = []

    for day_offset in range(MONTH_DAYS, 0, -1):
        day = now - timedelta(days=day_offset)
        if not session.is_trading_day(day):
            continue

        trend = 0.95 * trend + 0.05 * streams.order_flow.normal() * 0.003
        vol_mult = 1.0 + 0.8 * (vol_mult - 1.0)
        if streams.volatility.next() < VOL_SPIKE_PROB:
            vol_mult = streams.volatility.uniform(1.5, 2.2)
        if streams.news.next() < NEWS_PROB:
            news += streams.news.normal() * 0.03
        noise = streams.institutional.fat_tailed() * DAILY_SIGMA * vol_mult

        change = trend + news + noise
        news *= 0.4

        prev = price
        price = bounded_step(prev, prev * (1 + change), MONTHLY_MAX_STEP, floor, ceiling)
        volume = int(
            BASE_DAILY_VOLUME * vol_mult * (0.7 + 0.6 * streams.regime.next())
        )
        points.append({"time": month_day_label(day), "price": price, "volume": volume})

    return points
