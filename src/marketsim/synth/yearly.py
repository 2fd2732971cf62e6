"""Twelve months of weekly bars.

The yearly path layers slow structural factors on top of a fat-tailed walk:
seasonality, a market cycle, regime-switching volatility, a drifting
fundamental trend, sector rotation, momentum-following institutional
positioning, rare event shocks, macro factors and Levy-like jumps.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from marketsim.synth.common import (
    bounded_step,
    clamp,
    month_day_label,
    require_base_price,
    round_within,
    shift_months,
)
from marketsim.synth.seeded import MASK_32, SeededStream, factor_streams, horizon_seed
from marketsim.time.session_manager import SessionManager

MONTHS = 12
WEEKS_PER_MONTH = 4

YEARLY_MAX_STEP = 0.15
YEARLY_FLOOR = 0.30
YEARLY_CEILING = 3.50

WEEKLY_SIGMA = 0.025
JUMP_PROB = 0.05
JUMP_MULTIPLIER = 3.0

VOL_SPIKE_PROB = 0.04
DRIFT_SHIFT_PROB = 0.05
GEOPOLITICAL_PROB = 0.02
MOMENTUM_LOOKBACK = 12

# Cumulative thresholds on a single uniform draw
CRASH_THRESHOLD = 0.005
CORRECTION_THRESHOLD = 0.015
SURPRISE_THRESHOLD = 0.03


def seasonal_factor(month: int, bar: int) -> tuple[float, float]:
    """Return (drift, volatility multiplier) for calendar `month` (1-12)."""
    drift = 0.002 * math.sin(2 * math.pi * bar / (MONTHS * WEEKS_PER_MONTH))
    vol = 1.0
    if month == 1:
        drift += 0.004
    elif month in (6, 7, 8):
        drift -= 0.001
        vol = 0.8
    elif month in (11, 12):
        drift += 0.003
    return drift, vol


def event_shock(stream: SeededStream) -> float:
    """Rare shocks at three severities; the rarest is a large drawdown."""
    u = stream.next()
    if u < CRASH_THRESHOLD:
        return -stream.uniform(0.08, 0.20)
    if u < CORRECTION_THRESHOLD:
        return stream.uniform(-0.08, 0.05)
    if u < SURPRISE_THRESHOLD:
        return 0.04 if stream.next() < 0.5 else -0.04
    return 0.0


def synthesize_yearly(
    base_price: float,
    ticker: str,
    now: datetime | None = None,
    session: SessionManager | None = None,
) -> list[dict[str, Any]]:
    """
    Build 48 weekly bars covering the twelve months before `now`.

    Args:
        base_price: Reference price. Bars stay within [0.30x, 3.50x] of it.
        ticker: Stock ticker, part of the seed.
        now: End of the window (default: session now).
        session: Session calendar used for the default clock.

    Returns:
        List of {time, price, volume} dicts labelled "MM/DD".
    """
    base = require_base_price(base_price)
    session = session or SessionManager()
    now = now or session.now()

    seed = (horizon_seed(ticker, base) + 120_011) & MASK_32
    streams = factor_streams(seed)
    events = SeededStream.tick(seed)
    floor = base * YEARLY_FLOOR
    ceiling = base * YEARLY_CEILING

    cycle_phase = streams.regime.uniform(0.0, 2 * math.pi)
    rotation_phase = streams.regime.uniform(0.0, 2 * math.pi)
    price = round_within(base * streams.regime.uniform(0.90, 1.10), floor, ceiling)

    vol_mult = 1.0
    drift = streams.order_flow.normal() * 0.002
    inflation = 0.0
    geopolitical = 0.0
    prices: list[float] = [price]
    points: list[dict[str, Any]] = []

    for month_index in range(MONTHS):
        month_start = shift_months(now, month_index - MONTHS)
        for week in range(WEEKS_PER_MONTH):
            bar = month_index * WEEKS_PER_MONTH + week

            seasonal, seasonal_vol = seasonal_factor(month_start.month, bar)
            cycle = 0.004 * math.sin(2 * math.pi * bar / 96 + cycle_phase)

            vol_mult = 1.0 + 0.7 * (vol_mult - 1.0)
            if streams.volatility.next() < VOL_SPIKE_PROB:
                vol_mult = streams.volatility.uniform(1.5, 2.5)

            if streams.order_flow.next() < DRIFT_SHIFT_PROB:
                drift += streams.order_flow.normal() * 0.004

            rotation = 0.003 * math.sin(2 * math.pi * bar / 16 + rotation_phase)

            lookback = prices[-MOMENTUM_LOOKBACK - 1] if len(prices) > MOMENTUM_LOOKBACK else prices[0]
            trailing_return = price / lookback - 1
            positioning = 0.01 * math.tanh(3 * trailing_return)

            shock = event_shock(events)

            rates = -0.002 * math.sin(2 * math.pi * bar / 48)
            inflation = clamp(inflation + streams.news.normal() * 0.0005, -0.003, 0.003)
            if streams.news.next() < GEOPOLITICAL_PROB:
                geopolitical += streams.news.uniform(0.005, 0.02)
            geopolitical *= 0.85

            move = streams.institutional.fat_tailed() * WEEKLY_SIGMA * vol_mult * seasonal_vol
            if streams.institutional.next() < JUMP_PROB:
                move *= JUMP_MULTIPLIER

            change = (
                seasonal
                + cycle
                + drift
                + rotation
                + positioning
                + shock
                + rates
                - inflation
                - geopolitical
                + move
            )

            prev = price
            price = bounded_step(prev, prev * (1 + change), YEARLY_MAX_STEP, floor, ceiling)
            prices.append(price)

            volume = int(
                5_000_000 * vol_mult * (1.0 + min(abs(price / prev - 1) / 0.03, 3.0))
            )
            label_day = month_start.replace(day=1 + 7 * week)
            points.append({"time": month_day_label(label_day), "price": price, "volume": volume})

    return points
