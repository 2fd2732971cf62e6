"""Intraday 5-minute bars with session microstructure.

Each bar's move is a weighted sum of:

* order-book imbalance, an AR(1) state clamped to [-1, 1];
* institutional flow, sporadic shocks that decay exponentially;
* a GARCH-like volatility term fed by the previous bar's absolute log-return;
* short momentum, the slope over the last three bars;
* mean reversion toward the day's anchor (the first bar).

Synthesis is incremental. Bars already present in the prefix are kept as
they are and only the missing tail is built. The random streams are replayed
from the first bar with a fixed number of draws per bar, so extending a
prefix one bar at a time gives the same bars as building them in one call.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from marketsim.constants import BAR_MINUTES, SessionPhase
from marketsim.synth.common import (
    bounded_step,
    clamp,
    require_base_price,
    round_within,
    valid_price,
)
from marketsim.synth.seeded import FactorStreams, daily_seed, factor_streams
from marketsim.time.session_manager import SessionManager, format_clock_label

INTRADAY_MAX_STEP = 0.02
INTRADAY_BAND = 0.02

IMBALANCE_PERSISTENCE = 0.75
IMBALANCE_SHOCK = 0.35
INSTITUTIONAL_SHOCK_PROB = 0.02
INSTITUTIONAL_SHOCK_SIZE = 0.003
INSTITUTIONAL_DECAY = 0.8

# GARCH(1,1) around a 0.15% per-bar volatility
BAR_SIGMA = 0.0015
GARCH_ALPHA = 0.10
GARCH_BETA = 0.85
GARCH_OMEGA = BAR_SIGMA**2 * (1 - GARCH_ALPHA - GARCH_BETA)

IMBALANCE_WEIGHT = 0.0008
MOMENTUM_WEIGHT = 0.3
REVERSION_WEIGHT = 0.05

BASE_BAR_VOLUME = 20_000

PHASE_VOLATILITY = {
    SessionPhase.REGULAR: 1.0,
    SessionPhase.PRE_MARKET: 0.6,
    SessionPhase.AFTER_HOURS: 0.5,
    SessionPhase.OVERNIGHT: 0.25,
}

PHASE_VOLUME = {
    SessionPhase.PRE_MARKET: 0.15,
    SessionPhase.AFTER_HOURS: 0.2,
    SessionPhase.OVERNIGHT: 0.03,
}


@dataclass(frozen=True)
class _BarDraws:
    """Every random number one bar consumes, drawn up front."""

    flow: float
    institutional_u: float
    institutional_size: float
    noise: float
    volume_u: float

    @classmethod
    def draw(cls, streams: FactorStreams) -> _BarDraws:
        return cls(
            flow=streams.order_flow.normal(),
            institutional_u=streams.institutional.next(),
            institutional_size=streams.institutional.normal(),
            noise=streams.volatility.normal(),
            volume_u=streams.news.next(),
        )


def session_volume_shape(session: SessionManager, bar_time: datetime, phase: SessionPhase) -> float:
    """U-shaped multiplier over the regular session; flat low levels outside it."""
    if phase == SessionPhase.REGULAR:
        x = session.regular_progress(bar_time)
        return 0.6 + 2.4 * (2 * x - 1) ** 2
    return PHASE_VOLUME[phase]


def bar_volume(shape: float, move: float, noise_u: float) -> int:
    """Base rate x session shape x realized-move boost x noise."""
    boost = 1.0 + min(abs(move) / 0.002, 3.0)
    noise = 0.7 + 0.6 * noise_u
    return int(BASE_BAR_VOLUME * shape * boost * noise)


def synthesize_intraday(
    base_price: float,
    ticker: str,
    existing: list[dict[str, Any]] | None = None,
    now: datetime | None = None,
    target_length: int | None = None,
    session: SessionManager | None = None,
) -> list[dict[str, Any]]:
    """
    Extend `existing` with 5-minute bars up to the current bar.

    Args:
        base_price: Reference price; synthesized bars stay within ±2% of it.
        ticker: Stock ticker, part of the daily seed.
        existing: Bars already emitted today. Not mutated.
        now: Clock for the target bar and the seed day (default: session now).
        target_length: Number of bars wanted; defaults to the 5-minute bucket
            index of `now` plus one.
        session: Session calendar.

    Returns:
        A new list: copies of the prefix bars followed by synthesized bars.
    """
    session = session or SessionManager()
    now = now or session.now()
    bars = [dict(bar) for bar in (existing or [])]
    target = session.bar_index(now) + 1 if target_length is None else target_length

    if len(bars) >= target:
        return bars

    base = require_base_price(base_price)
    floor = base * (1 - INTRADAY_BAND)
    ceiling = base * (1 + INTRADAY_BAND)

    day_start = session.day_start(now)
    streams = factor_streams(daily_seed(ticker, day_start.date()))

    anchor = round_within(base, floor, ceiling)
    if bars:
        anchor = valid_price(float(bars[0].get("price", anchor)), anchor)

    prices: list[float] = []
    imbalance = 0.0
    institutional_flow = 0.0
    variance = BAR_SIGMA**2
    prev_log_return = 0.0

    for i in range(target):
        draws = _BarDraws.draw(streams)
        bar_time = day_start + timedelta(minutes=i * BAR_MINUTES)
        phase = session.phase(bar_time)

        if i == 0:
            price = anchor
            move = 0.0
        else:
            prev = prices[-1]
            imbalance = clamp(
                IMBALANCE_PERSISTENCE * imbalance + IMBALANCE_SHOCK * draws.flow, -1.0, 1.0
            )
            if draws.institutional_u < INSTITUTIONAL_SHOCK_PROB:
                institutional_flow += draws.institutional_size * INSTITUTIONAL_SHOCK_SIZE
            institutional_flow *= INSTITUTIONAL_DECAY

            variance = GARCH_OMEGA + GARCH_ALPHA * prev_log_return**2 + GARCH_BETA * variance
            sigma = math.sqrt(variance) * PHASE_VOLATILITY[phase]

            momentum = 0.0
            if len(prices) >= 4:
                momentum = (prev - prices[-4]) / prices[-4] / 3
            reversion = (anchor - prev) / prev

            change = (
                IMBALANCE_WEIGHT * imbalance
                + institutional_flow
                + sigma * draws.noise
                + MOMENTUM_WEIGHT * momentum
                + REVERSION_WEIGHT * reversion
            )
            price = bounded_step(prev, prev * (1 + change), INTRADAY_MAX_STEP, floor, ceiling)
            move = price / prev - 1

        if i < len(bars):
            # Emitted bars are never rewritten; later bars follow what was emitted
            price = valid_price(float(bars[i].get("price", price)), prices[-1] if prices else anchor)
        else:
            shape = session_volume_shape(session, bar_time, phase)
            bars.append(
                {
                    "time": format_clock_label(bar_time),
                    "price": price,
                    "volume": bar_volume(shape, move, draws.volume_u),
                    "isLive": False,
                }
            )

        if prices:
            prev_log_return = math.log(price / prices[-1])
        prices.append(price)

    return bars
