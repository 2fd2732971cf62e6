"""Chart-window dispatch over the path synthesizers."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from marketsim.constants import ChartWindow
from marketsim.market.models import Stock
from marketsim.synth.intraday import synthesize_intraday
from marketsim.synth.minute import synthesize_minutes
from marketsim.synth.monthly import synthesize_monthly
from marketsim.synth.weekly import synthesize_weekly
from marketsim.synth.yearly import synthesize_yearly
from marketsim.time.session_manager import SessionManager

logger = logging.getLogger(__name__)

MINUTE_WINDOWS = {
    ChartWindow.TEN_MINUTES: 10,
    ChartWindow.THIRTY_MINUTES: 30,
    ChartWindow.ONE_HOUR: 60,
}

# Trailing weekly bars of the yearly path
YEAR_TAIL_WINDOWS = {
    ChartWindow.THREE_MONTHS: 12,
    ChartWindow.SIX_MONTHS: 24,
}


def get_series(
    stock: Stock,
    window: ChartWindow | str,
    now: datetime | None = None,
    session: SessionManager | None = None,
) -> list[dict[str, Any]]:
    """
    Return the chart series for `stock` over `window`.

    The one-day window serves the live-maintained history when the stock has
    one and synthesizes today's bars otherwise. Every other window is
    synthesized on demand from the stock's current price.
    """
    window = ChartWindow(window)
    session = session or SessionManager()
    now = now or session.now()

    if window in MINUTE_WINDOWS:
        return synthesize_minutes(stock.price, stock.ticker, MINUTE_WINDOWS[window], now, session)

    if window == ChartWindow.ONE_DAY:
        if stock.history:
            return [point.to_dict() for point in stock.history]
        return synthesize_intraday(stock.price, stock.ticker, now=now, session=session)

    if window == ChartWindow.ONE_WEEK:
        return synthesize_weekly(stock.price, stock.ticker, now, session)

    if window == ChartWindow.ONE_MONTH:
        return synthesize_monthly(stock.price, stock.ticker, now, session)

    yearly = synthesize_yearly(stock.price, stock.ticker, now, session)
    if window in YEAR_TAIL_WINDOWS:
        return yearly[-YEAR_TAIL_WINDOWS[window] :]
    return yearly
