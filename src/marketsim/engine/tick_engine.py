"""Live tick engine.

Advances every stock by one simulation step on a timer and overwrites the
`stocks` document with the result. Only the elected leader with the market
running should be ticking; `sync` moves the engine between IDLE and TICKING.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime
from typing import Any

from marketsim.config_loader import MarketConfig
from marketsim.constants import MIN_PRICE, STOCKS_PATH, EngineState
from marketsim.errors import StoreWriteError, ValidationError
from marketsim.market.models import HistoryPoint, Stock
from marketsim.notifications import SampledWarner
from marketsim.store.base import DocumentStore
from marketsim.synth.common import valid_price
from marketsim.synth.intraday import synthesize_intraday
from marketsim.synth.seeded import MASK_32, SeededStream, ticker_seed
from marketsim.time.session_manager import SessionManager

logger = logging.getLogger(__name__)

# Perturbation used when a step produces an unusable price
FALLBACK_JITTER = 0.0001
LIVE_VOLUME_PER_TICK = 1_000

Dispatch = Callable[[Callable[[], Awaitable[Any]]], Awaitable[Any]]


class LiveTickEngine:
    """
    Timer-driven price updater.

    Each tick reads the current stocks from `get_stocks`, advances them, and
    writes the whole collection back with one `set`. When `dispatch` is given
    the tick runs through it (the owning service's command queue) instead of
    directly on the timer task.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: MarketConfig | None = None,
        session: SessionManager | None = None,
        get_stocks: Callable[[], list[Stock]] | None = None,
        on_written: Callable[[list[Stock]], None] | None = None,
        dispatch: Dispatch | None = None,
        warner: SampledWarner | None = None,
    ):
        self.store = store
        self.config = config or MarketConfig()
        self.session = session or SessionManager()
        self._get_stocks = get_stocks or (lambda: [])
        self._on_written = on_written
        self._dispatch = dispatch
        self.warner = warner or SampledWarner()

        self.interval_ms = self.config.tick_interval_ms
        self.tick_count = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> EngineState:
        if self._task is not None and not self._task.done():
            return EngineState.TICKING
        return EngineState.IDLE

    # =========================================================================
    # State machine
    # =========================================================================

    def sync(self, active: bool) -> None:
        """Tick while `active` (leader and market running), idle otherwise."""
        if active and self.state == EngineState.IDLE:
            self.start()
        elif not active and self.state == EngineState.TICKING:
            self.stop()

    def start(self) -> None:
        if self.state == EngineState.TICKING:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Tick engine started ({self.interval_ms}ms interval)")

    def stop(self) -> None:
        """Cancel the timer. Safe to call when idle."""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Tick engine stopped")

    def set_interval(self, interval_ms: int) -> None:
        """Change the tick interval, restarting the timer if ticking."""
        low, high = self.config.min_tick_interval_ms, self.config.max_tick_interval_ms
        if not isinstance(interval_ms, int) or isinstance(interval_ms, bool):
            raise ValidationError(f"Tick interval must be an integer, got: {interval_ms!r}")
        if not low <= interval_ms <= high:
            raise ValidationError(f"Tick interval must be between {low} and {high} ms")

        self.interval_ms = interval_ms
        if self.state == EngineState.TICKING:
            self.stop()
            self.start()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            if self._dispatch is not None:
                await self._dispatch(self._scheduled_tick)
            else:
                await self.tick_once()

    async def _scheduled_tick(self) -> list[Stock] | None:
        # Queued behind a stop: the timer that asked for this tick is gone
        if self.state != EngineState.TICKING:
            return None
        return await self.tick_once()

    # =========================================================================
    # Tick
    # =========================================================================

    async def tick_once(self, now: datetime | None = None) -> list[Stock] | None:
        """
        Advance every stock one step and overwrite the collection.

        Returns:
            The written stocks, or None if the write failed.
        """
        now = now or self.session.now()
        current = self._get_stocks()
        if not current:
            return []

        updated: list[Stock] = []
        for index, stock in enumerate(current):
            candidate = self.advance_stock(stock, index, now)
            if not candidate.is_finite():
                self.warner.record(
                    f"numeric:{stock.ticker}",
                    f"Non-finite values computed for {stock.ticker}; keeping last good state",
                )
                candidate = stock
            updated.append(candidate)

        try:
            await self.store.set(STOCKS_PATH, [s.to_dict() for s in updated])
        except StoreWriteError as e:
            self.warner.record("write:stocks", f"Tick write failed, retrying next tick: {e}")
            return None

        self.tick_count += 1
        if self._on_written:
            self._on_written(updated)
        return updated

    def advance_stock(self, stock: Stock, index: int, now: datetime) -> Stock:
        """Compute one step for one stock. Pure; the input is not modified."""
        seed = (ticker_seed(stock.ticker) * 31 + int(now.timestamp()) + index * 7919) & MASK_32
        u = SeededStream.tick(seed).next()

        vol = self.config.tick_volatility
        delta = (u - 0.5) * 2 * vol
        decay = self.config.momentum_decay
        momentum = decay * stock.last_momentum + (1 - decay) * delta
        applied = delta + self.config.momentum_weight * momentum

        prev = valid_price(stock.price, valid_price(stock.open, MIN_PRICE))
        raw = prev * (1 + applied)
        if not math.isfinite(raw) or raw <= 0:
            applied = (u - 0.5) * FALLBACK_JITTER
            raw = prev * (1 + applied)
            momentum = 0.0
        new_price = max(MIN_PRICE, round(raw, 2))

        moved = replace(stock, price=prev).reprice(new_price)
        return replace(
            moved,
            history=self._advance_history(stock, prev, new_price, applied, now),
            last_momentum=momentum if math.isfinite(momentum) else 0.0,
            last_update=int(now.timestamp() * 1000),
        )

    def _advance_history(
        self,
        stock: Stock,
        prev_price: float,
        new_price: float,
        applied: float,
        now: datetime,
    ) -> list[HistoryPoint]:
        index = self.session.bar_index(now)
        label = self.session.bar_label(now)
        history = list(stock.history)
        tick_volume = int(LIVE_VOLUME_PER_TICK * (1 + abs(applied) / self.config.tick_volatility))

        if self._from_previous_day(stock, now) or len(history) > index + 1:
            history = []

        if history and len(history) == index + 1:
            last = history[-1]
            history[-1] = HistoryPoint(
                time=label,
                price=new_price,
                volume=last.volume + tick_volume if last.is_live else tick_volume,
                is_live=True,
            )
            return history

        # New bucket: close the previous live bar and fill any gap
        closed = [replace(p, is_live=False) for p in history]
        filled = synthesize_intraday(
            prev_price,
            stock.ticker,
            existing=[p.to_dict() for p in closed],
            now=now,
            target_length=index,
            session=self.session,
        )
        history = [HistoryPoint.from_dict(p) for p in filled]
        history.append(HistoryPoint(time=label, price=new_price, volume=tick_volume, is_live=True))
        return history

    def _from_previous_day(self, stock: Stock, now: datetime) -> bool:
        """True when the stock was last ticked before today's day start."""
        if stock.last_update is None:
            return False
        last = datetime.fromtimestamp(stock.last_update / 1000, tz=now.tzinfo)
        return last < self.session.day_start(now)
