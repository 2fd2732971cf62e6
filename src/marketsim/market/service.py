"""Per-client market service.

`MarketService` owns one client's view of the shared market: the cached
`MarketSnapshot`, the store watches that keep it fresh, the command worker
every intent and tick runs through, the tick engine, and the coordinator
that decides whether this client drives the ticks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from marketsim.config_loader import AppConfig
from marketsim.constants import (
    MARKET_STATE_PATH,
    STOCKS_PATH,
    TRADING_HISTORY_PATH,
    USERS_PATH,
    ChartWindow,
    TradeType,
)
from marketsim.engine.coordinator import MarketCoordinator
from marketsim.engine.tick_engine import LiveTickEngine
from marketsim.errors import StoreWriteError, ValidationError
from marketsim.market.accounts import AccountManager, LoginSession
from marketsim.market.bootstrap import default_stocks
from marketsim.market.models import (
    MarketSnapshot,
    Stock,
    TradeRecord,
    UserAccount,
    now_ms,
    stocks_from_store,
    users_from_store,
)
from marketsim.notifications import Notifier, SampledWarner
from marketsim.store.base import DocumentStore, Watch
from marketsim.synth.series import get_series
from marketsim.time.session_manager import SessionManager
from marketsim.trading.admin import AdminDesk
from marketsim.trading.executor import TradeExecutor, TradeResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

WATCHED_PATHS = (STOCKS_PATH, USERS_PATH, MARKET_STATE_PATH)


@dataclass
class IntentResult:
    """Outcome of a non-trade intent."""

    ok: bool
    message: str = "OK"
    data: Any = None


class MarketService:
    """
    One client of the shared market.

    All cache mutations happen on the command worker: intents, ticks and
    watch notifications are queued and run one at a time. A watch
    notification reloads its document from the store when it runs, so a
    queued notification never rolls the cache back behind a write this
    client already made.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: AppConfig | None = None,
        session: SessionManager | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.config = config or AppConfig()
        self.session = session or SessionManager(self.config.session)
        self.notifier = notifier or Notifier(self.config.notifications.recent_limit)
        self._clock = clock

        self.snapshot = MarketSnapshot()
        self.warner = SampledWarner(
            self.notifier,
            sample_every=self.config.notifications.warning_sample_every,
            min_interval_sec=self.config.notifications.warning_min_interval_sec,
        )
        self.accounts = AccountManager(store, self.config.accounts)
        self.executor = TradeExecutor(store, self.config.trading, clock=clock)
        self.admin = AdminDesk(store, self.config.trading)
        self.engine = LiveTickEngine(
            store,
            self.config.market,
            self.session,
            get_stocks=lambda: self.snapshot.stocks,
            on_written=self._on_ticked,
            dispatch=self._submit,
            warner=self.warner,
        )
        self.coordinator: MarketCoordinator | None = None

        self._queue: asyncio.Queue[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]] = (
            asyncio.Queue()
        )
        self._worker: asyncio.Task[None] | None = None
        self._watches: list[Watch] = []
        self._watch_tasks: list[asyncio.Task[None]] = []

    @property
    def login_session(self) -> LoginSession:
        return self.accounts.session

    @property
    def is_leader(self) -> bool:
        return self.coordinator is not None and self.coordinator.is_leader

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, drive_market: bool = True) -> None:
        """
        Load the snapshot, subscribe, and start the command worker.

        Args:
            drive_market: Join leader election and tick while leader.
        """
        self.refresh()
        self._worker = asyncio.create_task(self._run_worker())

        for path in WATCHED_PATHS:
            watch = self.store.watch(path)
            # The current value was just loaded; skip its initial delivery
            await watch.__anext__()
            self._watches.append(watch)
            self._watch_tasks.append(asyncio.create_task(self._follow(path, watch)))

        if drive_market:
            self.coordinator = MarketCoordinator(
                self.store,
                self.config.coordinator,
                user=self.login_session.username or "anonymous",
                clock=self._clock,
                on_change=lambda _leader: self._sync_engine(),
            )
            await self.coordinator.start()

        logger.info(
            f"Market service started: {len(self.snapshot.stocks)} stocks, "
            f"{len(self.snapshot.users)} users, running={self.snapshot.running}"
        )

    async def stop(self) -> None:
        """Cancel the tick timer, the heartbeat, every watch and the worker."""
        self.engine.stop()
        if self.coordinator:
            await self.coordinator.stop()
            self.coordinator = None

        for watch in self._watches:
            watch.close()
        tasks = [*self._watch_tasks]
        if self._worker:
            tasks.append(self._worker)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        while not self._queue.empty():
            _fn, future = self._queue.get_nowait()
            future.cancel()

        self._watches = []
        self._watch_tasks = []
        self._worker = None
        logger.info("Market service stopped")

    def refresh(self) -> None:
        """Reload every cached document from the store."""
        for path in WATCHED_PATHS:
            self._reload(path)

    # =========================================================================
    # Command worker
    # =========================================================================

    async def _submit(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` on the command worker and wait for its result."""
        if self._worker is None:
            return await fn()
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((fn, future))
        return await future

    async def _run_worker(self) -> None:
        while True:
            fn, future = await self._queue.get()
            if future.cancelled():
                # The caller gave up while queued, e.g. a stopped tick timer
                self._queue.task_done()
                continue
            try:
                result = await fn()
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def _follow(self, path: str, watch: Watch) -> None:
        async for _value in watch:
            await self._submit(lambda: self._reload_async(path))

    async def _reload_async(self, path: str) -> None:
        self._reload(path)

    def _reload(self, path: str) -> None:
        value = self.store.snapshot(path)
        if path == STOCKS_PATH:
            self.snapshot.stocks = stocks_from_store(value)
        elif path == USERS_PATH:
            self.snapshot.users = users_from_store(value)
        elif path == MARKET_STATE_PATH:
            running = (value or {}).get("running", True) is not False
            if running != self.snapshot.running:
                logger.info(f"Market {'running' if running else 'stopped'}")
            self.snapshot.running = running
            self._sync_engine()

    def _sync_engine(self) -> None:
        self.engine.sync(self.is_leader and self.snapshot.running)

    def _on_ticked(self, stocks: list[Stock]) -> None:
        self.snapshot.stocks = stocks

    # =========================================================================
    # Accounts
    # =========================================================================

    def login(self, username: str, password: str) -> IntentResult:
        try:
            session = self.accounts.login(self.snapshot.users, username, password)
        except ValidationError as e:
            self.notifier.warning(str(e))
            return IntentResult(False, str(e))
        if self.coordinator:
            self.coordinator.user = username
        return IntentResult(True, f"Welcome, {username}", session)

    async def signup(self, username: str, password: str, confirm_password: str) -> IntentResult:
        async def run() -> IntentResult:
            try:
                account = await self.accounts.signup(
                    self.snapshot.users, username, password, confirm_password
                )
            except ValidationError as e:
                self.notifier.warning(str(e))
                return IntentResult(False, str(e))
            except StoreWriteError as e:
                self.warner.record("write:users", f"Signup not saved: {e}")
                return IntentResult(False, str(e))
            self.snapshot.users[account.username] = account
            if self.coordinator:
                self.coordinator.user = username
            return IntentResult(True, f"Welcome, {username}", account)

        return await self._submit(run)

    def logout(self) -> IntentResult:
        self.accounts.logout()
        if self.coordinator:
            self.coordinator.user = "anonymous"
        return IntentResult(True, "Logged out")

    # =========================================================================
    # Trading
    # =========================================================================

    async def buy(self, ticker: str | None, quantity: object) -> TradeResult:
        return await self._submit(lambda: self._trade(self.executor.buy, ticker, quantity))

    async def sell(self, ticker: str | None, quantity: object) -> TradeResult:
        return await self._submit(lambda: self._trade(self.executor.sell, ticker, quantity))

    async def _trade(
        self,
        execute: Callable[..., Awaitable[TradeResult]],
        ticker: str | None,
        quantity: object,
    ) -> TradeResult:
        result = await execute(self.snapshot, ticker, quantity, self.login_session.username)
        if not result.accepted:
            self.notifier.warning(result.reason)
            return result

        self.snapshot.stocks = self.snapshot.replace_stock(result.stock)
        self.snapshot.users[result.account.username] = result.account
        record = result.record
        verb = "Bought" if record.type == TradeType.BUY else "Sold"
        self.notifier.notify(
            f"{verb} {record.quantity} {record.ticker} @ ${record.price:,.2f} "
            f"(now ${record.new_price:,.2f})"
        )
        return result

    async def trading_history(self, username: str | None = None) -> list[TradeRecord]:
        """Trade records for `username` (default: signed-in user), newest first."""
        username = username or self.login_session.username
        if not username:
            return []
        value = await self.store.get(f"{TRADING_HISTORY_PATH}/{username}") or {}
        records = [TradeRecord.from_dict(v) for v in value.values() if v]
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def get_series(
        self, ticker: str, window: ChartWindow | str, now: datetime | None = None
    ) -> list[dict[str, Any]]:
        stock = self.snapshot.find_stock(ticker)
        if stock is None:
            raise ValidationError(f"Unknown stock: {ticker!r}")
        return get_series(stock, window, now=now, session=self.session)

    # =========================================================================
    # Admin
    # =========================================================================

    async def _admin(self, name: str, op: Callable[[], Awaitable[Any]]) -> IntentResult:
        async def run() -> IntentResult:
            if not self.login_session.is_admin:
                self.notifier.warning("Admin access required")
                return IntentResult(False, "Admin access required")
            try:
                data = await op()
            except ValidationError as e:
                self.notifier.warning(str(e))
                return IntentResult(False, str(e))
            except StoreWriteError as e:
                self.warner.record(f"write:{name}", f"{name} not saved: {e}")
                return IntentResult(False, str(e))
            self.notifier.notify(f"{name} complete")
            return IntentResult(True, "OK", data)

        return await self._submit(run)

    async def create_stock(self, fields: dict[str, Any]) -> IntentResult:
        async def op() -> Stock:
            stock = await self.admin.create_stock(self.snapshot, fields)
            self.snapshot.stocks = [*self.snapshot.stocks, stock]
            return stock

        return await self._admin("Create stock", op)

    async def adjust_price_absolute(self, ticker: str, delta: Any) -> IntentResult:
        async def op() -> Stock:
            stock = await self.admin.adjust_price_absolute(self.snapshot, ticker, delta)
            self.snapshot.stocks = self.snapshot.replace_stock(stock)
            return stock

        return await self._admin("Price adjustment", op)

    async def adjust_price_percent(self, ticker: str, pct: Any) -> IntentResult:
        async def op() -> Stock:
            stock = await self.admin.adjust_price_percent(self.snapshot, ticker, pct)
            self.snapshot.stocks = self.snapshot.replace_stock(stock)
            return stock

        return await self._admin("Price adjustment", op)

    async def adjust_balance(self, username: str, delta: Any) -> IntentResult:
        async def op() -> UserAccount:
            account = await self.admin.adjust_balance(self.snapshot, username, delta)
            self.snapshot.users[account.username] = account
            return account

        return await self._admin("Balance adjustment", op)

    async def grant_shares(self, username: str, ticker: str, quantity: Any) -> IntentResult:
        async def op() -> UserAccount:
            account = await self.admin.grant_shares(self.snapshot, username, ticker, quantity)
            self.snapshot.users[account.username] = account
            return account

        return await self._admin("Share grant", op)

    async def remove_shares(self, username: str, ticker: str, quantity: Any) -> IntentResult:
        async def op() -> UserAccount:
            account = await self.admin.remove_shares(self.snapshot, username, ticker, quantity)
            self.snapshot.users[account.username] = account
            return account

        return await self._admin("Share removal", op)

    async def execute_split(self, ticker: str, ratio: Any) -> IntentResult:
        async def op() -> Stock:
            stock, users = await self.admin.execute_split(self.snapshot, ticker, ratio)
            self.snapshot.stocks = self.snapshot.replace_stock(stock)
            self.snapshot.users.update(users)
            return stock

        return await self._admin("Stock split", op)

    async def reset_stocks(self) -> IntentResult:
        async def op() -> list[Stock]:
            stocks = await self.admin.reset_stocks(default_stocks())
            self.snapshot.stocks = stocks
            return stocks

        return await self._admin("Stock reset", op)

    async def start_market(self) -> IntentResult:
        return await self._admin("Market start", lambda: self._set_running(True))

    async def stop_market(self) -> IntentResult:
        return await self._admin("Market stop", lambda: self._set_running(False))

    async def _set_running(self, running: bool) -> None:
        await self.admin.set_running(running)
        self.snapshot.running = running
        self._sync_engine()

    async def set_tick_interval(self, interval_ms: int) -> IntentResult:
        async def op() -> int:
            self.engine.set_interval(interval_ms)
            return interval_ms

        return await self._admin("Tick interval change", op)
