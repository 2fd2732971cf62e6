"""Trade execution and the price-impact model."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from marketsim.config_loader import TradingConfig
from marketsim.constants import STOCKS_PATH, TRADING_HISTORY_PATH, USERS_PATH, TradeType
from marketsim.errors import StoreWriteError
from marketsim.market.models import MarketSnapshot, Stock, TradeRecord, UserAccount, now_ms
from marketsim.store.base import DocumentStore
from marketsim.trading.fees import FeePolicy
from marketsim.trading.guard import TradeGuard

logger = logging.getLogger(__name__)


@dataclass
class TradeResult:
    """Outcome of a buy or sell intent."""

    accepted: bool
    reason: str = "OK"
    record: TradeRecord | None = None
    account: UserAccount | None = None
    stock: Stock | None = None

    @classmethod
    def rejected(cls, reason: str) -> TradeResult:
        return cls(accepted=False, reason=reason)


class TradeExecutor:
    """
    Executes orders against a client's cached snapshot.

    Three independent writes per accepted order: a merge-update of the user
    record, a full overwrite of `stocks`, and the trade record. Nothing is
    transactional; a concurrent writer can interleave, and the last writer
    wins.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: TradingConfig | None = None,
        guard: TradeGuard | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.config = config or TradingConfig()
        self.fees = FeePolicy(self.config.fees)
        self.guard = guard or TradeGuard(self.config, self.fees)
        self._clock = clock

    def price_impact(self, stock: Stock, quantity: int) -> float:
        """Price move for `quantity` shares: one percent of float moves price one percent."""
        total_shares = stock.shares_outstanding
        if total_shares <= 0:
            return 0.0
        return quantity / total_shares * stock.price

    def impacted_price(self, price: float, impact: float) -> float:
        return max(self.config.min_price, round(price + impact, 2))

    async def buy(
        self, snapshot: MarketSnapshot, ticker: str | None, quantity: object, username: str | None
    ) -> TradeResult:
        allowed, reason = self.guard.check_buy(snapshot, ticker, quantity, username)
        if not allowed:
            logger.info(f"Buy rejected for {username}: {reason}")
            return TradeResult.rejected(reason)

        stock = snapshot.find_stock(ticker)
        account = snapshot.users[username]
        quote = self.fees.quote(stock.price, quantity)

        portfolio = dict(account.portfolio)
        portfolio[ticker] = account.holding(ticker) + quantity
        updated_account = replace(
            account, balance=account.balance - quote.total_cost, portfolio=portfolio
        )
        impact = self.price_impact(stock, quantity)
        return await self._commit(
            snapshot, TradeType.BUY, stock, quantity, updated_account, impact, quote.total_cost, quote.fees
        )

    async def sell(
        self, snapshot: MarketSnapshot, ticker: str | None, quantity: object, username: str | None
    ) -> TradeResult:
        allowed, reason = self.guard.check_sell(snapshot, ticker, quantity, username)
        if not allowed:
            logger.info(f"Sell rejected for {username}: {reason}")
            return TradeResult.rejected(reason)

        stock = snapshot.find_stock(ticker)
        account = snapshot.users[username]
        quote = self.fees.quote(stock.price, quantity)

        portfolio = dict(account.portfolio)
        portfolio[ticker] = account.holding(ticker) - quantity
        updated_account = replace(
            account, balance=account.balance + quote.net_proceeds, portfolio=portfolio
        )
        impact = -self.price_impact(stock, quantity)
        return await self._commit(
            snapshot, TradeType.SELL, stock, quantity, updated_account, impact, quote.net_proceeds, quote.fees
        )

    async def _commit(
        self,
        snapshot: MarketSnapshot,
        side: TradeType,
        stock: Stock,
        quantity: int,
        account: UserAccount,
        impact: float,
        total: float,
        fees: float,
    ) -> TradeResult:
        now = self._clock()
        new_price = self.impacted_price(stock.price, impact)
        updated_stock = replace(stock.reprice(new_price), manual_trade=True, last_trade_time=now)
        record = TradeRecord(
            timestamp=now,
            type=side,
            ticker=stock.ticker,
            quantity=quantity,
            price=stock.price,
            total=total,
            price_impact=impact,
            new_price=new_price,
            fees=fees,
        )

        try:
            await self.store.update(
                f"{USERS_PATH}/{account.username}",
                {"balance": account.balance, "portfolio": dict(account.portfolio)},
            )
            await self.store.set(
                STOCKS_PATH, [s.to_dict() for s in snapshot.replace_stock(updated_stock)]
            )
            await self.store.set(
                f"{TRADING_HISTORY_PATH}/{account.username}/{now}", record.to_dict()
            )
        except StoreWriteError as e:
            logger.warning(f"{side.value.capitalize()} of {stock.ticker} not fully saved: {e}")
            return TradeResult.rejected(f"Trade could not be saved, please retry ({e})")

        logger.info(
            f"{side.value.upper()} {quantity} {stock.ticker} @ {stock.price:.2f} "
            f"by {account.username} -> {new_price:.2f}"
        )
        return TradeResult(
            accepted=True, reason="OK", record=record, account=account, stock=updated_stock
        )
