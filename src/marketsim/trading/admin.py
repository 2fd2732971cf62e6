"""Administrative overrides of stock and account state."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any

from marketsim.config_loader import TradingConfig
from marketsim.constants import (
    DEFAULT_DIVIDEND,
    DEFAULT_MARKET_CAP,
    DEFAULT_PE,
    MARKET_STATE_PATH,
    STOCKS_PATH,
    USERS_PATH,
)
from marketsim.errors import ValidationError
from marketsim.market.models import MarketSnapshot, Stock, UserAccount
from marketsim.store.base import DocumentStore
from marketsim.trading.guard import is_positive_int

logger = logging.getLogger(__name__)


def _number(value: Any, field_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number, got: {value!r}") from e
    if not math.isfinite(number):
        raise ValidationError(f"{field_name} must be finite, got: {value!r}")
    return number


def _optional_positive(fields: dict[str, Any], key: str, default: float) -> float:
    value = fields.get(key)
    if value is None or value == "":
        return default
    number = _number(value, key)
    return number if number > 0 else default


class AdminDesk:
    """
    Unconditional overwrites issued by the admin.

    Every operation validates its input, computes the new records from the
    caller's snapshot, writes them and returns them. Multi-record operations
    (splits) are written stock first, then users, with no atomicity.
    """

    def __init__(self, store: DocumentStore, config: TradingConfig | None = None) -> None:
        self.store = store
        self.config = config or TradingConfig()

    def _require_stock(self, snapshot: MarketSnapshot, ticker: str | None) -> Stock:
        stock = snapshot.find_stock(ticker)
        if stock is None:
            raise ValidationError(f"Unknown stock: {ticker!r}")
        return stock

    def _require_user(self, snapshot: MarketSnapshot, username: str | None) -> UserAccount:
        if not username or username not in snapshot.users:
            raise ValidationError(f"Unknown user: {username!r}")
        return snapshot.users[username]

    async def _write_stocks(self, stocks: list[Stock]) -> None:
        await self.store.set(STOCKS_PATH, [s.to_dict() for s in stocks])

    # =========================================================================
    # Stocks
    # =========================================================================

    async def create_stock(self, snapshot: MarketSnapshot, fields: dict[str, Any]) -> Stock:
        """
        Add a stock.

        Required: `ticker`, `name`, `price`. Optional: `marketCap`, `pe`,
        `dividend`, `high52w`, `low52w`; missing or non-positive values fall
        back to defaults.
        """
        ticker = str(fields.get("ticker") or "").strip().upper()
        name = str(fields.get("name") or "").strip()
        if not ticker or not name or fields.get("price") in (None, ""):
            raise ValidationError("Ticker, name and price are required")
        if snapshot.find_stock(ticker) is not None:
            raise ValidationError(f"Stock {ticker} already exists")

        price = _number(fields["price"], "price")
        if price <= 0:
            raise ValidationError(f"Price must be positive, got: {price}")
        price = round(price, 2)

        dividend = _optional_positive(fields, "dividend", DEFAULT_DIVIDEND)
        stock = Stock(
            ticker=ticker,
            name=name,
            price=price,
            open=price,
            high=price,
            low=price,
            market_cap=_optional_positive(fields, "marketCap", DEFAULT_MARKET_CAP),
            pe=_optional_positive(fields, "pe", DEFAULT_PE),
            dividend=dividend,
            qtrly_div=dividend / 4,
            high52w=_optional_positive(fields, "high52w", round(price * 1.2, 2)),
            low52w=_optional_positive(fields, "low52w", round(price * 0.8, 2)),
        )
        await self._write_stocks([*snapshot.stocks, stock])
        logger.info(f"Created stock {ticker} at {price:.2f}")
        return stock

    async def _set_price(self, snapshot: MarketSnapshot, stock: Stock, new_price: float) -> Stock:
        new_price = max(self.config.min_price, round(new_price, 2))
        updated = stock.reprice(new_price)
        await self._write_stocks(snapshot.replace_stock(updated))
        logger.info(f"Admin set {stock.ticker} price {stock.price:.2f} -> {new_price:.2f}")
        return updated

    async def adjust_price_absolute(
        self, snapshot: MarketSnapshot, ticker: str | None, delta: Any
    ) -> Stock:
        stock = self._require_stock(snapshot, ticker)
        return await self._set_price(snapshot, stock, stock.price + _number(delta, "delta"))

    async def adjust_price_percent(
        self, snapshot: MarketSnapshot, ticker: str | None, pct: Any
    ) -> Stock:
        stock = self._require_stock(snapshot, ticker)
        factor = 1 + _number(pct, "percentage") / 100
        return await self._set_price(snapshot, stock, stock.price * factor)

    async def execute_split(
        self, snapshot: MarketSnapshot, ticker: str | None, ratio: Any
    ) -> tuple[Stock, dict[str, UserAccount]]:
        """
        Split `ticker` by `ratio`.

        Prices (current, open, high, low and 52-week bounds) are divided by the
        ratio; every holder's quantity is multiplied by it. Market cap is
        unchanged. Fractional resulting holdings are rounded to whole shares.
        """
        stock = self._require_stock(snapshot, ticker)
        ratio = _number(ratio, "ratio")
        if ratio <= 0:
            raise ValidationError(f"Split ratio must be positive, got: {ratio}")

        def split_price(value: float) -> float:
            return max(self.config.min_price, round(value / ratio, 2))

        updated_stock = replace(
            stock,
            price=split_price(stock.price),
            open=split_price(stock.open),
            high=split_price(stock.high),
            low=split_price(stock.low),
            high52w=split_price(stock.high52w),
            low52w=split_price(stock.low52w),
        )

        updated_users: dict[str, UserAccount] = {}
        for name, account in snapshot.users.items():
            held = account.holding(stock.ticker)
            if held:
                portfolio = dict(account.portfolio)
                portfolio[stock.ticker] = int(round(held * ratio))
                updated_users[name] = replace(account, portfolio=portfolio)

        await self._write_stocks(snapshot.replace_stock(updated_stock))
        for name, account in updated_users.items():
            await self.store.update(f"{USERS_PATH}/{name}", {"portfolio": dict(account.portfolio)})

        logger.info(
            f"Split {stock.ticker} {ratio:g}:1, {len(updated_users)} holder(s) adjusted"
        )
        return updated_stock, updated_users

    async def reset_stocks(self, defaults: list[Stock]) -> list[Stock]:
        """Overwrite the stock list with `defaults`."""
        await self._write_stocks(defaults)
        logger.info(f"Reset stocks to {len(defaults)} defaults")
        return defaults

    # =========================================================================
    # Accounts
    # =========================================================================

    async def adjust_balance(
        self, snapshot: MarketSnapshot, username: str | None, delta: Any
    ) -> UserAccount:
        account = self._require_user(snapshot, username)
        new_balance = account.balance + _number(delta, "amount")
        if new_balance < 0:
            raise ValidationError(
                f"Adjustment would leave {username} with a negative balance ({new_balance:,.2f})"
            )
        await self.store.update(f"{USERS_PATH}/{username}", {"balance": new_balance})
        logger.info(f"Admin adjusted {username} balance to {new_balance:,.2f}")
        return replace(account, balance=new_balance)

    async def grant_shares(
        self, snapshot: MarketSnapshot, username: str | None, ticker: str | None, quantity: Any
    ) -> UserAccount:
        return await self._change_holding(snapshot, username, ticker, quantity, sign=1)

    async def remove_shares(
        self, snapshot: MarketSnapshot, username: str | None, ticker: str | None, quantity: Any
    ) -> UserAccount:
        return await self._change_holding(snapshot, username, ticker, quantity, sign=-1)

    async def _change_holding(
        self,
        snapshot: MarketSnapshot,
        username: str | None,
        ticker: str | None,
        quantity: Any,
        sign: int,
    ) -> UserAccount:
        account = self._require_user(snapshot, username)
        stock = self._require_stock(snapshot, ticker)
        if not is_positive_int(quantity):
            raise ValidationError(f"Quantity must be a positive whole number, got: {quantity!r}")

        held = account.holding(stock.ticker)
        if sign < 0 and held < quantity:
            raise ValidationError(f"{username} holds only {held} {stock.ticker}")

        portfolio = dict(account.portfolio)
        portfolio[stock.ticker] = held + sign * quantity
        await self.store.update(f"{USERS_PATH}/{username}", {"portfolio": portfolio})
        action = "granted" if sign > 0 else "removed"
        logger.info(f"Admin {action} {quantity} {stock.ticker} for {username}")
        return replace(account, portfolio=portfolio)

    # =========================================================================
    # Market state
    # =========================================================================

    async def set_running(self, running: bool) -> None:
        await self.store.update(MARKET_STATE_PATH, {"running": running})
        logger.info(f"Market {'started' if running else 'stopped'}")

    async def start_market(self) -> None:
        await self.set_running(True)

    async def stop_market(self) -> None:
        await self.set_running(False)
