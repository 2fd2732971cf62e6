"""Pre-trade checks for buy and sell intents."""

from __future__ import annotations

import logging
import math

from marketsim.config_loader import TradingConfig
from marketsim.market.models import MarketSnapshot
from marketsim.trading.fees import FeePolicy

logger = logging.getLogger(__name__)


def is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class TradeGuard:
    """
    Validates orders against the caller's cached market snapshot.

    Checks:
    - Stock selected and known
    - Quantity is a positive integer
    - Caller authenticated and account available
    - Available float (buys)
    - Single-trade float cap (buys only)
    - Funds (buys) or holdings (sells)
    """

    def __init__(self, config: TradingConfig | None = None, fees: FeePolicy | None = None) -> None:
        self.config = config or TradingConfig()
        self.fees = fees or FeePolicy(self.config.fees)

    def available_float(self, snapshot: MarketSnapshot, ticker: str) -> float:
        """Implied shares outstanding minus shares held by every user."""
        stock = snapshot.find_stock(ticker)
        if stock is None:
            return 0.0
        return stock.shares_outstanding - snapshot.total_owned(ticker)

    def max_order_size(self, available: float) -> int:
        """Largest single buy allowed out of `available` shares."""
        # Rounded first so float noise in implied shares cannot cost a share
        return max(0, math.floor(round(available * self.config.max_float_fraction, 6)))

    def _check_common(
        self, snapshot: MarketSnapshot, ticker: str | None, quantity: object, username: str | None
    ) -> tuple[bool, str]:
        if not ticker or snapshot.find_stock(ticker) is None:
            return False, "No stock selected"
        if not is_positive_int(quantity):
            return False, f"Quantity must be a positive whole number, got: {quantity!r}"
        if not username:
            return False, "Please log in to trade"
        if username not in snapshot.users:
            return False, f"Account '{username}' is unavailable"
        return True, "OK"

    def check_buy(
        self, snapshot: MarketSnapshot, ticker: str | None, quantity: object, username: str | None
    ) -> tuple[bool, str]:
        """Check if a buy is allowed."""
        ok, reason = self._check_common(snapshot, ticker, quantity, username)
        if not ok:
            return ok, reason

        stock = snapshot.find_stock(ticker)
        total_shares = stock.shares_outstanding
        owned = snapshot.total_owned(ticker)
        available = total_shares - owned

        if quantity > available:
            pct_owned = owned / total_shares * 100 if total_shares > 0 else 100.0
            return False, (
                f"Only {max(0, math.floor(available)):,} shares of {ticker} available "
                f"({pct_owned:.2f}% owned by traders)"
            )

        cap = self.max_order_size(available)
        if quantity > cap:
            return False, (
                f"Order exceeds {self.config.max_float_fraction:.0%} of available float "
                f"(max {cap:,} shares)"
            )

        quote = self.fees.quote(stock.price, quantity)
        balance = snapshot.users[username].balance
        if balance < quote.total_cost:
            return False, f"Insufficient funds: need ${quote.total_cost:,.2f}, have ${balance:,.2f}"

        return True, "OK"

    def check_sell(
        self, snapshot: MarketSnapshot, ticker: str | None, quantity: object, username: str | None
    ) -> tuple[bool, str]:
        """Check if a sell is allowed. Sells have no float cap."""
        ok, reason = self._check_common(snapshot, ticker, quantity, username)
        if not ok:
            return ok, reason

        account = snapshot.users[username]
        held = account.holding(ticker)
        if quantity > held:
            return False, f"Insufficient shares: you hold {held} {ticker}"

        stock = snapshot.find_stock(ticker)
        quote = self.fees.quote(stock.price, quantity)
        if account.balance + quote.net_proceeds < 0:
            return False, "Fees exceed sale proceeds and balance"

        return True, "OK"
