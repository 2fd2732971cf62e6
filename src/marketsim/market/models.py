"""Market data models.

Records are stored with camelCase keys, which is what every client reads
and writes. The dataclasses here are the in-process view.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field, replace
from typing import Any
from uuid import uuid4

from marketsim.constants import TradeType


def generate_session_id() -> str:
    """Generate unique client session ID."""
    return str(uuid4())


def now_ms() -> int:
    """Current wall clock as epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class HistoryPoint:
    """One intraday bar."""

    time: str
    price: float
    volume: int = 0
    is_live: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "price": self.price,
            "volume": self.volume,
            "isLive": self.is_live,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryPoint:
        return cls(
            time=str(data.get("time", "")),
            price=float(data.get("price", 0.0)),
            volume=int(data.get("volume", 0) or 0),
            is_live=bool(data.get("isLive", False)),
        )


@dataclass
class Stock:
    """Live stock state shared by all clients."""

    ticker: str
    name: str
    price: float
    open: float
    high: float
    low: float
    market_cap: float
    pe: float = 0.0
    dividend: float = 0.0
    qtrly_div: float = 0.0
    high52w: float = 0.0
    low52w: float = 0.0
    history: list[HistoryPoint] = field(default_factory=list)
    last_momentum: float = 0.0
    last_update: int | None = None
    last_trade_time: int | None = None
    manual_trade: bool = False

    @property
    def shares_outstanding(self) -> float:
        """Implied shares outstanding at the last recompute."""
        if self.price <= 0:
            return 0.0
        return self.market_cap / self.price

    def reprice(self, new_price: float) -> Stock:
        """Return a copy at `new_price` with extrema and implied shares preserved."""
        shares = self.shares_outstanding
        return replace(
            self,
            price=new_price,
            high=max(self.high, new_price),
            low=min(self.low, new_price),
            market_cap=shares * new_price,
        )

    def numeric_fields(self) -> dict[str, float]:
        return {
            "price": self.price,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "marketCap": self.market_cap,
            "pe": self.pe,
            "dividend": self.dividend,
            "qtrlyDiv": self.qtrly_div,
            "high52w": self.high52w,
            "low52w": self.low52w,
            "lastMomentum": self.last_momentum,
        }

    def is_finite(self) -> bool:
        """Check every numeric field (history included) is finite."""
        if not all(math.isfinite(v) for v in self.numeric_fields().values()):
            return False
        return all(math.isfinite(p.price) for p in self.history)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ticker": self.ticker,
            "name": self.name,
            **self.numeric_fields(),
            "history": [p.to_dict() for p in self.history],
            "manualTrade": self.manual_trade,
        }
        if self.last_update is not None:
            data["lastUpdate"] = self.last_update
        if self.last_trade_time is not None:
            data["lastTradeTime"] = self.last_trade_time
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Stock:
        price = float(data.get("price", 0.0))
        return cls(
            ticker=str(data["ticker"]),
            name=str(data.get("name", data["ticker"])),
            price=price,
            open=float(data.get("open", price)),
            high=float(data.get("high", price)),
            low=float(data.get("low", price)),
            market_cap=float(data.get("marketCap", 0.0)),
            pe=float(data.get("pe", 0.0)),
            dividend=float(data.get("dividend", 0.0)),
            qtrly_div=float(data.get("qtrlyDiv", 0.0)),
            high52w=float(data.get("high52w", 0.0)),
            low52w=float(data.get("low52w", 0.0)),
            history=[HistoryPoint.from_dict(p) for p in data.get("history") or []],
            last_momentum=float(data.get("lastMomentum", 0.0)),
            last_update=data.get("lastUpdate"),
            last_trade_time=data.get("lastTradeTime"),
            manual_trade=bool(data.get("manualTrade", False)),
        )


@dataclass
class UserAccount:
    """A trading account."""

    username: str
    password: str = ""
    balance: float = 0.0
    portfolio: dict[str, int] = field(default_factory=dict)

    def holding(self, ticker: str) -> int:
        return int(self.portfolio.get(ticker, 0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "password": self.password,
            "balance": self.balance,
            "portfolio": dict(self.portfolio),
        }

    @classmethod
    def from_dict(cls, username: str, data: dict[str, Any]) -> UserAccount:
        portfolio = {t: int(q) for t, q in (data.get("portfolio") or {}).items()}
        return cls(
            username=username,
            password=str(data.get("password", "")),
            balance=float(data.get("balance", 0.0)),
            portfolio=portfolio,
        )


@dataclass(frozen=True)
class TradeRecord:
    """Append-only record of an accepted trade."""

    timestamp: int
    type: TradeType
    ticker: str
    quantity: int
    price: float
    total: float
    price_impact: float
    new_price: float
    fees: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "type": self.type.value,
            "ticker": self.ticker,
            "quantity": self.quantity,
            "price": self.price,
            "total": self.total,
            "priceImpact": self.price_impact,
            "newPrice": self.new_price,
            "fees": self.fees,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradeRecord:
        return cls(
            timestamp=int(data["timestamp"]),
            type=TradeType(data["type"]),
            ticker=str(data["ticker"]),
            quantity=int(data["quantity"]),
            price=float(data["price"]),
            total=float(data["total"]),
            price_impact=float(data.get("priceImpact", 0.0)),
            new_price=float(data.get("newPrice", data["price"])),
            fees=float(data.get("fees", 0.0)),
        )


@dataclass(frozen=True)
class ControllerRecord:
    """Leader lease record."""

    session_id: str
    timestamp: int
    user: str = "anonymous"

    def to_dict(self) -> dict[str, Any]:
        return {"sessionId": self.session_id, "timestamp": self.timestamp, "user": self.user}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ControllerRecord | None:
        if not data or "sessionId" not in data:
            return None
        return cls(
            session_id=str(data["sessionId"]),
            timestamp=int(data.get("timestamp", 0)),
            user=str(data.get("user", "anonymous")),
        )


@dataclass
class MarketSnapshot:
    """A client's cached view of the shared market."""

    stocks: list[Stock] = field(default_factory=list)
    users: dict[str, UserAccount] = field(default_factory=dict)
    running: bool = True

    def find_stock(self, ticker: str | None) -> Stock | None:
        if not ticker:
            return None
        for stock in self.stocks:
            if stock.ticker == ticker:
                return stock
        return None

    def total_owned(self, ticker: str) -> int:
        """Shares of `ticker` held across all user portfolios."""
        return sum(account.holding(ticker) for account in self.users.values())

    def replace_stock(self, updated: Stock) -> list[Stock]:
        return [updated if s.ticker == updated.ticker else s for s in self.stocks]


def stocks_from_store(value: Any) -> list[Stock]:
    """Decode the `stocks` document (a list, or a dict keyed by index)."""
    if not value:
        return []
    items = value.values() if isinstance(value, dict) else value
    return [Stock.from_dict(item) for item in items if item]


def users_from_store(value: Any) -> dict[str, UserAccount]:
    if not value:
        return {}
    return {name: UserAccount.from_dict(name, data or {}) for name, data in value.items()}
