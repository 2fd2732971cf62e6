"""Read-only views over a market snapshot."""

from __future__ import annotations

from dataclasses import dataclass

from marketsim.constants import LARGE_CAP_FLOOR, MID_CAP_FLOOR, SCREENER_LIMIT, StockFilter, TradeType
from marketsim.market.models import Stock, TradeRecord, UserAccount

_FILTERS = {
    StockFilter.UNDER_100: lambda s: s.price < 100,
    StockFilter.FROM_100_TO_500: lambda s: 100 <= s.price < 500,
    StockFilter.OVER_500: lambda s: s.price >= 500,
    StockFilter.LARGE_CAP: lambda s: s.market_cap > LARGE_CAP_FLOOR,
    StockFilter.MID_CAP: lambda s: MID_CAP_FLOOR <= s.market_cap <= LARGE_CAP_FLOOR,
    StockFilter.SMALL_CAP: lambda s: s.market_cap < MID_CAP_FLOOR,
}


def filter_stocks(
    stocks: list[Stock],
    query: str = "",
    stock_filter: StockFilter | str | None = None,
    limit: int = SCREENER_LIMIT,
) -> list[Stock]:
    """
    Screen the stock list.

    A search query matches ticker or name, case-insensitively. Without a query
    results are ordered by market cap, largest first.
    """
    result = list(stocks)
    if query:
        needle = query.lower()
        result = [s for s in result if needle in s.name.lower() or needle in s.ticker.lower()]
    if stock_filter:
        result = [s for s in result if _FILTERS[StockFilter(stock_filter)](s)]
    if not query:
        result.sort(key=lambda s: s.market_cap, reverse=True)
    return result[:limit]


def day_change_percent(stock: Stock) -> float:
    """Percent change from the open."""
    if stock.open <= 0:
        return 0.0
    return (stock.price - stock.open) / stock.open * 100


def portfolio_value(account: UserAccount, stocks: list[Stock]) -> float:
    """Cash plus holdings marked at current prices."""
    prices = {s.ticker: s.price for s in stocks}
    return account.balance + sum(q * prices.get(t, 0.0) for t, q in account.portfolio.items())


@dataclass(frozen=True)
class Holding:
    ticker: str
    quantity: int
    price: float
    value: float
    cost_basis: float
    pnl: float
    weight_pct: float


def holdings_summary(
    account: UserAccount, stocks: list[Stock], trades: list[TradeRecord] | None = None
) -> list[Holding]:
    """
    Per-position value, P&L and portfolio weight.

    Cost basis is the average buy price from `trades` when available, else
    the current price.
    """
    by_ticker = {s.ticker: s for s in stocks}
    total = portfolio_value(account, stocks)

    avg_cost: dict[str, float] = {}
    for ticker in account.portfolio:
        buys = [t for t in trades or [] if t.ticker == ticker and t.type == TradeType.BUY]
        bought = sum(t.quantity for t in buys)
        if bought:
            avg_cost[ticker] = sum(t.price * t.quantity for t in buys) / bought

    holdings = []
    for ticker, quantity in sorted(account.portfolio.items()):
        stock = by_ticker.get(ticker)
        if quantity <= 0 or stock is None:
            continue
        value = quantity * stock.price
        cost = quantity * avg_cost.get(ticker, stock.price)
        holdings.append(
            Holding(
                ticker=ticker,
                quantity=quantity,
                price=stock.price,
                value=value,
                cost_basis=cost,
                pnl=value - cost,
                weight_pct=value / total * 100 if total > 0 else 0.0,
            )
        )
    return holdings
