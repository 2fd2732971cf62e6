"""Tests for admin overrides."""

import pytest

from marketsim.config_loader import TradingConfig
from marketsim.errors import ValidationError
from marketsim.market.bootstrap import default_stocks
from marketsim.market.models import MarketSnapshot, UserAccount, stocks_from_store
from marketsim.trading.admin import AdminDesk


@pytest.fixture
def desk(store):
    return AdminDesk(store, TradingConfig())


@pytest.fixture
def split_snapshot(make_stock):
    return MarketSnapshot(
        stocks=[make_stock("SPL", 50.0, market_cap=50_000_000.0, high=52.0, low=49.0)],
        users={
            "alice": UserAccount("alice", password="pw", balance=100.0, portfolio={"SPL": 10}),
            "bob": UserAccount("bob", password="pw", balance=100.0, portfolio={"GCO": 3}),
        },
    )


class TestCreateStock:
    @pytest.mark.asyncio
    async def test_defaults_filled(self, desk, store, zzz_snapshot) -> None:
        stock = await desk.create_stock(zzz_snapshot, {"ticker": "new", "name": "New Co", "price": "40"})
        assert stock.ticker == "NEW"
        assert stock.price == 40.0
        assert stock.open == stock.high == stock.low == 40.0
        assert stock.market_cap == 500e9
        assert stock.pe == 25.0
        assert stock.dividend == 0.5
        assert stock.qtrly_div == 0.125
        assert stock.high52w == 48.0
        assert stock.low52w == 32.0
        assert stock.history == []

        stored = stocks_from_store(store.snapshot("stocks"))
        assert [s.ticker for s in stored] == ["ZZZ", "NEW"]

    @pytest.mark.asyncio
    async def test_explicit_fields(self, desk, zzz_snapshot) -> None:
        stock = await desk.create_stock(
            zzz_snapshot,
            {"ticker": "ABC", "name": "Abc", "price": 10, "marketCap": 1e6, "pe": 0, "dividend": 2},
        )
        assert stock.market_cap == 1e6
        assert stock.pe == 25.0
        assert stock.qtrly_div == 0.5

    @pytest.mark.asyncio
    async def test_validation(self, desk, zzz_snapshot) -> None:
        with pytest.raises(ValidationError, match="required"):
            await desk.create_stock(zzz_snapshot, {"ticker": "ABC", "price": 10})
        with pytest.raises(ValidationError, match="already exists"):
            await desk.create_stock(zzz_snapshot, {"ticker": "zzz", "name": "Dup", "price": 10})
        with pytest.raises(ValidationError):
            await desk.create_stock(zzz_snapshot, {"ticker": "ABC", "name": "Abc", "price": "ten"})
        with pytest.raises(ValidationError):
            await desk.create_stock(zzz_snapshot, {"ticker": "ABC", "name": "Abc", "price": -1})


class TestPriceAdjustments:
    @pytest.mark.asyncio
    async def test_absolute(self, desk, store, zzz_snapshot) -> None:
        stock = await desk.adjust_price_absolute(zzz_snapshot, "ZZZ", 5)
        assert stock.price == 105.0
        assert stock.high == 105.0
        assert stock.shares_outstanding == pytest.approx(1_000_000.0)
        assert stocks_from_store(store.snapshot("stocks"))[0].price == 105.0

    @pytest.mark.asyncio
    async def test_percent(self, desk, zzz_snapshot) -> None:
        stock = await desk.adjust_price_percent(zzz_snapshot, "ZZZ", -10)
        assert stock.price == 90.0
        assert stock.low == 90.0

    @pytest.mark.asyncio
    async def test_floor(self, desk, zzz_snapshot) -> None:
        stock = await desk.adjust_price_absolute(zzz_snapshot, "ZZZ", -500)
        assert stock.price == 0.01

    @pytest.mark.asyncio
    async def test_bad_input(self, desk, zzz_snapshot) -> None:
        with pytest.raises(ValidationError):
            await desk.adjust_price_absolute(zzz_snapshot, "NOPE", 1)
        with pytest.raises(ValidationError):
            await desk.adjust_price_percent(zzz_snapshot, "ZZZ", float("nan"))


class TestSplit:
    @pytest.mark.asyncio
    async def test_two_for_one(self, desk, store, split_snapshot) -> None:
        stock, users = await desk.execute_split(split_snapshot, "SPL", 2)
        assert stock.price == 25.0
        assert stock.open == 25.0
        assert stock.high == 26.0
        assert stock.low == 24.5
        assert stock.market_cap == 50_000_000.0
        assert users["alice"].holding("SPL") == 20
        assert "bob" not in users
        # Position value is unchanged
        assert users["alice"].holding("SPL") * stock.price == 10 * 50.0

        assert store.snapshot("users/alice") == {"portfolio": {"SPL": 20}}
        assert stocks_from_store(store.snapshot("stocks"))[0].price == 25.0

    @pytest.mark.asyncio
    async def test_fractional_ratio_rounds_holdings(self, desk, split_snapshot) -> None:
        stock, users = await desk.execute_split(split_snapshot, "SPL", 1.25)
        assert stock.price == 40.0
        assert users["alice"].holding("SPL") == 12

    @pytest.mark.asyncio
    async def test_invalid_ratio(self, desk, split_snapshot) -> None:
        for ratio in (0, -2, "x"):
            with pytest.raises(ValidationError):
                await desk.execute_split(split_snapshot, "SPL", ratio)


class TestAccounts:
    @pytest.mark.asyncio
    async def test_adjust_balance(self, desk, store, zzz_snapshot) -> None:
        account = await desk.adjust_balance(zzz_snapshot, "bob", 250)
        assert account.balance == 1_250.0
        assert store.snapshot("users/bob") == {"balance": 1_250.0}

    @pytest.mark.asyncio
    async def test_negative_balance_rejected(self, desk, store, zzz_snapshot) -> None:
        with pytest.raises(ValidationError, match="negative balance"):
            await desk.adjust_balance(zzz_snapshot, "bob", -1_000.01)
        assert store.dump() == {}

    @pytest.mark.asyncio
    async def test_unknown_user(self, desk, zzz_snapshot) -> None:
        with pytest.raises(ValidationError, match="Unknown user"):
            await desk.adjust_balance(zzz_snapshot, "ghost", 1)

    @pytest.mark.asyncio
    async def test_grant_and_remove(self, desk, store, zzz_snapshot) -> None:
        granted = await desk.grant_shares(zzz_snapshot, "bob", "ZZZ", 7)
        assert granted.holding("ZZZ") == 7
        zzz_snapshot.users["bob"] = granted

        removed = await desk.remove_shares(zzz_snapshot, "bob", "ZZZ", 2)
        assert removed.holding("ZZZ") == 5
        assert store.snapshot("users/bob/portfolio") == {"ZZZ": 5}

    @pytest.mark.asyncio
    async def test_remove_more_than_held(self, desk, zzz_snapshot) -> None:
        with pytest.raises(ValidationError, match="holds only 0"):
            await desk.remove_shares(zzz_snapshot, "bob", "ZZZ", 1)

    @pytest.mark.asyncio
    async def test_grant_requires_positive_quantity(self, desk, zzz_snapshot) -> None:
        with pytest.raises(ValidationError):
            await desk.grant_shares(zzz_snapshot, "bob", "ZZZ", 0)


class TestMarketState:
    @pytest.mark.asyncio
    async def test_start_stop(self, desk, store) -> None:
        await desk.stop_market()
        assert store.snapshot("marketState") == {"running": False}
        await desk.start_market()
        assert store.snapshot("marketState") == {"running": True}

    @pytest.mark.asyncio
    async def test_reset_stocks(self, desk, store) -> None:
        stocks = await desk.reset_stocks(default_stocks())
        assert len(stocks) == 8
        assert [s["ticker"] for s in store.snapshot("stocks")][:2] == ["GCO", "GFI"]
