"""Tests for fees, pre-trade checks and trade execution."""

import pytest

from marketsim.config_loader import FeeConfig, TradingConfig
from marketsim.constants import TradeType
from marketsim.errors import StoreWriteError
from marketsim.market.models import MarketSnapshot, TradeRecord, UserAccount, stocks_from_store
from marketsim.store.memory import MemoryDocumentStore
from marketsim.trading.executor import TradeExecutor
from marketsim.trading.fees import FeePolicy
from marketsim.trading.guard import TradeGuard, is_positive_int


class FailingStore(MemoryDocumentStore):
    async def update(self, path, fields):
        raise StoreWriteError(path, "offline")


def apply(snapshot: MarketSnapshot, result) -> None:
    """Fold an accepted trade back into the caller's snapshot."""
    snapshot.stocks = snapshot.replace_stock(result.stock)
    snapshot.users[result.account.username] = result.account


@pytest.fixture
def executor(store, ms_clock):
    return TradeExecutor(store, TradingConfig(), clock=ms_clock)


class TestFeePolicy:
    def test_default_charges_nothing(self) -> None:
        quote = FeePolicy().quote(100.0, 10)
        assert quote.base == 1000.0
        assert quote.fees == 0.0
        assert quote.total_cost == 1000.0
        assert quote.net_proceeds == 1000.0

    def test_commission_and_spread(self) -> None:
        policy = FeePolicy(FeeConfig(commission_rate=0.01, minimum_fee=5.0, spread_rate=0.001))
        quote = policy.quote(100.0, 10)
        assert quote.commission == 10.0
        assert quote.spread == pytest.approx(1.0)
        assert quote.total_cost == pytest.approx(1011.0)
        assert quote.net_proceeds == pytest.approx(989.0)

    def test_minimum_fee_applies(self) -> None:
        policy = FeePolicy(FeeConfig(commission_rate=0.001, minimum_fee=5.0))
        assert policy.quote(10.0, 1).commission == 5.0


class TestTradeGuard:
    def test_is_positive_int(self) -> None:
        assert is_positive_int(1)
        for bad in (0, -1, 1.5, True, "5", None):
            assert not is_positive_int(bad)

    def test_max_order_size(self) -> None:
        guard = TradeGuard()
        assert guard.max_order_size(990_000.0) == 99_000
        # Float noise in implied shares must not cost a share
        assert guard.max_order_size(989_999.9999999) == 99_000
        assert guard.max_order_size(5.0) == 0
        assert guard.max_order_size(-3.0) == 0

    def test_common_rejections(self, zzz_snapshot) -> None:
        guard = TradeGuard()
        assert guard.check_buy(zzz_snapshot, None, 1, "alice") == (False, "No stock selected")
        assert guard.check_buy(zzz_snapshot, "NOPE", 1, "alice") == (False, "No stock selected")
        for qty in (0, -5, 2.5, True, "10"):
            ok, reason = guard.check_buy(zzz_snapshot, "ZZZ", qty, "alice")
            assert not ok
            assert "positive whole number" in reason
        assert guard.check_buy(zzz_snapshot, "ZZZ", 1, None) == (False, "Please log in to trade")
        ok, reason = guard.check_sell(zzz_snapshot, "ZZZ", 1, "ghost")
        assert not ok
        assert "unavailable" in reason

    def test_available_float(self, zzz_snapshot) -> None:
        guard = TradeGuard()
        zzz_snapshot.users["alice"].portfolio["ZZZ"] = 250_000
        assert guard.available_float(zzz_snapshot, "ZZZ") == pytest.approx(750_000)
        assert guard.available_float(zzz_snapshot, "NOPE") == 0.0

    def test_not_enough_float(self, make_stock) -> None:
        snapshot = MarketSnapshot(
            stocks=[make_stock("TINY", 100.0, market_cap=10_000.0)],
            users={
                "whale": UserAccount("whale", balance=1e9, portfolio={"TINY": 95}),
                "alice": UserAccount("alice", balance=1e9),
            },
        )
        guard = TradeGuard()
        ok, reason = guard.check_buy(snapshot, "TINY", 6, "alice")
        assert not ok
        assert reason == "Only 5 shares of TINY available (95.00% owned by traders)"

        ok, reason = guard.check_buy(snapshot, "TINY", 1, "alice")
        assert not ok
        assert reason == "Order exceeds 10% of available float (max 0 shares)"

    def test_insufficient_funds(self, zzz_snapshot) -> None:
        ok, reason = TradeGuard().check_buy(zzz_snapshot, "ZZZ", 11, "bob")
        assert not ok
        assert reason.startswith("Insufficient funds")
        assert TradeGuard().check_buy(zzz_snapshot, "ZZZ", 10, "bob") == (True, "OK")

    def test_insufficient_shares(self, zzz_snapshot) -> None:
        zzz_snapshot.users["bob"].portfolio["ZZZ"] = 3
        ok, reason = TradeGuard().check_sell(zzz_snapshot, "ZZZ", 4, "bob")
        assert not ok
        assert reason == "Insufficient shares: you hold 3 ZZZ"

    def test_sells_have_no_float_cap(self, zzz_snapshot) -> None:
        zzz_snapshot.users["alice"].portfolio["ZZZ"] = 500_000
        assert TradeGuard().check_sell(zzz_snapshot, "ZZZ", 500_000, "alice") == (True, "OK")

    def test_fees_exceeding_proceeds(self, make_stock) -> None:
        snapshot = MarketSnapshot(
            stocks=[make_stock("ZZZ", 100.0)],
            users={"carol": UserAccount("carol", balance=0.0, portfolio={"ZZZ": 1})},
        )
        guard = TradeGuard(TradingConfig(fees=FeeConfig(minimum_fee=500.0)))
        assert guard.check_sell(snapshot, "ZZZ", 1, "carol") == (
            False,
            "Fees exceed sale proceeds and balance",
        )


class TestPriceImpact:
    def test_impact_formula(self, executor, make_stock) -> None:
        stock = make_stock("ZZZ", 100.0, market_cap=100_000_000.0)
        assert executor.price_impact(stock, 10_000) == pytest.approx(1.0)
        assert executor.impacted_price(100.0, 1.0) == 101.0
        assert executor.impacted_price(0.02, -5.0) == 0.01

    @pytest.mark.asyncio
    async def test_scenario_one_percent_buy_then_cap(self, executor, zzz_snapshot, store) -> None:
        result = await executor.buy(zzz_snapshot, "ZZZ", 10_000, "alice")
        assert result.accepted
        assert result.record.new_price == 101.0
        assert result.record.price == 100.0
        assert result.record.price_impact == pytest.approx(1.0)
        assert result.stock.market_cap == pytest.approx(101_000_000.0)
        assert result.account.balance == pytest.approx(20_000_000.0 - 1_000_000.0)
        apply(zzz_snapshot, result)

        # 990,000 shares remain available; 10% of that is 99,000
        rejected = await executor.buy(zzz_snapshot, "ZZZ", 99_001, "alice")
        assert not rejected.accepted
        assert rejected.reason == "Order exceeds 10% of available float (max 99,000 shares)"

        accepted = await executor.buy(zzz_snapshot, "ZZZ", 99_000, "alice")
        assert accepted.accepted

    @pytest.mark.asyncio
    async def test_buy_raises_sell_lowers(self, executor, zzz_snapshot) -> None:
        bought = await executor.buy(zzz_snapshot, "ZZZ", 5_000, "alice")
        assert bought.stock.price > 100.0
        apply(zzz_snapshot, bought)

        sold = await executor.sell(zzz_snapshot, "ZZZ", 5_000, "alice")
        assert sold.accepted
        assert sold.record.type == TradeType.SELL
        assert sold.stock.price < bought.stock.price
        assert sold.record.price_impact < 0

    @pytest.mark.asyncio
    async def test_round_trip_returns_to_start(self, executor, zzz_snapshot) -> None:
        bought = await executor.buy(zzz_snapshot, "ZZZ", 100, "alice")
        assert bought.stock.price == 100.01
        apply(zzz_snapshot, bought)
        sold = await executor.sell(zzz_snapshot, "ZZZ", 100, "alice")
        apply(zzz_snapshot, sold)
        assert zzz_snapshot.find_stock("ZZZ").price == 100.0
        assert zzz_snapshot.users["alice"].holding("ZZZ") == 0

    @pytest.mark.asyncio
    async def test_implied_shares_conserved(self, executor, zzz_snapshot) -> None:
        guard = executor.guard
        for qty in (1_000, 20_000, 7):
            result = await executor.buy(zzz_snapshot, "ZZZ", qty, "alice")
            assert result.accepted
            apply(zzz_snapshot, result)
        stock = zzz_snapshot.find_stock("ZZZ")
        assert stock.shares_outstanding == pytest.approx(1_000_000.0)
        owned = zzz_snapshot.total_owned("ZZZ")
        assert owned == 21_007
        assert guard.available_float(zzz_snapshot, "ZZZ") + owned == pytest.approx(1_000_000.0)


class TestExecution:
    @pytest.mark.asyncio
    async def test_writes_user_stocks_and_record(self, executor, zzz_snapshot, store) -> None:
        result = await executor.buy(zzz_snapshot, "ZZZ", 10, "alice")
        assert result.accepted

        user = store.snapshot("users/alice")
        assert user["portfolio"] == {"ZZZ": 10}
        assert user["balance"] == pytest.approx(20_000_000.0 - 1_000.0)

        stock = stocks_from_store(store.snapshot("stocks"))[0]
        assert stock.price == result.stock.price
        assert stock.manual_trade is True
        assert stock.last_trade_time == result.record.timestamp

        history = store.snapshot("tradingHistory/alice")
        assert list(history) == [str(result.record.timestamp)]
        record = TradeRecord.from_dict(history[str(result.record.timestamp)])
        assert record == result.record
        assert record.total == 1_000.0

    @pytest.mark.asyncio
    async def test_snapshot_not_mutated(self, executor, zzz_snapshot) -> None:
        await executor.buy(zzz_snapshot, "ZZZ", 10, "alice")
        assert zzz_snapshot.find_stock("ZZZ").price == 100.0
        assert zzz_snapshot.users["alice"].holding("ZZZ") == 0

    @pytest.mark.asyncio
    async def test_rejected_trade_writes_nothing(self, executor, zzz_snapshot, store) -> None:
        result = await executor.buy(zzz_snapshot, "ZZZ", 1_000, "bob")
        assert not result.accepted
        assert store.dump() == {}

    @pytest.mark.asyncio
    async def test_fees_recorded(self, store, zzz_snapshot, ms_clock) -> None:
        config = TradingConfig(fees=FeeConfig(commission_rate=0.01, minimum_fee=5.0, spread_rate=0.001))
        executor = TradeExecutor(store, config, clock=ms_clock)

        bought = await executor.buy(zzz_snapshot, "ZZZ", 10, "alice")
        assert bought.record.fees == pytest.approx(11.0)
        assert bought.record.total == pytest.approx(1011.0)
        assert bought.account.balance == pytest.approx(20_000_000.0 - 1011.0)
        apply(zzz_snapshot, bought)

        sold = await executor.sell(zzz_snapshot, "ZZZ", 10, "alice")
        # Commission is 1% of the base, spread 0.1%
        base = 10 * bought.stock.price
        assert sold.record.total == pytest.approx(base - base * 0.011)

    @pytest.mark.asyncio
    async def test_write_failure_rejects(self, zzz_snapshot, ms_clock) -> None:
        executor = TradeExecutor(FailingStore(), clock=ms_clock)
        result = await executor.buy(zzz_snapshot, "ZZZ", 10, "alice")
        assert not result.accepted
        assert result.reason.startswith("Trade could not be saved, please retry")
