"""Tests for soft-lease leader election."""

import asyncio

import pytest

from marketsim.config_loader import CoordinatorConfig
from marketsim.constants import CONTROLLER_PATH
from marketsim.engine.coordinator import MarketCoordinator
from marketsim.market.models import ControllerRecord


class ManualClock:
    """Epoch-ms clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def config():
    return CoordinatorConfig(heartbeat_interval_sec=3.0, lease_timeout_sec=10.0)


class TestLeaseRule:
    def test_missing_record_means_leader(self, store, config, clock) -> None:
        coord = MarketCoordinator(store, config, session_id="a", clock=clock)
        assert coord.is_leader_for(None, clock()) is True

    def test_own_record_means_leader(self, store, config, clock) -> None:
        coord = MarketCoordinator(store, config, session_id="a", clock=clock)
        record = ControllerRecord("a", clock() - 60_000)
        assert coord.is_leader_for(record, clock()) is True

    def test_fresh_foreign_record_means_follower(self, store, config, clock) -> None:
        coord = MarketCoordinator(store, config, session_id="a", clock=clock)
        assert coord.is_leader_for(ControllerRecord("b", clock() - 9_000), clock()) is False
        assert coord.is_leader_for(ControllerRecord("b", clock() - 10_000), clock()) is False

    def test_stale_foreign_record_means_leader(self, store, config, clock) -> None:
        coord = MarketCoordinator(store, config, session_id="a", clock=clock)
        assert coord.is_leader_for(ControllerRecord("b", clock() - 10_001), clock()) is True


class TestElection:
    @pytest.mark.asyncio
    async def test_single_client_claims_lease(self, store, config, clock) -> None:
        changes = []
        coord = MarketCoordinator(
            store, config, user="alice", session_id="a", clock=clock, on_change=changes.append
        )
        await coord.start()
        try:
            assert coord.is_leader
            assert changes == [True]
            assert store.snapshot(CONTROLLER_PATH) == {
                "sessionId": "a",
                "timestamp": clock(),
                "user": "alice",
            }
        finally:
            await coord.stop()
        assert coord.is_leader is False
        assert changes == [True, False]

    @pytest.mark.asyncio
    async def test_latest_starter_wins(self, store, config, clock) -> None:
        a = MarketCoordinator(store, config, session_id="a", clock=clock)
        b = MarketCoordinator(store, config, session_id="b", clock=clock)
        await a.start()
        await b.start()
        await settle()
        try:
            assert b.is_leader
            assert not a.is_leader
        finally:
            await a.stop()
            await b.stop()

    @pytest.mark.asyncio
    async def test_follower_takes_over_stale_lease(self, store, config, clock) -> None:
        a = MarketCoordinator(store, config, session_id="a", clock=clock)
        b = MarketCoordinator(store, config, session_id="b", clock=clock)
        await a.start()
        await b.start()
        await settle()
        assert not a.is_leader

        # Leader vanishes without clearing its record
        await b.stop()

        clock.advance(5)
        await a.heartbeat()
        assert not a.is_leader

        clock.advance(6)
        await a.heartbeat()
        assert a.is_leader
        assert store.snapshot(CONTROLLER_PATH)["sessionId"] == "a"
        await a.stop()

    @pytest.mark.asyncio
    async def test_heartbeat_refreshes_timestamp(self, store, config, clock) -> None:
        coord = MarketCoordinator(store, config, session_id="a", clock=clock)
        await coord.start()
        clock.advance(3)
        await coord.heartbeat()
        assert store.snapshot(CONTROLLER_PATH)["timestamp"] == clock()
        await coord.stop()

    @pytest.mark.asyncio
    async def test_follower_does_not_publish(self, store, config, clock) -> None:
        a = MarketCoordinator(store, config, session_id="a", clock=clock)
        b = MarketCoordinator(store, config, session_id="b", clock=clock)
        await a.start()
        await b.start()
        await settle()
        clock.advance(3)
        await a.heartbeat()
        assert store.snapshot(CONTROLLER_PATH)["sessionId"] == "b"
        await a.stop()
        await b.stop()
