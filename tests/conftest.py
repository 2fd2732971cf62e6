"""Shared fixtures for marketsim tests."""

import itertools
import zoneinfo

import pytest

from marketsim.config_loader import SessionConfig
from marketsim.constants import STOCKS_PATH, USERS_PATH
from marketsim.market.models import MarketSnapshot, Stock, UserAccount
from marketsim.store.memory import MemoryDocumentStore
from marketsim.time.session_manager import SessionManager


def build_stock(ticker="ZZZ", price=100.0, market_cap=100_000_000.0, **kwargs) -> Stock:
    fields = dict(
        ticker=ticker,
        name=kwargs.pop("name", f"{ticker} Corp"),
        price=price,
        open=price,
        high=price,
        low=price,
        market_cap=market_cap,
        pe=20.0,
        dividend=1.0,
        qtrly_div=0.25,
        high52w=price * 1.2,
        low52w=price * 0.8,
    )
    fields.update(kwargs)
    return Stock(**fields)


@pytest.fixture
def nyc_tz():
    return zoneinfo.ZoneInfo("America/New_York")


@pytest.fixture
def session():
    return SessionManager(SessionConfig())


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def ms_clock():
    """Strictly increasing epoch-ms clock so trade records never collide."""
    counter = itertools.count(1_700_000_000_000)
    return lambda: next(counter)


@pytest.fixture
def zzz_snapshot():
    """Scenario market: ZZZ at 100.00 with 1,000,000 implied shares."""
    return MarketSnapshot(
        stocks=[build_stock()],
        users={
            "alice": UserAccount("alice", password="pw", balance=20_000_000.0),
            "bob": UserAccount("bob", password="pw", balance=1_000.0),
        },
    )


def write_snapshot(store: MemoryDocumentStore, snapshot: MarketSnapshot) -> None:
    """Write a snapshot's stocks and users straight into a memory store."""
    store._write(STOCKS_PATH, [s.to_dict() for s in snapshot.stocks])
    store._write(USERS_PATH, {name: u.to_dict() for name, u in snapshot.users.items()})


@pytest.fixture
def make_stock():
    return build_stock


@pytest.fixture
def seed_snapshot():
    return write_snapshot
