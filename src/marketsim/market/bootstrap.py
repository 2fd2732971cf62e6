"""Default market contents and first-run seeding."""

from __future__ import annotations

import logging

from marketsim.constants import MARKET_STATE_PATH, STOCKS_PATH, USERS_PATH
from marketsim.market.models import Stock, UserAccount
from marketsim.store.base import DocumentStore

logger = logging.getLogger(__name__)

# ticker, name, price, high, low, market cap, pe, 52w high, 52w low, dividend, qtrly div
_DEFAULT_STOCK_ROWS = [
    ("GCO", "Georgia Commerce", 342.18, 345.60, 340.00, 520e9, 31.45, 365.00, 280.00, 1.20, 0.30),
    ("GFI", "Georgia Financial Inc", 248.02, 253.38, 247.27, 374e9, 38.35, 260.09, 169.21, 0.41, 0.26),
    ("SAV", "Savannah Shipping", 203.89, 206.50, 202.00, 312e9, 35.20, 225.00, 175.00, 0.85, 0.21),
    ("ATL", "Atlanta Tech Corp", 156.75, 159.20, 155.30, 250e9, 42.15, 180.50, 120.00, 0.15, 0.10),
    ("RED", "Red Clay Industries", 127.54, 130.20, 126.00, 198e9, 25.67, 145.30, 95.00, 0.50, 0.13),
    ("PEA", "Peach Energy Group", 89.43, 91.80, 88.50, 145e9, 28.90, 98.20, 65.30, 0.75, 0.19),
    ("COL", "Columbus Manufacturing", 112.34, 115.60, 111.00, 175e9, 22.15, 130.00, 85.00, 1.50, 0.38),
    ("AUG", "Augusta Pharmaceuticals", 78.92, 81.20, 77.50, 125e9, 52.30, 92.50, 58.00, 0.0, 0.0),
]


def default_stocks() -> list[Stock]:
    """Fresh copies of the default listing."""
    return [
        Stock(
            ticker=ticker,
            name=name,
            price=price,
            open=price,
            high=high,
            low=low,
            market_cap=cap,
            pe=pe,
            dividend=dividend,
            qtrly_div=qtrly,
            high52w=high52w,
            low52w=low52w,
        )
        for ticker, name, price, high, low, cap, pe, high52w, low52w, dividend, qtrly in _DEFAULT_STOCK_ROWS
    ]


def default_users(admin_username: str = "admin", admin_password: str = "admin") -> list[UserAccount]:
    return [
        UserAccount("demo", password="demo", balance=100_000.0, portfolio={"GFI": 10, "ATL": 5}),
        UserAccount(admin_username, password=admin_password, balance=1_000_000.0),
    ]


async def seed_store(
    store: DocumentStore,
    admin_username: str = "admin",
    admin_password: str = "admin",
    force: bool = False,
) -> list[str]:
    """
    Write defaults for every top-level document that is missing.

    Args:
        store: Target store.
        admin_username: Name of the seeded admin account.
        admin_password: Password of the seeded admin account.
        force: Overwrite documents that already exist.

    Returns:
        Paths that were written.
    """
    written: list[str] = []

    if force or not store.snapshot(STOCKS_PATH):
        await store.set(STOCKS_PATH, [s.to_dict() for s in default_stocks()])
        written.append(STOCKS_PATH)

    if force or not store.snapshot(USERS_PATH):
        users = default_users(admin_username, admin_password)
        await store.set(USERS_PATH, {u.username: u.to_dict() for u in users})
        written.append(USERS_PATH)

    if force or store.snapshot(MARKET_STATE_PATH) is None:
        await store.set(MARKET_STATE_PATH, {"running": True})
        written.append(MARKET_STATE_PATH)

    if written:
        logger.info(f"Seeded store: {', '.join(written)}")
    return written
