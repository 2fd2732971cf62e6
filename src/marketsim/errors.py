"""Exception types for marketsim."""

from __future__ import annotations


class MarketSimError(Exception):
    """Base error for the market simulation."""


class ValidationError(MarketSimError):
    """Bad or missing intent input. Surfaced to the user, never retried."""


class StoreWriteError(MarketSimError):
    """A write to the document store failed.

    Writers do not retry out of band; the next tick or the next user action
    is the retry.
    """

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        message = f"Write to '{path}' failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
