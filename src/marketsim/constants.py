"""Core constants for marketsim."""

from enum import Enum


class TradeType(str, Enum):
    """Trade direction."""

    BUY = "buy"
    SELL = "sell"


class ChartWindow(str, Enum):
    """Chart windows served by the series query."""

    TEN_MINUTES = "10m"
    THIRTY_MINUTES = "30m"
    ONE_HOUR = "1h"
    ONE_DAY = "1d"
    ONE_WEEK = "1w"
    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"
    ONE_YEAR = "1y"


class SessionPhase(str, Enum):
    """Intraday session regime."""

    OVERNIGHT = "overnight"
    PRE_MARKET = "pre_market"
    REGULAR = "regular"
    AFTER_HOURS = "after_hours"


class EngineState(str, Enum):
    """Live tick engine state."""

    IDLE = "idle"
    TICKING = "ticking"


class StoreBackend(str, Enum):
    """Document store backend selection."""

    MEMORY = "memory"
    FILE = "file"


class StockFilter(str, Enum):
    """Screener filters for the stock list."""

    UNDER_100 = "under100"
    FROM_100_TO_500 = "100to500"
    OVER_500 = "over500"
    LARGE_CAP = "largecap"
    MID_CAP = "midcap"
    SMALL_CAP = "smallcap"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ============================================
# Store Paths
# ============================================

STOCKS_PATH = "stocks"
USERS_PATH = "users"
MARKET_STATE_PATH = "marketState"
TRADING_HISTORY_PATH = "tradingHistory"
CONTROLLER_PATH = "marketController"

# ============================================
# Default Values
# ============================================

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_TICK_INTERVAL_MS = 5000
DEFAULT_HEARTBEAT_INTERVAL_SEC = 3.0
DEFAULT_LEASE_TIMEOUT_SEC = 10.0

BAR_MINUTES = 5
MIN_PRICE = 0.01
MAX_FLOAT_FRACTION = 0.10

DEFAULT_MARKET_CAP = 500_000_000_000
DEFAULT_PE = 25.0
DEFAULT_DIVIDEND = 0.5
SIGNUP_BALANCE = 50_000.0

# Market cap bands used by the screener
LARGE_CAP_FLOOR = 400_000_000_000
MID_CAP_FLOOR = 200_000_000_000
SCREENER_LIMIT = 10

# ============================================
# Application Constants
# ============================================

APP_NAME = "marketsim"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
