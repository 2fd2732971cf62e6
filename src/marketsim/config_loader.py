"""Configuration loader with Pydantic validation and environment variable interpolation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables at module level
load_dotenv(find_dotenv(usecwd=True))

from marketsim.constants import (
    DEFAULT_HEARTBEAT_INTERVAL_SEC,
    DEFAULT_LEASE_TIMEOUT_SEC,
    DEFAULT_TICK_INTERVAL_MS,
    DEFAULT_TIMEZONE,
    MAX_FLOAT_FRACTION,
    MIN_PRICE,
    SIGNUP_BALANCE,
    LogLevel,
    StoreBackend,
)


def interpolate_env_vars(value: Any) -> Any:
    """
    Interpolate environment variables in string values.

    Supports formats:
    - ${VAR_NAME} - required, empty string if not set
    - ${VAR_NAME:default} - optional with default value
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)

        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value
        elif default is not None:
            return default
        else:
            return ""

    return re.sub(pattern, replacer, value)


def process_config_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively process config dict to interpolate env vars."""
    result = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                process_config_dict(item) if isinstance(item, dict) else interpolate_env_vars(item)
                for item in value
            ]
        else:
            result[key] = interpolate_env_vars(value)
    return result


def _validate_clock(v: str) -> str:
    if not re.match(r"^\d{2}:\d{2}$", v):
        raise ValueError(f"Time must be in HH:MM format, got: {v}")
    hours, minutes = map(int, v.split(":"))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time value: {v}")
    return v


# ============================================
# Pydantic Configuration Models
# ============================================


class EnvironmentConfig(BaseModel):
    """Environment and runtime settings."""

    log_level: LogLevel = LogLevel.INFO
    data_dir: str = "./data"
    store_backend: StoreBackend = StoreBackend.FILE
    store_file: str = "market.json"
    store_poll_interval_sec: float = 1.0

    @property
    def store_path(self) -> Path:
        return Path(self.data_dir) / self.store_file


class SessionConfig(BaseModel):
    """Exchange session windows used for intraday bars and volume regimes."""

    timezone: str = DEFAULT_TIMEZONE
    day_start: str = "00:00"
    pre_market_start: str = "04:00"
    regular_start: str = "09:30"
    regular_end: str = "16:00"
    after_hours_end: str = "20:00"
    trading_days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])

    @field_validator(
        "day_start", "pre_market_start", "regular_start", "regular_end", "after_hours_end"
    )
    @classmethod
    def validate_time_format(cls, v: str) -> str:
        """Validate time is in HH:MM format."""
        return _validate_clock(v)

    @field_validator("trading_days")
    @classmethod
    def validate_trading_days(cls, v: list[int]) -> list[int]:
        """Validate trading days are 0-6 (Monday-Sunday)."""
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"Trading day must be 0-6, got: {day}")
        return v

    @model_validator(mode="after")
    def validate_ordering(self) -> SessionConfig:
        """Session boundaries must be increasing through the day."""
        marks = [
            self.pre_market_start,
            self.regular_start,
            self.regular_end,
            self.after_hours_end,
        ]
        if marks != sorted(marks):
            raise ValueError(f"Session boundaries must be in order, got: {marks}")
        return self


class MarketConfig(BaseModel):
    """Live tick engine settings."""

    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS
    min_tick_interval_ms: int = 500
    max_tick_interval_ms: int = 10_000
    tick_volatility: float = 0.0015
    momentum_decay: float = 0.8
    momentum_weight: float = 0.3

    @field_validator("tick_volatility")
    @classmethod
    def validate_volatility(cls, v: float) -> float:
        if not 0 < v < 0.1:
            raise ValueError(f"Tick volatility must be in (0, 0.1), got: {v}")
        return v

    @field_validator("momentum_decay")
    @classmethod
    def validate_decay(cls, v: float) -> float:
        if not 0 <= v < 1:
            raise ValueError(f"Momentum decay must be in [0, 1), got: {v}")
        return v

    @model_validator(mode="after")
    def validate_interval(self) -> MarketConfig:
        if not self.min_tick_interval_ms <= self.tick_interval_ms <= self.max_tick_interval_ms:
            raise ValueError(
                f"tick_interval_ms ({self.tick_interval_ms}) must be within "
                f"[{self.min_tick_interval_ms}, {self.max_tick_interval_ms}]"
            )
        return self


class FeeConfig(BaseModel):
    """Commission and spread settings. All zero by default."""

    commission_rate: float = 0.0
    minimum_fee: float = 0.0
    spread_rate: float = 0.0

    @field_validator("commission_rate", "minimum_fee", "spread_rate")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Fee settings must be non-negative, got: {v}")
        return v


class TradingConfig(BaseModel):
    """Trade execution and price-impact settings."""

    max_float_fraction: float = MAX_FLOAT_FRACTION
    min_price: float = MIN_PRICE
    fees: FeeConfig = Field(default_factory=FeeConfig)

    @field_validator("max_float_fraction")
    @classmethod
    def validate_fraction(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError(f"max_float_fraction must be in (0, 1], got: {v}")
        return v


class CoordinatorConfig(BaseModel):
    """Leader election lease settings."""

    heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC
    lease_timeout_sec: float = DEFAULT_LEASE_TIMEOUT_SEC

    @model_validator(mode="after")
    def validate_lease(self) -> CoordinatorConfig:
        if self.heartbeat_interval_sec <= 0:
            raise ValueError("heartbeat_interval_sec must be positive")
        if self.lease_timeout_sec <= self.heartbeat_interval_sec:
            raise ValueError(
                f"lease_timeout_sec ({self.lease_timeout_sec}) must exceed "
                f"heartbeat_interval_sec ({self.heartbeat_interval_sec})"
            )
        return self


class AccountsConfig(BaseModel):
    """Toy account settings."""

    admin_username: str = "admin"
    admin_password: str = Field(
        default_factory=lambda: os.environ.get("MARKETSIM_ADMIN_PASSWORD", "admin")
    )
    signup_balance: float = SIGNUP_BALANCE


class NotificationConfig(BaseModel):
    """Throttling for recurring warnings."""

    recent_limit: int = 50
    warning_sample_every: int = 10
    warning_min_interval_sec: float = 60.0


class AppConfig(BaseModel):
    """Root application configuration."""

    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    market: MarketConfig = Field(default_factory=MarketConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    accounts: AccountsConfig = Field(default_factory=AccountsConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @property
    def uses_file_store(self) -> bool:
        """Check if the document store persists to disk."""
        return self.environment.store_backend == StoreBackend.FILE


# ============================================
# Configuration Loader
# ============================================


class ConfigLoader:
    """Load and validate configuration from YAML files with env var interpolation."""

    def __init__(self, config_path: str | Path) -> None:
        """
        Initialize config loader.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self.config_path = Path(config_path)
        self._config: AppConfig | None = None

    def load(self) -> AppConfig:
        """
        Load and validate configuration.

        Returns:
            Validated AppConfig instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            yaml.YAMLError: If YAML is invalid.
            pydantic.ValidationError: If config validation fails.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        processed_config = process_config_dict(raw_config)

        self._config = AppConfig.model_validate(processed_config)

        return self._config

    @property
    def config(self) -> AppConfig:
        """Get loaded config, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    def reload(self) -> AppConfig:
        """Force reload configuration from disk."""
        self._config = None
        return self.load()


def load_config(config_path: str | Path) -> AppConfig:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated AppConfig instance.
    """
    loader = ConfigLoader(config_path)
    return loader.load()


def load_config_with_overrides(
    config_path: str | Path,
    *,
    tick_interval_ms: int | None = None,
    store_backend: str | None = None,
    data_dir: str | None = None,
) -> AppConfig:
    """
    Load configuration with CLI overrides.

    Args:
        config_path: Path to the YAML configuration file.
        tick_interval_ms: Override the live tick interval.
        store_backend: Override the document store backend.
        data_dir: Override the data directory.

    Returns:
        Validated AppConfig instance with overrides applied.
    """
    config = load_config(config_path)

    updates: dict[str, Any] = {}

    if tick_interval_ms is not None:
        market = config.market.model_dump()
        market["tick_interval_ms"] = tick_interval_ms
        # Re-validate so interval bounds still apply
        updates["market"] = MarketConfig.model_validate(market)

    env_updates: dict[str, Any] = {}
    if store_backend is not None:
        env_updates["store_backend"] = StoreBackend(store_backend.lower())
    if data_dir is not None:
        env_updates["data_dir"] = data_dir
    if env_updates:
        updates["environment"] = config.environment.model_copy(update=env_updates)

    if updates:
        return config.model_copy(update=updates)

    return config
