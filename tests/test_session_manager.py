"""Tests for SessionManager."""

from datetime import datetime, time

import pytest
from freezegun import freeze_time

from marketsim.config_loader import SessionConfig
from marketsim.constants import SessionPhase
from marketsim.time.session_manager import SessionManager, format_clock_label


@pytest.fixture
def default_config():
    return SessionConfig(
        timezone="America/New_York",
        regular_start="09:30",
        regular_end="16:00",
        trading_days=[0, 1, 2, 3, 4],  # Mon-Fri
    )


class TestSessionManager:
    def test_init_parses_times(self, default_config):
        sm = SessionManager(default_config)
        assert sm.day_start_time == time(0, 0)
        assert sm.pre_market_start == time(4, 0)
        assert sm.regular_start == time(9, 30)
        assert sm.regular_end == time(16, 0)
        assert sm.after_hours_end == time(20, 0)

    def test_is_trading_day(self, default_config, nyc_tz):
        sm = SessionManager(default_config)

        # Monday Jan 1, 2024
        assert sm.is_trading_day(datetime(2024, 1, 1, 12, 0, tzinfo=nyc_tz)) is True
        # Sunday Jan 7, 2024
        assert sm.is_trading_day(datetime(2024, 1, 7, 12, 0, tzinfo=nyc_tz)) is False

    def test_phase_boundaries(self, default_config, nyc_tz):
        sm = SessionManager(default_config)

        assert sm.phase(datetime(2024, 1, 3, 3, 59, tzinfo=nyc_tz)) == SessionPhase.OVERNIGHT
        assert sm.phase(datetime(2024, 1, 3, 4, 0, tzinfo=nyc_tz)) == SessionPhase.PRE_MARKET
        assert sm.phase(datetime(2024, 1, 3, 9, 29, 59, tzinfo=nyc_tz)) == SessionPhase.PRE_MARKET
        assert sm.phase(datetime(2024, 1, 3, 9, 30, tzinfo=nyc_tz)) == SessionPhase.REGULAR
        # Regular end is exclusive
        assert sm.phase(datetime(2024, 1, 3, 16, 0, tzinfo=nyc_tz)) == SessionPhase.AFTER_HOURS
        assert sm.phase(datetime(2024, 1, 3, 20, 0, tzinfo=nyc_tz)) == SessionPhase.OVERNIGHT

    def test_weekend_is_overnight(self, default_config, nyc_tz):
        sm = SessionManager(default_config)
        # Saturday midday
        assert sm.phase(datetime(2024, 1, 6, 12, 0, tzinfo=nyc_tz)) == SessionPhase.OVERNIGHT

    def test_regular_progress(self, default_config, nyc_tz):
        sm = SessionManager(default_config)
        assert sm.regular_progress(datetime(2024, 1, 3, 9, 30, tzinfo=nyc_tz)) == 0.0
        assert sm.regular_progress(datetime(2024, 1, 3, 12, 45, tzinfo=nyc_tz)) == 0.5
        assert sm.regular_progress(datetime(2024, 1, 3, 18, 0, tzinfo=nyc_tz)) == 1.0
        assert sm.regular_progress(datetime(2024, 1, 3, 5, 0, tzinfo=nyc_tz)) == 0.0


class TestBars:
    def test_bar_index_from_midnight(self, default_config, nyc_tz):
        sm = SessionManager(default_config)
        assert sm.bar_index(datetime(2024, 1, 3, 0, 0, tzinfo=nyc_tz)) == 0
        assert sm.bar_index(datetime(2024, 1, 3, 0, 4, 59, tzinfo=nyc_tz)) == 0
        assert sm.bar_index(datetime(2024, 1, 3, 10, 0, tzinfo=nyc_tz)) == 120
        assert sm.bar_index(datetime(2024, 1, 3, 23, 59, tzinfo=nyc_tz)) == 287

    def test_bar_time(self, default_config, nyc_tz):
        sm = SessionManager(default_config)
        dt = datetime(2024, 1, 3, 10, 0, tzinfo=nyc_tz)
        assert sm.bar_time(0, dt) == datetime(2024, 1, 3, 0, 0, tzinfo=nyc_tz)
        assert sm.bar_time(114, dt) == datetime(2024, 1, 3, 9, 30, tzinfo=nyc_tz)

    def test_day_start_custom(self, nyc_tz):
        sm = SessionManager(SessionConfig(day_start="04:00"))
        # Before the configured day start belongs to the previous day
        dt = datetime(2024, 1, 3, 2, 0, tzinfo=nyc_tz)
        assert sm.day_start(dt) == datetime(2024, 1, 2, 4, 0, tzinfo=nyc_tz)
        assert sm.bar_index(datetime(2024, 1, 3, 4, 10, tzinfo=nyc_tz)) == 2

    def test_labels(self, default_config, nyc_tz):
        sm = SessionManager(default_config)
        assert sm.bar_label(datetime(2024, 1, 3, 9, 37, tzinfo=nyc_tz)) == "9:35 AM"
        assert sm.bar_label(datetime(2024, 1, 3, 0, 2, tzinfo=nyc_tz)) == "12:00 AM"
        assert format_clock_label(datetime(2024, 1, 3, 13, 5)) == "1:05 PM"
        assert format_clock_label(datetime(2024, 1, 3, 12, 0)) == "12:00 PM"


class TestNow:
    def test_now_uses_exchange_timezone(self, default_config):
        sm = SessionManager(default_config)
        # 15:00 UTC is 10:00 in New York in January
        with freeze_time("2024-01-03 15:00:00"):
            now = sm.now()
            assert now.hour == 10
            assert sm.phase() == SessionPhase.REGULAR
            assert sm.bar_index() == 120
            assert sm.is_trading_day() is True

    def test_now_on_weekend(self, default_config):
        sm = SessionManager(default_config)
        with freeze_time("2024-01-06 17:00:00"):
            assert sm.is_trading_day() is False
            assert sm.phase() == SessionPhase.OVERNIGHT
