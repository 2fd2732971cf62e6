"""marketsim Main Application."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from marketsim.config_loader import AppConfig, load_config_with_overrides
from marketsim.constants import LOG_FORMAT
from marketsim.market.bootstrap import seed_store
from marketsim.market.service import MarketService
from marketsim.notifications import Notification, Notifier
from marketsim.store.base import DocumentStore
from marketsim.store.file_store import JsonFileDocumentStore
from marketsim.store.memory import MemoryDocumentStore
from marketsim.time.session_manager import SessionManager

logger = logging.getLogger(__name__)


def build_store(config: AppConfig) -> DocumentStore:
    """Create the document store selected in the environment config."""
    if config.uses_file_store:
        path = config.environment.store_path
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Using JSON file store: {path}")
        return JsonFileDocumentStore(path, config.environment.store_poll_interval_sec)
    logger.info("Using in-memory store")
    return MemoryDocumentStore()


class MarketSimApp:
    """Main application orchestrator: one market client with a live tick."""

    def __init__(
        self,
        config_path: str = "config/config.yaml",
        tick_interval_ms: int | None = None,
        store_backend: str | None = None,
        data_dir: str | None = None,
        drive_market: bool = True,
    ):
        self.config_path = Path(config_path)
        self.config: AppConfig | None = None
        self._tick_interval_override = tick_interval_ms
        self._store_backend_override = store_backend
        self._data_dir_override = data_dir
        self.drive_market = drive_market

        # Components
        self.store: DocumentStore | None = None
        self.session: SessionManager | None = None
        self.notifier: Notifier | None = None
        self.service: MarketService | None = None

        self._shutdown_event = asyncio.Event()

    def _setup_logging(self) -> None:
        level = self.config.environment.log_level.value if self.config else "INFO"
        logging.basicConfig(level=level, format=LOG_FORMAT)

    def _load_config(self) -> AppConfig:
        if self.config_path.exists():
            return load_config_with_overrides(
                self.config_path.absolute(),
                tick_interval_ms=self._tick_interval_override,
                store_backend=self._store_backend_override,
                data_dir=self._data_dir_override,
            )

        logger.warning(f"Config file {self.config_path} not found, using defaults")
        config = AppConfig()
        env_updates = {}
        if self._store_backend_override is not None:
            env_updates["store_backend"] = self._store_backend_override.lower()
        if self._data_dir_override is not None:
            env_updates["data_dir"] = self._data_dir_override
        market_updates = {}
        if self._tick_interval_override is not None:
            market_updates["tick_interval_ms"] = self._tick_interval_override
        return AppConfig.model_validate(
            {
                "environment": {**config.environment.model_dump(), **env_updates},
                "market": {**config.market.model_dump(), **market_updates},
            }
        )

    async def initialize(self, seed: bool = True) -> None:
        """Load config and initialize components, seeding an empty store unless `seed` is False."""
        self.config = self._load_config()
        self._setup_logging()
        logger.info("Initializing marketsim...")

        self.store = build_store(self.config)
        if seed:
            await seed_store(
                self.store,
                admin_username=self.config.accounts.admin_username,
                admin_password=self.config.accounts.admin_password,
            )

        self.session = SessionManager(self.config.session)
        self.notifier = Notifier(self.config.notifications.recent_limit)
        self.notifier.add_listener(self._on_notification)
        self.service = MarketService(
            self.store, self.config, session=self.session, notifier=self.notifier
        )

    def _on_notification(self, note: Notification) -> None:
        logger.info(f"[{note.level}] {note.message}")

    async def run(self) -> None:
        """Run the application loop."""
        if not self.config:
            await self.initialize()

        logger.info("Starting run loop...")

        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._handle_signal)
        except NotImplementedError:
            logger.warning("Signal handlers not supported in this environment. Use Ctrl+C to stop.")

        await self.store.start()
        await self.service.start(drive_market=self.drive_market)

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        logger.info("Shutting down...")
        if self.service:
            await self.service.stop()
        if self.store:
            await self.store.close()
        logger.info("Shutdown complete.")

    def _handle_signal(self) -> None:
        logger.info("Signal received, initiating shutdown...")
        self._shutdown_event.set()
