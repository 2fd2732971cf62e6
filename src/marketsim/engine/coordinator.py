"""Soft-lease leader election over the shared controller record."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from marketsim.config_loader import CoordinatorConfig
from marketsim.constants import CONTROLLER_PATH
from marketsim.errors import StoreWriteError
from marketsim.market.models import ControllerRecord, generate_session_id, now_ms
from marketsim.store.base import DocumentStore, Watch

logger = logging.getLogger(__name__)


class MarketCoordinator:
    """
    Decides whether this client drives the tick engine.

    A client is leader when the controller record is missing, is older than
    the lease timeout, or already carries this client's session id. The
    leader republishes the record every heartbeat. Any client claims the
    record at start, so the most recent starter wins and the staleness rule
    settles the rest.

    There is no fencing token: during a handoff two clients can both believe
    they lead for up to one heartbeat.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: CoordinatorConfig | None = None,
        user: str = "anonymous",
        session_id: str | None = None,
        clock: Callable[[], int] = now_ms,
        on_change: Callable[[bool], None] | None = None,
    ):
        self.store = store
        self.config = config or CoordinatorConfig()
        self.user = user
        self.session_id = session_id or generate_session_id()
        self._clock = clock
        self._on_change = on_change

        self.is_leader = False
        self.record: ControllerRecord | None = None
        self._watch: Watch | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def lease_timeout_ms(self) -> int:
        return int(self.config.lease_timeout_sec * 1000)

    def is_leader_for(self, record: ControllerRecord | None, now: int) -> bool:
        if record is None:
            return True
        if record.session_id == self.session_id:
            return True
        return now - record.timestamp > self.lease_timeout_ms

    async def start(self) -> None:
        """Claim the lease, then follow the record and heartbeat."""
        await self._publish()
        self._watch = self.store.watch(CONTROLLER_PATH)
        self._tasks = [
            asyncio.create_task(self._follow(self._watch)),
            asyncio.create_task(self._heartbeat_loop()),
        ]
        logger.info(f"Coordinator started (session {self.session_id[:8]}, user {self.user})")

    async def stop(self) -> None:
        """Cancel the heartbeat, drop the watch and give up leadership locally."""
        if self._watch:
            self._watch.close()
            self._watch = None
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        self._set_leader(False)
        logger.info("Coordinator stopped")

    async def heartbeat(self) -> None:
        """One heartbeat: re-check the lease and republish while leading."""
        self._evaluate()
        if self.is_leader:
            await self._publish()

    def _evaluate(self) -> None:
        self._set_leader(self.is_leader_for(self.record, self._clock()))

    def _set_leader(self, leader: bool) -> None:
        if leader == self.is_leader:
            return
        self.is_leader = leader
        logger.info(f"Leadership {'acquired' if leader else 'lost'} (session {self.session_id[:8]})")
        if self._on_change:
            self._on_change(leader)

    async def _publish(self) -> None:
        record = ControllerRecord(self.session_id, self._clock(), self.user)
        try:
            await self.store.set(CONTROLLER_PATH, record.to_dict())
        except StoreWriteError as e:
            logger.warning(f"Heartbeat write failed: {e}")
            return
        self.record = record
        self._evaluate()

    async def _follow(self, watch: Watch) -> None:
        async for value in watch:
            self.record = ControllerRecord.from_dict(value)
            self._evaluate()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval_sec)
            await self.heartbeat()
