"""
Uniq Service - Service lifecycle orchestrator

Module: core.uniq_service
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - Signer from seed, credential table from accounts
  - Store connection + liveness check before subscribing
  - Queue-grouped subscriptions for auth requests and disconnects
  - Drain on stop, teardown in reverse order of acquisition
  - Optional aiohttp health endpoint

ARCHITECTURE:
UniqService is the entry point applications use:
1. start(): signer -> store (ping) -> bus -> subscriptions -> health
2. run(): start() then block until stop() or the bus closes for good
3. stop(): drain subscriptions (in-flight handlers complete), close bus,
   close store

Both subscriptions join the UNIQUER queue group, so with several
instances each event reaches exactly one of them.

SECURITY NOTES:
- Any startup failure is fatal (ServiceStartupError)
- Per-request failures never reach the lifecycle
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from .config import ServiceConfig
from .constants import (
    SERVER_NAME,
    SERVER_VERSION,
    SUBJECT_AUTH_REQUEST,
    SUBJECT_DISCONNECT,
    QUEUE_GROUP,
)
from .health_server import HealthServer
from ..persistence.reservation_store import (
    ReservationStore,
    ReservationStoreError,
    RedisReservationStore,
)
from ..protocol.auth_callout_handler import AuthCalloutHandler
from ..protocol.disconnect_reaper import DisconnectReaper
from ..security.authentication import CredentialTable, Signer
from ..security.nkey import NKeyError
from ..transport.base_transport import BaseTransport, Subscription, TransportError
from ..transport.nats_transport import NATSTransport


class ServiceStartupError(Exception):
    """Service could not start (bad seed, store or bus unreachable)"""
    pass


@dataclass
class ServiceStatus:
    """Status information about the service"""
    name: str
    version: str
    is_running: bool
    bus_status: str
    uptime_seconds: float
    subscriptions: List[str]
    timestamp: datetime


class UniqService:
    """
    Unique client name auth callout service

    Typical usage:
        service = UniqService(ServiceConfig.from_env())
        await service.run()
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[BaseTransport] = None,
        store: Optional[ReservationStore] = None,
    ):
        """
        Initialize service

        Args:
            config: Service configuration (defaults when None)
            transport: Bus transport (NATSTransport from config when None)
            store: Reservation store (Redis from config when None)
        """
        self.logger = logging.getLogger("core.uniq_service")
        self.config = config or ServiceConfig()

        self.transport = transport
        self.store = store

        self.credentials: Optional[CredentialTable] = None
        self.signer: Optional[Signer] = None
        self.auth_handler: Optional[AuthCalloutHandler] = None
        self.reaper: Optional[DisconnectReaper] = None
        self.health_server: Optional[HealthServer] = None

        self._subscriptions: List[Subscription] = []
        self._is_running = False
        self._startup_time: Optional[datetime] = None
        self._stop_event = asyncio.Event()

        self.logger.info(f"Service initialized: {SERVER_NAME} v{SERVER_VERSION}")

    @property
    def is_running(self) -> bool:
        """Check if service is running"""
        return self._is_running

    @property
    def uptime_seconds(self) -> float:
        """Get uptime in seconds"""
        if not self._startup_time:
            return 0.0
        return (datetime.now(timezone.utc) - self._startup_time).total_seconds()

    async def start(self) -> None:
        """
        Start the service

        Raises:
            ServiceStartupError: If any dependency cannot be set up
        """
        if self._is_running:
            self.logger.warning("Service already running")
            return

        try:
            self.signer = Signer.from_seed(self.config.seed)
        except (NKeyError, ValueError) as e:
            raise ServiceStartupError(f"Invalid seed: {e}")

        self.credentials = CredentialTable(
            self.config.accounts, bcrypt_rounds=self.config.bcrypt_rounds
        )

        if self.store is None:
            self.store = RedisReservationStore.from_options(self.config.store)
        try:
            await self.store.ping()
        except ReservationStoreError as e:
            await self.store.close()
            raise ServiceStartupError(f"Store unreachable: {e}")
        self.logger.info("Store reachable")

        if self.transport is None:
            self.transport = NATSTransport(self.config.bus)
        try:
            await self.transport.connect()
        except TransportError as e:
            await self.store.close()
            raise ServiceStartupError(f"Bus unreachable: {e}")

        self.auth_handler = AuthCalloutHandler(self.credentials, self.store, self.signer)
        self.reaper = DisconnectReaper(self.credentials, self.store)

        try:
            await self._subscribe(SUBJECT_AUTH_REQUEST, self.auth_handler)
            await self._subscribe(SUBJECT_DISCONNECT, self.reaper)

            if self.config.health.enabled:
                self.health_server = HealthServer(
                    self, self.config.health.host, self.config.health.port
                )
                await self.health_server.start()
        except (TransportError, OSError) as e:
            await self._teardown()
            raise ServiceStartupError(f"Cannot subscribe: {e}")

        self._is_running = True
        self._startup_time = datetime.now(timezone.utc)
        self._stop_event.clear()
        self.logger.info(f"Service started (issuer={self.signer.issuer})")

    async def _subscribe(self, subject: str, handler) -> None:
        subscription = await self.transport.subscribe(
            subject,
            handler,
            queue=QUEUE_GROUP,
            pending_limit=self.config.bus.with_defaults().sub_chan_len,
        )
        self._subscriptions.append(subscription)

    async def stop(self) -> None:
        """
        Stop the service

        In-flight handlers are allowed to finish (up to the drain timeout).
        """
        self._stop_event.set()
        if not self._is_running:
            return
        self._is_running = False
        await self._teardown()
        self.logger.info("Service stopped")

    def request_stop(self) -> None:
        """Ask run() to return (signal handler safe)"""
        self._stop_event.set()

    async def _teardown(self) -> None:
        if self.health_server is not None:
            await self.health_server.stop()
            self.health_server = None

        drain_timeout = self.config.bus.with_defaults().drain_timeout
        for subscription in reversed(self._subscriptions):
            if not await subscription.drain(drain_timeout):
                self.logger.warning(f"Handlers still running on {subscription.subject!r}")
        self._subscriptions.clear()

        if self.transport is not None:
            try:
                await self.transport.close()
            except TransportError as e:
                self.logger.error(f"Error closing bus: {e}")

        if self.store is not None:
            await self.store.close()

    async def run(self) -> None:
        """
        Run service until stopped

        Returns when stop()/request_stop() is called or the bus connection
        is lost for good.

        Raises:
            ServiceStartupError: If startup fails
        """
        await self.start()

        stop_wait = asyncio.create_task(self._stop_event.wait())
        bus_wait = asyncio.create_task(self.transport.wait_closed())
        try:
            done, _ = await asyncio.wait(
                {stop_wait, bus_wait}, return_when=asyncio.FIRST_COMPLETED
            )
            if bus_wait in done and not self._stop_event.is_set():
                self.logger.error("Bus connection closed, shutting down")
        finally:
            for task in (stop_wait, bus_wait):
                task.cancel()
            await asyncio.gather(stop_wait, bus_wait, return_exceptions=True)
            await self.stop()

    async def check_health(self) -> Dict[str, Any]:
        """
        Probe dependencies

        Returns:
            {"status": "healthy"|"unhealthy", "store": ..., "bus": ...}
        """
        store_ok = False
        if self.store is not None:
            try:
                await self.store.ping()
                store_ok = True
            except ReservationStoreError as e:
                self.logger.warning(f"Health: store ping failed: {e}")

        bus_ok = self.transport is not None and self.transport.is_connected
        healthy = self._is_running and store_ok and bus_ok
        return {
            "status": "healthy" if healthy else "unhealthy",
            "store": "up" if store_ok else "down",
            "bus": self.transport.status if self.transport else "none",
            "uptime_seconds": self.uptime_seconds,
        }

    def get_stats(self) -> Dict[str, Any]:
        """Handler counters"""
        return {
            "auth": self.auth_handler.stats.to_dict() if self.auth_handler else {},
            "disconnect": self.reaper.stats.to_dict() if self.reaper else {},
        }

    def get_status(self) -> ServiceStatus:
        """
        Get service status

        Returns:
            ServiceStatus: Current service status
        """
        return ServiceStatus(
            name=SERVER_NAME,
            version=SERVER_VERSION,
            is_running=self._is_running,
            bus_status=self.transport.status if self.transport else "none",
            uptime_seconds=self.uptime_seconds,
            subscriptions=[s.subject for s in self._subscriptions],
            timestamp=datetime.now(timezone.utc),
        )
