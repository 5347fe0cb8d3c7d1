"""
Disconnect Reaper - Release client names on disconnect

Module: protocol.disconnect_reaper
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - Decode $SYS.ACCOUNT.<acc>.DISCONNECT advisories
  - Ignore accounts that are not managed
  - Release the reservation only if the disconnecting client holds it

ARCHITECTURE:
Disconnect advisories are delivered at least once and in any order. A
reservation is deleted only when the stored owner equals the id of the
disconnecting connection; the compare and the delete happen in one
release_if_owner() call, so a name re-claimed by a newer connection is
never freed by a late advisory for the old one.

  owner missing   -> nothing to do (duplicate or never reserved)
  owner differs   -> stale disconnect, keep the reservation
  owner matches   -> reservation deleted
"""

import logging
from dataclasses import dataclass

from .events import DisconnectEvent
from ..persistence.reservation_store import (
    ReservationStore,
    ReservationStoreError,
    reservation_key,
)
from ..security.authentication import CredentialTable
from ..transport.base_transport import BusMessage


class ReleaseResult:
    """What a disconnect did to the store"""
    IGNORED = "ignored"
    MISSING = "missing"
    STALE = "stale"
    RELEASED = "released"


@dataclass
class ReaperStats:
    """Process-local counters"""
    received: int = 0
    released: int = 0
    missing: int = 0
    stale: int = 0
    ignored: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class DisconnectReaper:
    """Handles $SYS.ACCOUNT.*.DISCONNECT advisories"""

    def __init__(self, credentials: CredentialTable, store: ReservationStore):
        """
        Initialize reaper

        Args:
            credentials: Managed accounts (only their clients are reaped)
            store: Name reservations
        """
        self.logger = logging.getLogger("protocol.disconnect_reaper")
        self.credentials = credentials
        self.store = store
        self.stats = ReaperStats()

    async def __call__(self, message: BusMessage) -> None:
        await self.handle(message)

    async def handle(self, message: BusMessage) -> None:
        """
        Process one advisory; errors are logged, never raised

        Args:
            message: Raw advisory (JSON payload)
        """
        self.stats.received += 1
        try:
            event = DisconnectEvent.from_json(message.data)
        except ValueError as e:
            self.stats.errors += 1
            self.logger.warning(f"Disconnection: invalid event: {e}")
            return

        try:
            await self.release(event)
        except ReservationStoreError as e:
            self.stats.errors += 1
            self.logger.error(f"Disconnection: {e}")

    async def release(self, event: DisconnectEvent) -> str:
        """
        Release the reservation held by the disconnecting client

        Returns:
            One of ReleaseResult

        Raises:
            ReservationStoreError: If the store cannot be reached
        """
        if event.client.acc not in self.credentials:
            self.stats.ignored += 1
            return ReleaseResult.IGNORED

        self.logger.info(str(event))

        key = reservation_key(event.client.name)
        owner = await self.store.release_if_owner(key, event.client.id)

        if owner is None:
            self.stats.missing += 1
            self.logger.info(f"No reservation for {key!r}")
            return ReleaseResult.MISSING

        if owner != event.client.id:
            self.stats.stale += 1
            self.logger.warning(
                f"Disconnection: mismatch id {owner} != {event.client.id} for {key!r}"
            )
            return ReleaseResult.STALE

        self.stats.released += 1
        self.logger.info(f"Released {key!r} (client #{event.client.id})")
        return ReleaseResult.RELEASED
