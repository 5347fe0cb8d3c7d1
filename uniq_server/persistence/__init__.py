"""
Persistence module - Client name reservations

Provides:
- ReservationStore: Atomic claim / read / release contract
- RedisReservationStore: Redis backend shared by all instances
- MemoryReservationStore: In-process backend
- reservation_key: Key for a client display name
"""

from .reservation_store import (
    ReservationStore,
    ReservationStoreError,
    RedisReservationStore,
    MemoryReservationStore,
    reservation_key,
)

__all__ = [
    "ReservationStore",
    "ReservationStoreError",
    "RedisReservationStore",
    "MemoryReservationStore",
    "reservation_key",
]
