"""
Uniq Server (UNIQUER)

NATS auth callout service enforcing unique client display names across a
cluster. Clients are authenticated against managed account credentials,
their display name is reserved in a shared Redis store for as long as the
connection lives, and a second connection under the same name is refused.

CHANGELOG:
[2025-11-23 v0.1.0] Initial project setup
  - Auth callout handler (grant / deny with signed claims)
  - Disconnect reaper (owner-checked name release)
  - Redis and in-memory reservation stores
  - Asyncio NATS transport with reconnects
  - aiohttp health endpoint

ARCHITECTURE:
- Layer 1 : Transport (NATS wire protocol)
- Layer 2 : Protocol (auth callout, disconnect advisories)
- Layer 3 : Security (nkeys, signed claims, credential table)
- Layer 4 : Persistence (name reservations)

SECURITY NOTES:
- Every request signature verified before any field is used
- Wrong credentials never touch the reservation store
- Passwords hashed with bcrypt at startup, never logged
"""

__version__ = "0.1.0"
__author__ = "UNIQUER Development Team"
__license__ = "See LICENSE file"

# Version info
VERSION_MAJOR = 0
VERSION_MINOR = 1
VERSION_PATCH = 0

# Export main classes
from .core.uniq_service import UniqService, ServiceStartupError
from .core.config import ServiceConfig, BusOptions, StoreOptions, HealthOptions
from .transport.base_transport import BaseTransport
from .persistence.reservation_store import ReservationStore

__all__ = [
    "UniqService",
    "ServiceStartupError",
    "ServiceConfig",
    "BusOptions",
    "StoreOptions",
    "HealthOptions",
    "BaseTransport",
    "ReservationStore",
]
