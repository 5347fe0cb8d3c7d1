"""
Reservation Store - Atomic claim / read / release of client names

Module: persistence.reservation_store
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - ReservationStore abstract contract
  - RedisReservationStore (SET NX, GET, DEL, compare-and-delete script)
  - MemoryReservationStore (dict guarded by asyncio.Lock)
  - reservation_key(): stable key for a client display name

ARCHITECTURE:
The store is the single source of truth for name ownership. Every
operation is a single-key atomic operation; claim() is the only arbiter
of races between instances sharing the same backend.

  key   = "UNIQUER/" + base64(display name)
  value = connection id (integer, stored as decimal text)
  no expiration

SECURITY NOTES:
- Display names are base64 encoded, so no name can inject key separators
- No caching: every decision reads the backend
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..core.constants import RESERVATION_KEY_PREFIX


class ReservationStoreError(Exception):
    """Store operation failed (backend unreachable, bad value...)"""
    pass


def reservation_key(name: str) -> str:
    """
    Key under which a display name is reserved

    Args:
        name: Client display name (may be empty)

    Returns:
        "UNIQUER/" + standard base64 of the UTF-8 name
    """
    encoded = base64.b64encode((name or "").encode("utf-8")).decode("ascii")
    return f"{RESERVATION_KEY_PREFIX}{encoded}"


def _parse_owner(key: str, value) -> int:
    if isinstance(value, bytes):
        value = value.decode()
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ReservationStoreError(f"Invalid owner {value!r} stored for {key!r}")


class ReservationStore(ABC):
    """
    Contract over an atomic key-value store

    Implementations must make claim() atomic and linearizable across every
    service instance sharing the backend.
    """

    @abstractmethod
    async def ping(self) -> None:
        """
        Liveness check

        Raises:
            ReservationStoreError: If the backend is unreachable
        """
        pass

    @abstractmethod
    async def claim(self, key: str, owner: int) -> bool:
        """
        Set key to owner only if absent

        Returns:
            True if the key was written, False if it already existed
        """
        pass

    @abstractmethod
    async def owner(self, key: str) -> Optional[int]:
        """
        Current owner of key

        Returns:
            Connection id, or None if no reservation exists
        """
        pass

    @abstractmethod
    async def release(self, key: str) -> bool:
        """
        Delete key unconditionally

        Returns:
            True if a reservation was deleted
        """
        pass

    @abstractmethod
    async def release_if_owner(self, key: str, owner: int) -> Optional[int]:
        """
        Delete key only if it is held by owner (atomic compare-and-delete)

        Returns:
            The owner found before the operation (None if absent). The key
            was deleted if and only if the returned value equals owner.
        """
        pass

    async def close(self) -> None:
        """Release backend resources"""
        pass


# Returns the previous value; deletes only when it matches ARGV[1]
_RELEASE_IF_OWNER_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current == ARGV[1] then
    redis.call('DEL', KEYS[1])
end
return current
"""


class RedisReservationStore(ReservationStore):
    """
    Redis backend

    claim() is SET key value NX (no expiry); release_if_owner() runs a Lua
    script so the compare and the delete happen in one step.
    """

    def __init__(self, client: aioredis.Redis):
        """
        Initialize Redis store

        Args:
            client: redis.asyncio client (owned by this store)
        """
        self.logger = logging.getLogger("persistence.reservation_store")
        self.client = client
        self._release_script = client.register_script(_RELEASE_IF_OWNER_SCRIPT)

    @classmethod
    def from_options(cls, options) -> "RedisReservationStore":
        """
        Build from StoreOptions

        Args:
            options: core.config.StoreOptions
        """
        client = aioredis.Redis(
            host=options.host,
            port=options.port,
            db=options.db,
            username=options.username,
            password=options.password,
            protocol=options.protocol,
            socket_timeout=options.socket_timeout,
            socket_connect_timeout=options.socket_timeout,
        )
        return cls(client)

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except RedisError as e:
            raise ReservationStoreError(f"ping failed: {e}")

    async def claim(self, key: str, owner: int) -> bool:
        try:
            result = await self.client.set(key, int(owner), nx=True)
        except RedisError as e:
            raise ReservationStoreError(f"set {key!r} failed: {e}")
        return bool(result)

    async def owner(self, key: str) -> Optional[int]:
        try:
            value = await self.client.get(key)
        except RedisError as e:
            raise ReservationStoreError(f"get {key!r} failed: {e}")
        if value is None:
            return None
        return _parse_owner(key, value)

    async def release(self, key: str) -> bool:
        try:
            deleted = await self.client.delete(key)
        except RedisError as e:
            raise ReservationStoreError(f"del {key!r} failed: {e}")
        return deleted > 0

    async def release_if_owner(self, key: str, owner: int) -> Optional[int]:
        try:
            value = await self._release_script(keys=[key], args=[str(int(owner))])
        except RedisError as e:
            raise ReservationStoreError(f"release {key!r} failed: {e}")
        if value is None:
            return None
        return _parse_owner(key, value)

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except RedisError as e:
            self.logger.warning(f"Error closing Redis client: {e}")


class MemoryReservationStore(ReservationStore):
    """
    In-process backend (single instance deployments and tests)

    A dict guarded by an asyncio.Lock; every operation holds the lock for
    its whole duration.
    """

    def __init__(self):
        self._data: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def ping(self) -> None:
        return None

    async def claim(self, key: str, owner: int) -> bool:
        async with self._lock:
            if key in self._data:
                return False
            self._data[key] = int(owner)
            return True

    async def owner(self, key: str) -> Optional[int]:
        async with self._lock:
            return self._data.get(key)

    async def release(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def release_if_owner(self, key: str, owner: int) -> Optional[int]:
        async with self._lock:
            current = self._data.get(key)
            if current is not None and current == int(owner):
                del self._data[key]
            return current

    def __len__(self) -> int:
        return len(self._data)
