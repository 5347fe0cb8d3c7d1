"""
NATS Transport - BaseTransport on top of nats-py

Module: transport.nats_transport
Date: 2025-11-23
Version: 0.2.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
[2025-11-24 v0.2.0] Wire protocol delegated to nats-py
  - nats.aio.client.Client handles handshake, keepalive, reconnect,
    resubscription and the reconnect buffer
  - This module maps BusOptions onto connect() and nats errors onto
    TransportError

ARCHITECTURE:
nats-py runs one callback at a time per subscription. The callback here
only wraps the Msg into a BusMessage and hands it to BaseTransport, whose
Subscription starts one task per message, so handlers for distinct
messages still run concurrently.

Connection state is tracked through the client callbacks:
  disconnected_cb -> is_connected False
  reconnected_cb  -> is_connected True
  closed_cb       -> closed for good (wait_closed() returns)

SECURITY NOTES:
- Credentials only passed to connect(), never logged
"""

import asyncio
import random
from typing import Optional, Dict, Any

from nats.aio.client import Client as NATS
from nats.errors import Error as NATSError, ConnectionClosedError

from .base_transport import (
    BaseTransport,
    BusMessage,
    Subscription,
    TransportError,
    TransportConnectionError,
    TransportClosedError,
)
from ..core.config import BusOptions


class NATSTransport(BaseTransport):
    """
    NATS bus client

    Typical usage:
        transport = NATSTransport(options)
        await transport.connect()
        await transport.subscribe("subject", handler, queue="group")
    """

    def __init__(self, options: Optional[BusOptions] = None, client: Optional[NATS] = None):
        """
        Initialize NATS transport

        Args:
            options: BusOptions (defaults applied to unset values)
            client: nats-py client (a new one by default)
        """
        super().__init__(name="nats")
        self.options = (options or BusOptions()).with_defaults()
        self._client = client if client is not None else NATS()
        self._nats_subscriptions: Dict[int, Any] = {}
        self._closing = False
        self.reconnects = 0

    @property
    def connected_url(self) -> Optional[str]:
        url = self._client.connected_url
        return url.geturl() if url is not None and self.is_connected else None

    def connect_options(self) -> Dict[str, Any]:
        """Keyword arguments for nats-py connect()"""
        options = self.options
        tls = any(url.startswith("tls://") for url in options.servers)
        jitter = options.reconnect_jitter_tls if tls else options.reconnect_jitter

        return {
            "servers": list(options.servers),
            "name": options.name,
            "user": options.user,
            "password": options.password,
            "allow_reconnect": options.allow_reconnect,
            "max_reconnect_attempts": options.max_reconnect,
            # nats-py has one fixed wait; jitter is drawn once per process
            "reconnect_time_wait": options.reconnect_wait + random.uniform(0, jitter),
            "connect_timeout": options.timeout,
            "ping_interval": options.ping_interval,
            "max_outstanding_pings": options.max_pings_out,
            "pending_size": options.reconnect_buf_size,
            "flush_timeout": options.flusher_timeout,
            "drain_timeout": options.drain_timeout,
            "error_cb": self._on_error,
            "disconnected_cb": self._on_disconnected,
            "reconnected_cb": self._on_reconnected,
            "closed_cb": self._on_closed,
        }

    # ========================================================================
    # Connection lifecycle
    # ========================================================================

    async def connect(self) -> None:
        """
        Connect to the server pool

        Raises:
            TransportConnectionError: If no server is reachable
        """
        if self.is_closed:
            raise TransportClosedError("Transport closed")

        try:
            await self._client.connect(**self.connect_options())
        except (NATSError, OSError, asyncio.TimeoutError) as e:
            raise TransportConnectionError(f"No server available: {e}")

        self.is_connected = True
        self.logger.info(f"Connected to {self.connected_url}")

    async def close(self) -> None:
        """Flush pending publishes and close the connection"""
        if self.is_closed:
            return
        self._closing = True

        try:
            if self._client.is_connected:
                await self._client.drain()
            else:
                await self._client.close()
        except (NATSError, OSError, asyncio.TimeoutError) as e:
            self.logger.warning(f"Could not drain before close: {e}")
            await self._client.close()

        self._nats_subscriptions.clear()
        self._mark_closed()
        self.logger.info("Connection closed")

    async def _on_error(self, error: Exception) -> None:
        self.logger.error(f"NATS error: {error}")

    async def _on_disconnected(self) -> None:
        if self.is_connected:
            self.logger.warning("Disconnected from NATS")
        self.is_connected = False

    async def _on_reconnected(self) -> None:
        self.is_connected = True
        self.reconnects += 1
        self.logger.info(f"Reconnected to {self.connected_url}")

    async def _on_closed(self) -> None:
        if not self._closing:
            self.logger.error("NATS connection closed")
        self._mark_closed()

    # ========================================================================
    # Messaging
    # ========================================================================

    async def publish(self, subject: str, data: bytes, reply: Optional[str] = None) -> None:
        if self.is_closed:
            raise TransportClosedError("Transport closed")
        try:
            await self._client.publish(subject, data, reply=reply or "")
        except ConnectionClosedError:
            raise TransportClosedError("Transport closed")
        except (NATSError, OSError) as e:
            raise TransportError(f"Publish to {subject!r} failed: {e}")

    async def flush(self, timeout: Optional[float] = None) -> None:
        try:
            await self._client.flush(timeout=timeout or self.options.timeout)
        except (NATSError, OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Flush failed: {e}")

    async def _send_subscribe(self, subscription: Subscription) -> None:
        async def callback(msg) -> None:
            self._deliver(BusMessage(
                subject=msg.subject,
                data=msg.data,
                reply=msg.reply or None,
                headers=msg.headers,
                sid=subscription.sid,
            ))

        try:
            self._nats_subscriptions[subscription.sid] = await self._client.subscribe(
                subscription.subject,
                queue=subscription.queue or "",
                cb=callback,
            )
        except (NATSError, OSError) as e:
            raise TransportError(f"Subscribe to {subscription.subject!r} failed: {e}")

    async def _send_unsubscribe(self, subscription: Subscription) -> None:
        nats_subscription = self._nats_subscriptions.pop(subscription.sid, None)
        if nats_subscription is None:
            return
        try:
            await nats_subscription.unsubscribe()
        except (NATSError, OSError) as e:
            raise TransportError(f"Unsubscribe from {subscription.subject!r} failed: {e}")
