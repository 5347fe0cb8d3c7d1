"""
Base Transport Class - Abstract interface for message bus connections

Module: transport.base_transport
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - BusMessage with respond() for request/reply
  - Subscription with bounded pending queue and per-message tasks
  - Abstract BaseTransport (connect/close/publish/flush)
  - Drain: stop intake, let in-flight handlers finish

ARCHITECTURE:
BaseTransport is the abstract base class of bus clients. It owns the
subscription table and message dispatch; subclasses only move bytes:
  - connect()/close()
  - publish()/flush()
  - _send_subscribe()/_send_unsubscribe()
and call _deliver() for every message read from the wire.

Each Subscription has a bounded queue (slow consumers drop messages) and
a worker that starts one task per message, so handlers for distinct
messages run concurrently.

SECURITY NOTES:
- Handler exceptions are contained per message
- Message content is never logged by the transport
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Callable, Awaitable, Set
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..core.constants import DEFAULT_SUB_CHAN_LEN


class TransportError(Exception):
    """Base transport error"""
    pass


class TransportConnectionError(TransportError):
    """Could not reach any server"""
    pass


class TransportClosedError(TransportError):
    """Transport was closed"""
    pass


# ============================================================================
# Types and Data Classes
# ============================================================================

@dataclass
class BusMessage:
    """
    Message received from the bus

    Attributes:
        subject: Subject the message was published to
        data: Payload bytes
        reply: Reply subject (request/reply), if any
        headers: Message headers, if any
        sid: Subscription id that received it
        timestamp: When message was received
    """
    subject: str
    data: bytes = b""
    reply: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    sid: int = 0
    timestamp: Optional[datetime] = None
    transport: Optional["BaseTransport"] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        """Initialize timestamp if not provided"""
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)

    async def respond(self, data: bytes) -> None:
        """
        Publish data to the reply subject

        Raises:
            TransportError: If message has no reply subject or transport
        """
        if not self.reply:
            raise TransportError("Message has no reply subject")
        if self.transport is None:
            raise TransportError("Message is not bound to a transport")
        await self.transport.publish(self.reply, data)


MessageHandler = Callable[[BusMessage], Awaitable[None]]


class Subscription:
    """
    Interest in a subject, optionally within a queue group

    Messages of a queue group are delivered to one member only, which is
    what lets several service instances share the load.
    """

    def __init__(
        self,
        transport: "BaseTransport",
        sid: int,
        subject: str,
        handler: MessageHandler,
        queue: Optional[str] = None,
        pending_limit: int = DEFAULT_SUB_CHAN_LEN,
    ):
        self.transport = transport
        self.sid = sid
        self.subject = subject
        self.queue = queue
        self.handler = handler
        self.logger = logging.getLogger(f"transport.subscription.{sid}")

        self._pending: asyncio.Queue = asyncio.Queue(maxsize=pending_limit)
        self._tasks: Set[asyncio.Task] = set()
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

        self.delivered = 0
        self.dropped = 0

    @property
    def is_active(self) -> bool:
        return not self._closed

    @property
    def in_flight(self) -> int:
        """Messages queued or being handled"""
        return self._pending.qsize() + len(self._tasks)

    def start(self) -> None:
        """Start the dispatch worker"""
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())

    def deliver(self, message: BusMessage) -> bool:
        """
        Queue a message for dispatch

        Returns:
            False if the subscription is closed or its queue is full
        """
        if self._closed:
            return False
        try:
            self._pending.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            self.logger.warning(
                f"Slow consumer on {self.subject!r}, message dropped "
                f"({self.dropped} total)"
            )
            return False
        self.delivered += 1
        return True

    async def _run(self) -> None:
        while True:
            message = await self._pending.get()
            task = asyncio.create_task(self._invoke(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            self._pending.task_done()

    async def _invoke(self, message: BusMessage) -> None:
        try:
            await self.handler(message)
        except Exception as e:
            self.logger.error(f"Error in message handler: {e}", exc_info=True)

    async def unsubscribe(self) -> None:
        """Remove interest; queued messages are discarded"""
        if self._closed:
            return
        self._closed = True
        await self.transport._remove_subscription(self)
        await self._stop_worker()

    async def drain(self, timeout: float) -> bool:
        """
        Remove interest, then wait for queued and in-flight messages

        Args:
            timeout: Seconds to wait for handlers

        Returns:
            True if every handler finished within timeout
        """
        if not self._closed:
            self._closed = True
            await self.transport._remove_subscription(self)

        try:
            await asyncio.wait_for(self._wait_idle(), timeout=timeout)
            finished = True
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Drain timeout on {self.subject!r} ({self.in_flight} in flight)"
            )
            finished = False

        await self._stop_worker()
        return finished

    async def _wait_idle(self) -> None:
        await self._pending.join()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _stop_worker(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None


# ============================================================================
# Abstract Base Transport Class
# ============================================================================

class BaseTransport(ABC):
    """
    Abstract base class for bus clients

    Responsible for:
    1. Connection management (reconnects included)
    2. Subscription bookkeeping and dispatch
    3. Publishing

    Not responsible for:
    1. Payload decoding (protocol layer)
    2. Authentication decisions (protocol layer)
    """

    def __init__(self, name: str):
        """
        Initialize transport

        Args:
            name: Name of this transport instance
        """
        self.name = name
        self.is_connected = False
        self.is_closed = False
        self.logger = logging.getLogger(f"transport.{name}")

        self._subscriptions: Dict[int, Subscription] = {}
        self._next_sid = 1
        self._closed_event = asyncio.Event()

    @property
    def status(self) -> str:
        """Get current transport status"""
        if self.is_closed:
            return "closed"
        elif self.is_connected:
            return "connected"
        else:
            return "disconnected"

    @property
    def subscriptions(self) -> Dict[int, Subscription]:
        return dict(self._subscriptions)

    @abstractmethod
    async def connect(self) -> None:
        """
        Connect to the bus

        Raises:
            TransportConnectionError: If no server is reachable
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the connection

        Must set is_closed and call _mark_closed()
        """
        pass

    @abstractmethod
    async def publish(self, subject: str, data: bytes, reply: Optional[str] = None) -> None:
        """
        Publish a message

        Raises:
            TransportClosedError: If transport closed
            TransportError: If message cannot be sent or buffered
        """
        pass

    @abstractmethod
    async def flush(self, timeout: Optional[float] = None) -> None:
        """
        Wait until the server has processed everything sent so far

        Raises:
            TransportError: On timeout or disconnect
        """
        pass

    @abstractmethod
    async def _send_subscribe(self, subscription: Subscription) -> None:
        pass

    @abstractmethod
    async def _send_unsubscribe(self, subscription: Subscription) -> None:
        pass

    async def subscribe(
        self,
        subject: str,
        handler: MessageHandler,
        queue: Optional[str] = None,
        pending_limit: int = DEFAULT_SUB_CHAN_LEN,
    ) -> Subscription:
        """
        Register interest in a subject

        Args:
            subject: Subject (wildcards allowed)
            handler: Async callable(BusMessage) -> None
            queue: Queue group name
            pending_limit: Max queued messages before dropping

        Returns:
            Active Subscription
        """
        if self.is_closed:
            raise TransportClosedError("Transport closed")

        sid = self._next_sid
        self._next_sid += 1

        subscription = Subscription(
            self, sid, subject, handler, queue=queue, pending_limit=pending_limit
        )
        self._subscriptions[sid] = subscription
        subscription.start()

        await self._send_subscribe(subscription)
        self.logger.info(
            f"Subscribed to {subject!r}" + (f" (queue={queue})" if queue else "")
        )
        return subscription

    async def _remove_subscription(self, subscription: Subscription) -> None:
        if self._subscriptions.pop(subscription.sid, None) is None:
            return
        if self.is_connected:
            try:
                await self._send_unsubscribe(subscription)
            except TransportError as e:
                self.logger.warning(f"Unsubscribe {subscription.subject!r} failed: {e}")
        self.logger.info(f"Unsubscribed from {subscription.subject!r}")

    def _deliver(self, message: BusMessage) -> None:
        """
        Route a received message to its subscription

        Called by subclasses for every message read from the wire.
        """
        subscription = self._subscriptions.get(message.sid)
        if subscription is None:
            self.logger.debug(f"Message for unknown sid {message.sid}")
            return
        message.transport = self
        subscription.deliver(message)

    async def drain(self, timeout: float) -> bool:
        """
        Drain every subscription

        Returns:
            True if all in-flight handlers finished
        """
        results = await asyncio.gather(
            *(sub.drain(timeout) for sub in list(self._subscriptions.values()))
        )
        return all(results)

    def _mark_closed(self) -> None:
        self.is_connected = False
        self.is_closed = True
        self._closed_event.set()

    async def wait_closed(self) -> None:
        """Block until the transport is closed for good"""
        await self._closed_event.wait()
