"""
Bounded broadcast channel.

Every published event is appended to a fixed-size ring buffer shared by
all subscribers; each subscription keeps its own cursor into the stream.
Publishing never waits for consumers. A subscriber that falls more than
`capacity` events behind loses the oldest ones and is told so once via
LaggedError, after which it continues from the oldest retained event.

Usage:
    bus = EventBus(capacity=64)
    subscription = bus.subscribe()
    bus.publish(event)
    event = await subscription.recv()
"""

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from typing import Generic, TypeVar

from versualizer.core.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_CAPACITY = 64


class LaggedError(Exception):
    """The subscriber fell behind and `skipped` events were dropped for it."""

    def __init__(self, skipped: int) -> None:
        self.skipped = skipped
        super().__init__(f"Subscriber lagged behind, {skipped} event(s) skipped")


class BusClosedError(Exception):
    """The bus was closed and every retained event has been received."""

    def __init__(self) -> None:
        super().__init__("Event bus is closed")


class EventBus(Generic[T]):
    """
    Multi-consumer broadcast bus with a bounded history.

    Attributes:
        capacity: Number of events retained for slow subscribers.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._buffer: deque[T] = deque(maxlen=capacity)
        # Sequence number of the next event to be published
        self._next_seq = 0
        self._closed = False
        # Set and replaced on every publish/close; waiters hold the old one
        self._waker = asyncio.Event()
        self._subscriber_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def oldest_seq(self) -> int:
        """Sequence number of the oldest event still in the buffer."""
        return self._next_seq - len(self._buffer)

    @property
    def subscriber_count(self) -> int:
        return self._subscriber_count

    def subscribe(self) -> "Subscription[T]":
        """Start receiving events published from now on."""
        self._subscriber_count += 1
        return Subscription(self, self._next_seq)

    def publish(self, event: T) -> int:
        """
        Append an event and wake waiting subscribers. Never blocks.

        Returns:
            Number of live subscriptions at publish time.

        Raises:
            BusClosedError: If the bus was closed.
        """
        if self._closed:
            raise BusClosedError()

        self._buffer.append(event)
        self._next_seq += 1
        self._notify()
        return self._subscriber_count

    def close(self) -> None:
        """Stop accepting events. Subscribers drain what is left, then get BusClosedError."""
        if self._closed:
            return
        self._closed = True
        self._notify()

    def _notify(self) -> None:
        waker, self._waker = self._waker, asyncio.Event()
        waker.set()

    def _event_at(self, seq: int) -> T:
        return self._buffer[seq - self.oldest_seq]

    def _unsubscribe(self) -> None:
        self._subscriber_count = max(0, self._subscriber_count - 1)


class Subscription(Generic[T]):
    """One consumer's cursor into an EventBus."""

    def __init__(self, bus: EventBus[T], start_seq: int) -> None:
        self._bus = bus
        self._cursor = start_seq
        self._active = True

    @property
    def pending(self) -> int:
        """Events published but not yet received (including any already dropped)."""
        return self._bus._next_seq - self._cursor

    def try_recv(self) -> T | None:
        """
        Return the next event if one is ready, else None.

        Raises:
            LaggedError: If events were dropped since the last receive.
            BusClosedError: If the bus is closed and drained.
        """
        bus = self._bus
        oldest = bus.oldest_seq
        if self._cursor < oldest:
            skipped = oldest - self._cursor
            self._cursor = oldest
            raise LaggedError(skipped)

        if self._cursor < bus._next_seq:
            event = bus._event_at(self._cursor)
            self._cursor += 1
            return event

        if bus.closed:
            raise BusClosedError()
        return None

    async def recv(self) -> T:
        """
        Wait for the next event.

        Raises:
            LaggedError: Once per gap, when this subscriber fell behind.
            BusClosedError: When the bus is closed and drained.
        """
        while True:
            event = self.try_recv()
            if event is not None:
                return event

            await self._bus._waker.wait()

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._bus._unsubscribe()

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        """Yield events until the bus closes, logging and skipping over lag."""
        while True:
            try:
                yield await self.recv()
            except LaggedError as e:
                logger.warning(str(e))
            except BusClosedError:
                return
