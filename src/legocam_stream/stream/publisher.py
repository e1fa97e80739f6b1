"""
Published Values
================

Single-writer / multi-reader publication of the latest value.

This module provides Published, the interface between the stream
controller (the only writer) and observers such as the HTTP surface or
the capture collaborators.

Design Rules:
    - Exactly one owner calls set(); everyone else only reads
    - Readers poll .value or subscribe for updates
    - Each subscription is a bounded queue of ONE (drops oldest on
      overflow), so slow readers see the latest value, never a backlog
    - Not a queue of record: overwritten values are lost
"""

import asyncio
import logging
from typing import AsyncIterator, Generic, List, Optional, TypeVar


logger = logging.getLogger(__name__)


T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """
    Latest-value mailbox for one observer.

    Iterate with `async for`; iteration ends when the publisher closes
    or the subscription is cancelled.

    Attributes:
        dropped_count: Values overwritten before this reader saw them
    """

    def __init__(self, publisher: "Published[T]") -> None:
        self._publisher = publisher
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._dropped_count: int = 0
        self._closed: bool = False

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, item: object) -> None:
        # Called by the publisher on the owner's loop.
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._dropped_count += 1
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(item)

    async def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """
        Wait for the next published value.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            The latest value, or None on timeout or after close.
        """
        if self._closed and self._queue.empty():
            return None
        try:
            if timeout is not None:
                item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            else:
                item = await self._queue.get()
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            self._closed = True
            return None
        return item

    def cancel(self) -> None:
        """Detach from the publisher; pending iteration ends."""
        if self._closed:
            return
        self._publisher._detach(self)
        self._offer(_CLOSED)

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        while True:
            if self._closed and self._queue.empty():
                raise StopAsyncIteration
            item = await self._queue.get()
            if item is _CLOSED:
                self._closed = True
                raise StopAsyncIteration
            return item


class Published(Generic[T]):
    """
    Latest-value holder with subscriptions.

    Attributes:
        name: Label used in log messages
        value: Most recently published value
        version: Number of set() calls so far

    Example:
        state = Published("state", ConnectionState.idle())

        # Owner
        state.set(ConnectionState.connecting())

        # Observer (polling)
        print(state.value)

        # Observer (push)
        async for value in state.subscribe():
            render(value)
    """

    def __init__(self, name: str, initial: T) -> None:
        self.name = name
        self._value: T = initial
        self._version: int = 0
        self._subscribers: List[Subscription[T]] = []

    @property
    def value(self) -> T:
        return self._value

    @property
    def version(self) -> int:
        return self._version

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def set(self, value: T) -> None:
        """Publish a new value to all subscribers."""
        self._value = value
        self._version += 1
        for subscription in list(self._subscribers):
            subscription._offer(value)

    def subscribe(self, replay: bool = True) -> Subscription[T]:
        """
        Create a subscription.

        Args:
            replay: Deliver the current value immediately

        Returns:
            Subscription yielding subsequent values
        """
        subscription: Subscription[T] = Subscription(self)
        self._subscribers.append(subscription)
        if replay:
            subscription._offer(self._value)
        logger.debug(f"New subscriber on {self.name} ({len(self._subscribers)} total)")
        return subscription

    def close(self) -> None:
        """End every subscription."""
        for subscription in list(self._subscribers):
            subscription.cancel()
        self._subscribers.clear()

    def _detach(self, subscription: Subscription[T]) -> None:
        try:
            self._subscribers.remove(subscription)
        except ValueError:
            pass
