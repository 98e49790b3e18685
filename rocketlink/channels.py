"""Asynchronous senders and receivers that tasks use to pass values around."""

from __future__ import annotations

import asyncio
from typing import Generic, Optional, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")
T_contra = TypeVar("T_contra", contravariant=True)
T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class AnySender(Protocol[T_contra]):
    """Anything a value can be sent to asynchronously."""

    async def anysend(self, value: T_contra) -> None: ...


@runtime_checkable
class AnyReceiver(Protocol[T_co]):
    """Anything a value can be received from asynchronously."""

    async def anyreceive(self) -> T_co: ...


class QueueChannel(Generic[T]):
    """A bounded first-in, first-out channel.

    Sending waits while the channel is full; receiving waits while it is empty.
    """

    def __init__(self, capacity: int = 8) -> None:
        if capacity < 1:
            raise ValueError("channel capacity must be at least 1")
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=capacity)

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    def __len__(self) -> int:
        return self._queue.qsize()

    async def anysend(self, value: T) -> None:
        """Put ``value`` into the channel, waiting for room if it is full."""
        await self._queue.put(value)

    async def anyreceive(self) -> T:
        """Take the oldest value, waiting for one if the channel is empty."""
        return await self._queue.get()


class Watch(Generic[T]):
    """Holds the latest value sent; receiving waits until that value changes.

    Sending never waits and replaces any value not yet received.
    """

    def __init__(self) -> None:
        self._value: Optional[T] = None
        self._has_value = False
        self._version = 0
        self._seen = 0
        self._changed = asyncio.Event()

    def send(self, value: T) -> None:
        """Replace the current value and wake everyone waiting for a change."""
        self._value = value
        self._has_value = True
        self._version += 1
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    async def anysend(self, value: T) -> None:
        self.send(value)

    async def anyreceive(self) -> T:
        """Wait for a value not yet received and return it."""
        while self._version == self._seen:
            await self._changed.wait()
        self._seen = self._version
        return self._value  # type: ignore[return-value]

    def try_get(self) -> Optional[T]:
        """The current value, or ``None`` if nothing was ever sent."""
        return self._value if self._has_value else None