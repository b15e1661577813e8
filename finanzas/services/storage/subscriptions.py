"""
Live Snapshot Subscriptions

DESIGN DECISION: Listeners always receive the WHOLE collection, never a diff.
Derived views are recomputed from scratch on every snapshot, so there is
nothing to keep in sync on the receiving side.

A subscription is a handle returned at registration time:
- The current snapshot is delivered immediately
- Every later change delivers a new snapshot
- ``cancel()`` detaches it; calling it again does nothing

Subscribers choose between a callback and an async iterator (``stream()``).
"""

import asyncio
from typing import AsyncIterator, Callable, Generic, Optional, TypeVar

import structlog


logger = structlog.get_logger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """Registration on a SnapshotChannel."""

    def __init__(
        self,
        channel: "SnapshotChannel[T]",
        callback: Optional[Callable[[T], None]] = None,
    ):
        self._channel = channel
        self._callback = callback
        self._queue: Optional[asyncio.Queue] = None if callback else asyncio.Queue()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def channel_name(self) -> str:
        return self._channel.name

    def _deliver(self, snapshot: T) -> None:
        if self._cancelled:
            return
        if self._queue is not None:
            self._queue.put_nowait(snapshot)
            return
        try:
            self._callback(snapshot)
        except Exception:
            # One broken listener must not starve the others.
            logger.exception("subscriber_failed", channel=self._channel.name)

    def cancel(self) -> None:
        """Stop receiving snapshots. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        self._channel._detach(self)
        if self._queue is not None:
            self._queue.put_nowait(_CLOSED)
        logger.debug("subscription_cancelled", channel=self._channel.name)

    async def stream(self) -> AsyncIterator[T]:
        """
        Iterate over snapshots until the subscription is cancelled.

        Only available for subscriptions registered without a callback.
        """
        if self._queue is None:
            raise RuntimeError("Callback subscriptions cannot be streamed")
        while True:
            snapshot = await self._queue.get()
            if snapshot is _CLOSED:
                return
            yield snapshot


class SnapshotChannel(Generic[T]):
    """
    Fan-out of full snapshots for one collection.

    Storage backends own one channel per collection and ``publish`` after
    every successful write.
    """

    def __init__(self, name: str, initial: Optional[T] = None):
        self.name = name
        self._latest: Optional[T] = initial
        self._has_snapshot = initial is not None
        self._subscriptions: list[Subscription[T]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: Optional[Callable[[T], None]] = None) -> Subscription[T]:
        """
        Register a listener.

        Without a callback, consume the snapshots with ``stream()``.
        """
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        if self._has_snapshot:
            subscription._deliver(self._latest)
        return subscription

    def publish(self, snapshot: T) -> None:
        """Record the new snapshot and hand it to every subscriber."""
        self._latest = snapshot
        self._has_snapshot = True
        for subscription in list(self._subscriptions):
            subscription._deliver(snapshot)

    def close(self) -> None:
        """Cancel every remaining subscription."""
        for subscription in list(self._subscriptions):
            subscription.cancel()

    def _detach(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
