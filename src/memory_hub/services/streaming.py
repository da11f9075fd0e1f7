"""Live event channel for newly created memories.

Each subscriber gets its own bounded memory object stream. Publishing never
blocks: a full buffer drops the event for that subscriber only, and a
subscriber whose receiving side has gone away is detached on the next publish.
There is no history; a subscription sees only events published after it attached.
"""

from __future__ import annotations

from types import TracebackType

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from memory_hub.core.logging import get_logger
from memory_hub.domain.models import MemoryEvent, StreamFilter

logger = get_logger(__name__)


class MemorySubscription:
    """Receiving end of a stream. Use as an async iterator; close it when done."""

    def __init__(
        self,
        bus: MemoryEventBus,
        event_filter: StreamFilter,
        send: MemoryObjectSendStream[MemoryEvent],
        receive: MemoryObjectReceiveStream[MemoryEvent],
    ):
        self.filter = event_filter
        self.dropped = 0
        self._bus = bus
        self._send = send
        self._receive = receive
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Events buffered and not yet received."""
        return self._receive.statistics().current_buffer_used

    def offer(self, event: MemoryEvent) -> bool:
        """Deliver without waiting. Returns False if the subscriber is gone."""
        try:
            self._send.send_nowait(event)
        except anyio.WouldBlock:
            self.dropped += 1
            logger.warning("Stream buffer full, dropping event", memory_id=str(event.memory.id), dropped=self.dropped)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            return False
        return True

    async def receive(self) -> MemoryEvent:
        return await self._receive.receive()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus.detach(self)
        self._send.close()
        self._receive.close()

    def __aiter__(self) -> MemorySubscription:
        return self

    async def __anext__(self) -> MemoryEvent:
        try:
            return await self._receive.receive()
        except (anyio.EndOfStream, anyio.ClosedResourceError):
            raise StopAsyncIteration from None

    async def __aenter__(self) -> MemorySubscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class MemoryEventBus:
    """Fan-out of memory events to attached subscriptions."""

    def __init__(self, buffer_size: int = 100):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.buffer_size = buffer_size
        self._subscriptions: list[MemorySubscription] = []

    def subscribe(self, event_filter: StreamFilter | None = None) -> MemorySubscription:
        send, receive = anyio.create_memory_object_stream[MemoryEvent](self.buffer_size)
        subscription = MemorySubscription(self, event_filter or StreamFilter(), send, receive)
        self._subscriptions.append(subscription)
        logger.debug("Stream attached", subscribers=len(self._subscriptions))
        return subscription

    def detach(self, subscription: MemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("Stream detached", subscribers=len(self._subscriptions))

    def publish(self, event: MemoryEvent) -> int:
        """Offer ``event`` to every matching subscriber; returns how many were offered it."""
        offered = 0
        for subscription in list(self._subscriptions):
            if not subscription.filter.matches(event.memory):
                continue
            if subscription.offer(event):
                offered += 1
            else:
                subscription.close()
        return offered

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()

    def __len__(self) -> int:
        return len(self._subscriptions)
