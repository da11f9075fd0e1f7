"""Tests for the created-event channel."""

from datetime import UTC, datetime
from uuid import uuid4

import anyio
import pytest

from memory_hub.domain.models import Memory, MemoryEvent, StreamFilter
from memory_hub.services import MemoryEventBus


def make_event(memory_type: str = "note", tags: list[str] | None = None) -> MemoryEvent:
    now = datetime.now(UTC)
    memory = Memory(
        id=uuid4(),
        type=memory_type,
        content="x",
        tags=tags or [],
        confidence=0.5,
        created_at=now,
        updated_at=now,
    )
    return MemoryEvent(memory=memory)


@pytest.mark.asyncio
async def test_stream_receives_matching_creates(service):
    async with service.create_stream({"type": "note", "tags": ["todo"]}) as stream:
        await service.create({"type": "fact", "content": "ignored", "tags": ["todo"]})
        await service.create({"type": "note", "content": "ignored too", "tags": ["other"]})
        created = await service.create({"type": "note", "content": "wanted", "tags": ["todo", "home"]})

        event = await stream.receive()

    assert event.memory.id == created.id
    assert stream.closed


@pytest.mark.asyncio
async def test_stream_has_no_history(service):
    await service.create({"type": "note", "content": "before"})
    async with service.create_stream() as stream:
        assert stream.pending == 0


@pytest.mark.asyncio
async def test_full_buffer_drops_instead_of_blocking():
    bus = MemoryEventBus(buffer_size=2)
    subscription = bus.subscribe()

    for _ in range(5):
        bus.publish(make_event())

    assert subscription.pending == 2
    assert subscription.dropped == 3
    subscription.close()


@pytest.mark.asyncio
async def test_one_slow_subscriber_does_not_starve_others():
    bus = MemoryEventBus(buffer_size=1)
    slow = bus.subscribe()
    fast = bus.subscribe()

    first, second = make_event(), make_event()
    bus.publish(first)
    received = await fast.receive()
    bus.publish(second)

    assert received is first
    assert (await fast.receive()) is second
    assert slow.dropped == 1
    bus.close()


@pytest.mark.asyncio
async def test_subscriber_with_closed_receiver_is_detached():
    bus = MemoryEventBus()
    subscription = bus.subscribe()
    subscription._receive.close()

    assert bus.publish(make_event()) == 0
    assert len(bus) == 0
    assert subscription.closed


@pytest.mark.asyncio
async def test_iteration_ends_when_closed():
    bus = MemoryEventBus()
    subscription = bus.subscribe(StreamFilter(tags=["a"]))
    events = [make_event(tags=["a"]), make_event(tags=["b"]), make_event(tags=["a", "b"])]
    received = []

    async def consume():
        async for event in subscription:
            received.append(event)

    async with anyio.create_task_group() as tg:
        tg.start_soon(consume)
        for event in events:
            bus.publish(event)
        await anyio.wait_all_tasks_blocked()
        subscription.close()

    assert received == [events[0], events[2]]


@pytest.mark.asyncio
async def test_service_close_detaches_everything(service):
    service.create_stream()
    service.create_stream({"type": "note"})
    assert len(service.events) == 2

    service.close()

    assert len(service.events) == 0


def test_buffer_size_must_be_positive():
    with pytest.raises(ValueError):
        MemoryEventBus(buffer_size=0)
