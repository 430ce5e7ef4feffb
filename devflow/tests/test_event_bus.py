"""Tests for event bus."""

import pytest

from devflow.daemon.bus import EventBus, Event


@pytest.mark.asyncio
async def test_event_emit_and_subscribe():
    """Test basic pub/sub functionality."""
    bus = EventBus()
    await bus.start()

    received_events = []

    async def handler(event: Event):
        received_events.append(event)

    bus.subscribe("entry.*", handler)

    await bus.emit(Event(
        type="entry.created",
        data={"id": "test123"}
    ))
    await bus.drain()

    assert len(received_events) == 1
    assert received_events[0].type == "entry.created"
    assert received_events[0].data["id"] == "test123"

    await bus.stop()


@pytest.mark.asyncio
async def test_wildcard_subscription():
    """Test wildcard pattern matching."""
    bus = EventBus()
    await bus.start()

    all_events = []
    entry_events = []

    async def all_handler(event: Event):
        all_events.append(event)

    async def entry_handler(event: Event):
        entry_events.append(event)

    bus.subscribe("*", all_handler)
    bus.subscribe("entry.*", entry_handler)

    await bus.emit(Event(type="entry.created", data={}))
    await bus.emit(Event(type="search.completed", data={}))
    await bus.emit(Event(type="entry.deleted", data={}))
    await bus.drain()

    assert len(all_events) == 3
    assert len(entry_events) == 2

    await bus.stop()


@pytest.mark.asyncio
async def test_cancelled_subscription_stops_delivery():
    bus = EventBus()
    await bus.start()
    received = []

    async def handler(event: Event):
        received.append(event)

    subscription = bus.subscribe("entry.updated", handler)
    await bus.emit(Event(type="entry.updated", data={}))
    await bus.drain()

    subscription.cancel()
    assert bus.subscriber_count("entry.updated") == 0

    await bus.emit(Event(type="entry.updated", data={}))
    await bus.drain()

    assert len(received) == 1

    await bus.stop()


@pytest.mark.asyncio
async def test_sync_handlers_and_handler_errors():
    bus = EventBus()
    await bus.start()
    received = []

    async def broken(event: Event):
        raise RuntimeError("handler blew up")

    bus.subscribe("search.completed", broken)
    bus.subscribe("search.completed", lambda event: received.append(event.type))

    await bus.emit(Event(type="search.completed", data={}))
    await bus.drain()

    assert received == ["search.completed"]
    assert bus.get_stats()["handler_errors"] == 1

    await bus.stop()


@pytest.mark.asyncio
async def test_event_queue_full():
    """Test behavior when event queue is full."""
    bus = EventBus(max_queue=2)

    # Processor not started, so nothing drains the queue
    await bus.emit(Event(type="test.1", data={}))
    await bus.emit(Event(type="test.2", data={}))

    # This should be dropped
    await bus.emit(Event(type="test.3", data={}))

    stats = bus.get_stats()
    assert stats['emitted'] == 2
    assert stats['dropped'] == 1


def test_pattern_matching():
    """Test pattern matching logic."""
    bus = EventBus()

    # Exact match
    assert bus._matches_pattern("entry.created", "entry.created")
    assert not bus._matches_pattern("entry.created", "entry.deleted")

    # Wildcard
    assert bus._matches_pattern("entry.created", "entry.*")
    assert bus._matches_pattern("search.completed", "search.*")
    assert not bus._matches_pattern("entry.created", "search.*")
    assert not bus._matches_pattern("entrypoint.created", "entry.*")

    # Global wildcard
    assert bus._matches_pattern("anything", "*")
    assert bus._matches_pattern("entry.created", "*")
