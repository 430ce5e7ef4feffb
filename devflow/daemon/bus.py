"""Async event bus for store change notifications and service events."""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Callable, Any, Optional

from loguru import logger


@dataclass
class Event:
    """Base event class."""
    type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: Optional[str] = None


Handler = Callable[[Event], Any]


@dataclass
class Subscription:
    """Handle returned by `EventBus.subscribe`; call `cancel()` to unsubscribe."""
    bus: "EventBus"
    pattern: str
    handler: Handler

    def cancel(self) -> None:
        self.bus.unsubscribe(self.pattern, self.handler)


class EventBus:
    """
    Async pub/sub event bus for in-process communication.

    Event types follow pattern: category.action
    Examples: entry.created, entry.updated, entry.deleted, search.completed,
    ingestion.bulk_completed
    """

    def __init__(self, max_queue: int = 1000):
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)
        self._event_queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._running = False
        self._processor_task: Optional[asyncio.Task] = None
        self._stats = defaultdict(int)

    def subscribe(self, event_pattern: str, handler: Handler) -> Subscription:
        """
        Subscribe to events matching pattern.
        Pattern can use wildcards: 'entry.*' matches all entry events.
        """
        self._subscribers[event_pattern].append(handler)
        logger.debug(f"Subscribed handler to pattern: {event_pattern}")
        return Subscription(self, event_pattern, handler)

    def unsubscribe(self, event_pattern: str, handler: Handler) -> None:
        """Unsubscribe handler from event pattern."""
        handlers = [h for h in self._subscribers.get(event_pattern, []) if h is not handler]
        if handlers:
            self._subscribers[event_pattern] = handlers
        else:
            self._subscribers.pop(event_pattern, None)

    def subscriber_count(self, event_pattern: Optional[str] = None) -> int:
        if event_pattern is not None:
            return len(self._subscribers.get(event_pattern, []))
        return sum(len(h) for h in self._subscribers.values())

    async def emit(self, event: Event) -> None:
        """Emit an event to the bus."""
        if self._event_queue.full():
            logger.warning(f"Event queue full, dropping event: {event.type}")
            self._stats['dropped'] += 1
            return

        await self._event_queue.put(event)
        self._stats['emitted'] += 1
        logger.debug(f"Emitted event: {event.type}")

    async def start(self) -> None:
        """Start the event processor."""
        if self._running:
            logger.warning("Event bus already running")
            return

        self._running = True
        self._processor_task = asyncio.create_task(self._process_events())
        logger.info("Event bus started")

    async def stop(self) -> None:
        """Stop the event processor."""
        self._running = False
        if self._processor_task:
            await self._processor_task
            self._processor_task = None
        logger.info("Event bus stopped")

    async def drain(self) -> None:
        """Wait until every queued event has been dispatched."""
        await self._event_queue.join()

    async def _process_events(self) -> None:
        """Process events from the queue."""
        while self._running:
            try:
                # Wait for event with timeout to allow checking _running flag
                event = await asyncio.wait_for(self._event_queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue

            try:
                await self._dispatch(event)
                self._stats['processed'] += 1
            except Exception as e:
                logger.error(f"Error processing event {event.type}: {e}")
                self._stats['processing_errors'] += 1
            finally:
                self._event_queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        handlers = [
            handler
            for pattern, pattern_handlers in list(self._subscribers.items())
            if self._matches_pattern(event.type, pattern)
            for handler in pattern_handlers
        ]
        if not handlers:
            return

        tasks = []
        for handler in handlers:
            if asyncio.iscoroutinefunction(handler):
                tasks.append(asyncio.create_task(handler(event)))
            else:
                tasks.append(asyncio.create_task(asyncio.to_thread(handler, event)))

        results = await asyncio.gather(*tasks, return_exceptions=True)

        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Handler error for event {event.type}: {result}")
                self._stats['handler_errors'] += 1

    def _matches_pattern(self, event_type: str, pattern: str) -> bool:
        """Check if event type matches subscription pattern."""
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return event_type.startswith(prefix + ".")
        return event_type == pattern

    def get_stats(self) -> Dict[str, int]:
        """Get event bus statistics."""
        return dict(self._stats)
