"""In-process event channel.

State changes (invoice transitions, checkout completion, refreshed order views)
are published here as discrete events instead of being pushed into shared
mutable state. Listeners are plain callables invoked synchronously in
publication order; ``stream()`` hands out an ``asyncio.Queue`` for consumers
that prefer to ``await`` events.
"""

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

Listener = Callable[[Any], None]


class EventChannel:
    """Fan-out of events to listeners and queues."""

    def __init__(self, history_size: int = 1000) -> None:
        self._listeners: list[Listener] = []
        self._queues: list[asyncio.Queue] = []
        self._history: list[Any] = []
        self._history_size = history_size

    @property
    def history(self) -> list[Any]:
        return list(self._history)

    def listen(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def stream(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def close_stream(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, event: Any) -> None:
        self._history.append(event)
        if len(self._history) > self._history_size:
            del self._history[0]

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed", event_type=type(event).__name__)

        for queue in self._queues:
            queue.put_nowait(event)

    def publish_all(self, events) -> None:
        for event in events:
            self.publish(event)
