"""
Event emission for pools and tunnels.

Components emit typed events (see EventType). Consumers either register
handlers with ``on``/``once`` or iterate ``events()`` as an async stream.
Handlers run synchronously in emission order; coroutine handlers are
scheduled as tasks.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from quickportal.models.enums import EventType
from quickportal.utils.logger import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], Any]


@dataclass(frozen=True)
class TunnelEvent:
    """A single emitted event as seen by stream subscribers."""

    type: EventType
    payload: Any = None


class EventEmitter:
    """Callback registry plus queue-backed event streams."""

    def __init__(self):
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)
        self._subscribers: list[asyncio.Queue[TunnelEvent | None]] = []
        self._handler_tasks: set[asyncio.Task] = set()

    def on(self, event: EventType | str, handler: Handler | None = None):
        """
        Register a handler for an event.

        Usable directly (``emitter.on("dead", fn)``) or as a decorator
        (``@emitter.on("dead")``).
        """
        event = EventType(event)
        if handler is None:

            def decorator(fn: Handler) -> Handler:
                self._handlers[event].append(fn)
                return fn

            return decorator

        self._handlers[event].append(handler)
        return handler

    def once(self, event: EventType | str, handler: Handler) -> Handler:
        """Register a handler that is removed after its first call."""
        event = EventType(event)

        def wrapper(payload: Any) -> Any:
            self.off(event, wrapper)
            return handler(payload)

        self._handlers[event].append(wrapper)
        return wrapper

    def off(self, event: EventType | str, handler: Handler) -> None:
        """Remove a previously registered handler (no-op if absent)."""
        handlers = self._handlers[EventType(event)]
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: EventType | str) -> int:
        return len(self._handlers[EventType(event)])

    def emit(self, event: EventType | str, payload: Any = None) -> None:
        """Deliver an event to every handler and stream subscriber."""
        event = EventType(event)

        for handler in list(self._handlers[event]):
            try:
                result = handler(payload)
            except Exception as e:
                logger.exception(f"Handler for '{event.value}' event failed: {e}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._handler_tasks.add(task)
                task.add_done_callback(self._on_handler_done)

        item = TunnelEvent(event, payload)
        for queue in list(self._subscribers):
            queue.put_nowait(item)

    async def events(self, *types: EventType | str) -> AsyncIterator[TunnelEvent]:
        """
        Iterate emitted events as they happen.

        Args:
            *types: Only yield these event types (all types when empty).

        The stream ends after ``end_streams()`` is called.
        """
        wanted = {EventType(t) for t in types}
        queue: asyncio.Queue[TunnelEvent | None] = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                if not wanted or item.type in wanted:
                    yield item
        finally:
            self._subscribers.remove(queue)

    def end_streams(self) -> None:
        """Terminate every active ``events()`` iterator."""
        for queue in list(self._subscribers):
            queue.put_nowait(None)

    def _on_handler_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Async event handler failed: {exc}")
