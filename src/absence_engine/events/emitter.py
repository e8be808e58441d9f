"""Event emitter for publishing domain events.

The emitter provides:
- Handler registration with type filtering
- Category-based routing
- Error isolation (handler failures don't break other handlers)
- Event batching so side effects run only after a commit
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from absence_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)


@runtime_checkable
class AsyncEventHandler(Protocol):
    """Protocol for asynchronous event handlers."""

    async def __call__(self, event: DomainEvent) -> None:
        """Handle a domain event asynchronously."""
        ...


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: AsyncEventHandler | Callable[[DomainEvent], None]
    event_types: set[str] | None  # None = all events
    categories: set[EventCategory] | None  # None = all categories
    is_async: bool


def _type_names(event_type: type[T] | list[type[T]]) -> set[str]:
    if isinstance(event_type, list):
        return {t.__name__ for t in event_type}
    return {event_type.__name__}


class AsyncEventEmitter:
    """Asynchronous event emitter.

    Publishes events to registered handlers. Handlers are isolated: if one
    fails, the failure is logged and the others still receive the event.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify_manager(event: TriggerBreached) -> None:
            ...

        emitter.on(TriggerBreached, notify_manager)

        async with emitter.batch():
            await emitter.emit(event)
        # Events dispatched when the batch exits without an error
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []
        self._batch_depth = 0
        self._batch: list[DomainEvent] = []

    def on(
        self,
        event_type: type[T] | list[type[T]],
        handler: AsyncEventHandler,
    ) -> None:
        """Register async handler for specific event type(s)."""
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=_type_names(event_type),
                categories=None,
                is_async=True,
            )
        )

    def on_sync(
        self,
        event_type: type[T] | list[type[T]],
        handler: Callable[[DomainEvent], None],
    ) -> None:
        """Register a plain callable for specific event type(s)."""
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=_type_names(event_type),
                categories=None,
                is_async=False,
            )
        )

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: AsyncEventHandler,
    ) -> None:
        """Register async handler for event category(ies)."""
        cats = set(category) if isinstance(category, list) else {category}
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=None,
                categories=cats,
                is_async=True,
            )
        )

    def on_all(self, handler: AsyncEventHandler) -> None:
        """Register async handler for all events."""
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=None,
                categories=None,
                is_async=True,
            )
        )

    def off(self, handler: Any) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    @property
    def is_batching(self) -> bool:
        return self._batch_depth > 0

    @property
    def pending(self) -> list[DomainEvent]:
        """Events held by the open batch."""
        return list(self._batch)

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers. While a batch is
        open the event is held and an empty list is returned.
        """
        if self.is_batching:
            self._batch.append(event)
            return []

        return await self._dispatch(event)

    async def _dispatch(self, event: DomainEvent) -> list[Exception]:
        """Dispatch event to matching handlers."""
        errors: list[Exception] = []
        event_type = event.event_type
        event_category = event.category

        tasks: list[asyncio.Task[None]] = []

        for reg in self._handlers:
            if reg.event_types and event_type not in reg.event_types:
                continue
            if reg.categories and event_category not in reg.categories:
                continue

            if reg.is_async:
                tasks.append(
                    asyncio.create_task(
                        self._call_async_handler(reg.handler, event)  # type: ignore[arg-type]
                    )
                )
            else:
                try:
                    reg.handler(event)
                except Exception as e:
                    logger.exception(
                        "Handler %s failed for event %s",
                        reg.handler,
                        event_type,
                    )
                    errors.append(e)

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    errors.append(result)

        return errors

    async def _call_async_handler(
        self,
        handler: AsyncEventHandler,
        event: DomainEvent,
    ) -> None:
        """Call async handler with error logging."""
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Async handler %s failed for event %s",
                handler,
                event.event_type,
            )
            raise

    def batch(self) -> AsyncEventBatch:
        """Create a batch context for collecting events.

        Batches nest: only the outermost batch dispatches.
        """
        return AsyncEventBatch(self)

    def _start_batch(self) -> None:
        if self._batch_depth == 0:
            self._batch = []
        self._batch_depth += 1

    async def _end_batch(self) -> list[Exception]:
        self._batch_depth -= 1
        if self._batch_depth > 0:
            return []

        events = self._batch
        self._batch = []

        errors: list[Exception] = []
        for event in events:
            errors.extend(await self._dispatch(event))
        return errors

    def _discard_batch(self) -> None:
        self._batch_depth = 0
        self._batch = []


class AsyncEventBatch:
    """Async context manager for batching events."""

    def __init__(self, emitter: AsyncEventEmitter) -> None:
        self._emitter = emitter
        self._errors: list[Exception] = []

    async def __aenter__(self) -> AsyncEventBatch:
        self._emitter._start_batch()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is None:
            self._errors = await self._emitter._end_batch()
        else:
            self._emitter._discard_batch()

    async def add(self, event: DomainEvent) -> None:
        """Add event to batch."""
        await self._emitter.emit(event)

    @property
    def errors(self) -> list[Exception]:
        """Errors from handler execution (available after context exits)."""
        return self._errors
