"""Base event system infrastructure.

Flow handlers and the payment workers publish domain events here so that
operators (or tests) can observe outcomes that never reach the HTTP caller,
most importantly the result of an asynchronous withdrawal payment.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

import structlog

logger = structlog.get_logger("events")


@dataclass(frozen=True)
class BaseEvent:
    """Base class for all domain events.

    All events are immutable and carry:
    - event_id: Unique identifier for this event instance
    - occurred_at: Timestamp when the event occurred (UTC)
    - context: Optional additional context data
    """

    event_id: UUID = field(default_factory=uuid4, init=False)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC), init=False)
    context: dict[str, Any] | None = field(default=None, kw_only=True)


@dataclass
class _HandlerRegistration:
    handler: Callable[[BaseEvent], Any]
    priority: int
    is_async: bool


class GlobalEventBus:
    """In-memory event bus with sync/async handler support.

    Features:
    - Synchronous and asynchronous handlers
    - Priority ordering (higher priority runs first)
    - Subclass matching (a handler for BaseEvent sees everything)
    - Error isolation (one failing handler does not affect the others)

    Example:
        >>> bus = GlobalEventBus()
        >>> bus.subscribe(WithdrawPaymentFailed, alert_operator, priority=10)
        >>> await bus.publish_async(WithdrawPaymentFailed(...))
    """

    def __init__(self) -> None:
        self._handlers: dict[type[BaseEvent], list[_HandlerRegistration]] = defaultdict(list)
        self._event_count: dict[str, int] = defaultdict(int)

    def subscribe(
        self,
        event_type: type[BaseEvent],
        handler: Callable[[BaseEvent], Any],
        priority: int = 0,
    ) -> None:
        """Register a handler for the given event type.

        Args:
            event_type: The event class to listen for
            handler: Callable that processes the event (can be sync or async)
            priority: Handler priority (higher = executed first). Default: 0
        """
        is_async = asyncio.iscoroutinefunction(handler)
        self._handlers[event_type].append(
            _HandlerRegistration(handler=handler, priority=priority, is_async=is_async)
        )
        self._handlers[event_type].sort(key=lambda r: r.priority, reverse=True)

        logger.debug(
            "handler_registered",
            event_type=event_type.__name__,
            handler=getattr(handler, "__name__", repr(handler)),
            priority=priority,
            is_async=is_async,
        )

    def unsubscribe(
        self,
        event_type: type[BaseEvent],
        handler: Callable[[BaseEvent], Any],
    ) -> None:
        """Remove a handler for the given event type."""
        if event_type in self._handlers:
            self._handlers[event_type] = [
                reg for reg in self._handlers[event_type] if reg.handler != handler
            ]

    async def publish_async(self, event: BaseEvent) -> None:
        """Publish an event and wait for every handler to finish."""
        event_name = type(event).__name__
        self._event_count[event_name] += 1

        logger.info("event_published_async", event_type=event_name, event_id=str(event.event_id))

        tasks = []
        for registration in self._get_handlers_for_event(event):
            if registration.is_async:
                tasks.append(asyncio.create_task(self._execute_async_handler(registration, event)))
            else:
                tasks.append(asyncio.create_task(self._execute_sync_handler(registration, event)))

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _execute_async_handler(
        self,
        registration: _HandlerRegistration,
        event: BaseEvent,
    ) -> None:
        try:
            await registration.handler(event)
        except Exception as e:
            logger.error(
                "async_handler_failed",
                event_type=type(event).__name__,
                handler=getattr(registration.handler, "__name__", "?"),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    async def _execute_sync_handler(
        self,
        registration: _HandlerRegistration,
        event: BaseEvent,
    ) -> None:
        try:
            await asyncio.to_thread(registration.handler, event)
        except Exception as e:
            logger.error(
                "handler_failed",
                event_type=type(event).__name__,
                handler=getattr(registration.handler, "__name__", "?"),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def _get_handlers_for_event(self, event: BaseEvent) -> list[_HandlerRegistration]:
        handlers: list[_HandlerRegistration] = []
        for event_type, registrations in self._handlers.items():
            if isinstance(event, event_type):
                handlers.extend(registrations)
        handlers.sort(key=lambda r: r.priority, reverse=True)
        return handlers

    def get_stats(self) -> dict[str, Any]:
        """Get event bus statistics."""
        handler_count = sum(len(regs) for regs in self._handlers.values())
        return {
            "total_handlers": handler_count,
            "event_types": len(self._handlers),
            "events_published": dict(self._event_count),
            "total_events": sum(self._event_count.values()),
        }


_global_event_bus: GlobalEventBus | None = None


def get_global_event_bus() -> GlobalEventBus:
    """Get the process-wide event bus."""
    global _global_event_bus
    if _global_event_bus is None:
        _global_event_bus = GlobalEventBus()
        logger.info("global_event_bus_initialized")
    return _global_event_bus
