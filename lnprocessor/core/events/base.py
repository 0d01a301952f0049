"""In-process event bus.

Carries inbound lifecycle events to the payment processor and outbound
payment/channel events to whoever listens on the host side.
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
    """Immutable event envelope.

    ``event_id`` and ``occurred_at`` are stamped at construction; ``context``
    is free-form host metadata and is keyword-only so subclasses can keep
    positional payload fields.
    """

    event_id: UUID = field(default_factory=uuid4, init=False)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC), init=False)
    context: dict[str, Any] | None = field(default=None, kw_only=True)

    @property
    def event_name(self) -> str:
        return type(self).__name__


@dataclass
class _HandlerRegistration:
    handler: Callable[[BaseEvent], Any]
    priority: int
    is_async: bool


def _handler_name(handler: Callable[..., Any]) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """In-memory publish/subscribe bus with sync and async handlers.

    - Handlers are matched by ``isinstance`` so subscribing to a base
      class receives every subclass event
    - Higher priority handlers run first
    - A failing handler is logged and never affects the others or the publisher

    Example:
        >>> bus = EventBus()
        >>> bus.subscribe(PaymentVerified, on_verified, priority=10)
        >>> await bus.publish_async(PaymentVerified(payment_id="p1", amount_msats=1000))
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
        """Register a handler (sync or async) for the given event type."""
        registration = _HandlerRegistration(
            handler=handler,
            priority=priority,
            is_async=asyncio.iscoroutinefunction(handler),
        )
        self._handlers[event_type].append(registration)
        self._handlers[event_type].sort(key=lambda r: r.priority, reverse=True)

        logger.debug(
            "handler_registered",
            event_type=event_type.__name__,
            handler=_handler_name(handler),
            priority=priority,
            is_async=registration.is_async,
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

    def publish(self, event: BaseEvent) -> None:
        """Publish from synchronous code.

        Sync handlers run immediately; async handlers are scheduled on the
        running loop and not awaited.
        """
        self._record(event, "event_published")

        for registration in self._get_handlers_for_event(event):
            try:
                if registration.is_async:
                    asyncio.create_task(self._execute_async_handler(registration, event))
                else:
                    registration.handler(event)
            except Exception as e:
                self._log_handler_failure(registration, event, e)

    async def publish_async(self, event: BaseEvent) -> None:
        """Publish and wait until every handler has run.

        Sync handlers run inline in priority order; async handlers run
        concurrently afterwards.
        """
        self._record(event, "event_published_async")

        tasks = []
        for registration in self._get_handlers_for_event(event):
            if registration.is_async:
                tasks.append(
                    asyncio.create_task(self._execute_async_handler(registration, event))
                )
                continue
            try:
                registration.handler(event)
            except Exception as e:
                self._log_handler_failure(registration, event, e)

        if tasks:
            await asyncio.gather(*tasks)

    async def _execute_async_handler(
        self,
        registration: _HandlerRegistration,
        event: BaseEvent,
    ) -> None:
        try:
            await registration.handler(event)
        except Exception as e:
            self._log_handler_failure(registration, event, e)

    def _record(self, event: BaseEvent, log_event: str) -> None:
        self._event_count[event.event_name] += 1
        logger.info(
            log_event,
            event_type=event.event_name,
            event_id=str(event.event_id),
            occurred_at=event.occurred_at.isoformat(),
        )

    def _log_handler_failure(
        self, registration: _HandlerRegistration, event: BaseEvent, error: Exception
    ) -> None:
        logger.error(
            "handler_failed",
            event_type=event.event_name,
            handler=_handler_name(registration.handler),
            error=str(error),
            error_type=type(error).__name__,
        )

    def _get_handlers_for_event(self, event: BaseEvent) -> list[_HandlerRegistration]:
        handlers: list[_HandlerRegistration] = []
        for event_type, registrations in self._handlers.items():
            if isinstance(event, event_type):
                handlers.extend(registrations)

        handlers.sort(key=lambda r: r.priority, reverse=True)
        return handlers

    def get_stats(self) -> dict[str, Any]:
        """Event counts and handler counts."""
        return {
            "total_handlers": sum(len(regs) for regs in self._handlers.values()),
            "event_types": len(self._handlers),
            "events_published": dict(self._event_count),
            "total_events": sum(self._event_count.values()),
        }


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Process-wide event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
        logger.info("event_bus_initialized")
    return _event_bus
