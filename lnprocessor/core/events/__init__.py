"""In-process event system.

Example:
    >>> from lnprocessor.core.events import EventBus
    >>> bus = EventBus()
    >>> bus.subscribe(PaymentVerified, my_handler)
"""

from __future__ import annotations

__all__ = [
    "BaseEvent",
    "EventBus",
    "get_event_bus",
]

from .base import BaseEvent, EventBus, get_event_bus
