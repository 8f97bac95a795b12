"""
Event bus for order lifecycle events.
"""

from .bus import (
    EventBus,
    Event,
    OrderCreatedEvent,
    OrderStatusChangedEvent,
)

__all__ = [
    "EventBus",
    "Event",
    "OrderCreatedEvent",
    "OrderStatusChangedEvent",
]
