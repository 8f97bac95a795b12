"""
Event bus for order lifecycle events.

PROPERTIES:
1. Handlers registered by event type
2. Synchronous dispatch on the caller's thread, in registration order
   (all state-container operations run on one logical thread)
3. Handler failures are isolated (logged, counted, never raised to the
   publisher)

USAGE:
    bus = EventBus()
    bus.subscribe(OrderStatusChangedEvent, on_status_changed)
    bus.emit(OrderStatusChangedEvent(...))
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Type

from ubazol.logging import get_logger, LogStream


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True)
class Event:
    """Base class for all events."""
    pass


@dataclass(frozen=True)
class OrderCreatedEvent(Event):
    """Emitted when an order is placed (including re-orders)."""
    order_id: str
    vendor_id: Optional[str]
    total: str
    reorder_of: Optional[str] = None
    timestamp: datetime = field(default_factory=now_utc)


@dataclass(frozen=True)
class OrderStatusChangedEvent(Event):
    """Emitted on every order status change."""
    order_id: str
    from_status: str
    to_status: str
    timestamp: datetime = field(default_factory=now_utc)

    def to_dict(self) -> Dict:
        return {
            "event_type": "OrderStatusChanged",
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================================
# EVENT BUS
# ============================================================================

class EventBus:
    """Synchronous publish/subscribe by event type."""

    def __init__(self):
        self.logger = get_logger(LogStream.SYSTEM)
        self._handlers: Dict[Type[Event], List[Callable[[Event], None]]] = {}

        self._events_processed = 0
        self._events_failed = 0

    def subscribe(self, event_type: Type[Event], handler: Callable[[Event], None]) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

        self.logger.debug(f"Handler registered for {event_type.__name__}", extra={
            "event_type": event_type.__name__,
            "handler_count": len(self._handlers[event_type])
        })

    def unsubscribe(self, event_type: Type[Event], handler: Callable[[Event], None]) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    def emit(self, event: Event) -> None:
        handlers = list(self._handlers.get(type(event), []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self._events_failed += 1
                self.logger.error(
                    "Event handler failed",
                    extra={
                        "event_type": type(event).__name__,
                        "handler": getattr(handler, "__name__", repr(handler)),
                        "error": str(e)
                    },
                    exc_info=True
                )

        self._events_processed += 1

    def get_stats(self) -> Dict[str, int]:
        return {
            "events_processed": self._events_processed,
            "events_failed": self._events_failed,
            "handler_count": sum(len(h) for h in self._handlers.values()),
        }
