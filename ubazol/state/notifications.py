"""
Notification log: inbound notifications with read/unread state, decoupled
from the push transport.

PROPERTIES:
1. Most-recent-first; entries are only ever prepended
2. read flips one way (False -> True); re-marking is a no-op
3. Order status changes map to a fixed (title, kind) table
4. Persisted under key "notifications" after every change
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union
import copy
import itertools

from ubazol.logging import get_logger, LogStream
from ubazol.state.ids import MonotonicIdGenerator
from ubazol.storage.keys import StorageKeys
from ubazol.time import Clock, RealTimeClock, format_timestamp, parse_timestamp


class NotificationKind(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


# status value -> (title, kind)
ORDER_NOTIFICATION_TABLE: Dict[str, Tuple[str, NotificationKind]] = {
    "confirmed": ("Order Confirmed", NotificationKind.SUCCESS),
    "preparing": ("Order Being Prepared", NotificationKind.INFO),
    "out_for_delivery": ("Out for Delivery", NotificationKind.INFO),
    "delivered": ("Order Delivered", NotificationKind.SUCCESS),
    "cancelled": ("Order Cancelled", NotificationKind.ERROR),
}
DEFAULT_ORDER_NOTIFICATION = ("Order Update", NotificationKind.INFO)


@dataclass(frozen=True)
class Notification:
    id: str
    title: str
    message: str
    kind: NotificationKind = NotificationKind.INFO
    timestamp: Optional[datetime] = None
    read: bool = False
    order_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.kind.value,
            "timestamp": format_timestamp(self.timestamp),
            "read": self.read,
            "orderId": self.order_id,
            "data": copy.deepcopy(self.data),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Notification":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            message=data.get("message", data.get("body", "")),
            kind=NotificationKind(data.get("type", data.get("kind", "info"))),
            timestamp=parse_timestamp(data.get("timestamp")),
            read=bool(data.get("read", False)),
            order_id=data.get("orderId", data.get("order_id")),
            data=copy.deepcopy(dict(data.get("data") or {})),
        )


# ============================================================================
# PUSH TRANSPORT
# ============================================================================

class PushTransport(Protocol):
    """Platform push service."""

    def register_for_push(self) -> Optional[str]:
        """Return a push token, or None when permission is denied."""
        ...

    def schedule_notification(self, content: Mapping, trigger: Optional[Mapping] = None) -> str:
        """Schedule a local notification; returns its id."""
        ...


class NullPushTransport:
    """Records scheduled notifications instead of delivering them."""

    def __init__(self, token: Optional[str] = "local-push-token"):
        self.token = token
        self.scheduled: List[Tuple[str, Dict, Optional[Dict]]] = []
        self._counter = itertools.count(1)

    def register_for_push(self) -> Optional[str]:
        return self.token

    def schedule_notification(self, content: Mapping, trigger: Optional[Mapping] = None) -> str:
        notification_id = f"scheduled-{next(self._counter)}"
        self.scheduled.append((notification_id, dict(content), dict(trigger) if trigger else None))
        return notification_id


# ============================================================================
# NOTIFICATION LOG
# ============================================================================

class NotificationLog:
    """Most-recent-first notification list with unread tracking."""

    def __init__(
        self,
        persister,
        clock: Optional[Clock] = None,
        push: Optional[PushTransport] = None
    ):
        self.persister = persister
        self.clock = clock or RealTimeClock()
        self.push = push or NullPushTransport()
        self.logger = get_logger(LogStream.NOTIFICATIONS)

        self._ids = MonotonicIdGenerator(self.clock)
        self._entries: Tuple[Notification, ...] = ()
        self._push_token: Optional[str] = None
        self._mutated = False

    def load(self) -> bool:
        if self._mutated:
            return False

        try:
            data = self.persister.store.get(StorageKeys.NOTIFICATIONS)
            if data is None:
                return False
            entries = tuple(Notification.from_dict(n) for n in data)
        except Exception as e:
            self.logger.error(
                "Error loading notifications",
                extra={"error": str(e)},
                exc_info=True
            )
            return False

        self._entries = entries
        self._ids.seed(n.id for n in entries)
        return True

    # ========================================================================
    # LOG OPERATIONS
    # ========================================================================

    @property
    def notifications(self) -> List[Notification]:
        return list(self._entries)

    def get_notification(self, notification_id: str) -> Optional[Notification]:
        for entry in self._entries:
            if entry.id == str(notification_id):
                return entry
        return None

    def add_notification(self, entry: Union[Notification, Mapping]) -> Notification:
        """Prepend an entry, assigning id and timestamp when missing. Always unread."""
        if isinstance(entry, Notification):
            entry = entry.to_dict()
        entry = dict(entry)

        entry.setdefault("message", entry.get("body", ""))
        if not entry.get("id"):
            entry["id"] = self._ids.next_id()
        if not entry.get("timestamp"):
            entry["timestamp"] = self.clock.now()
        entry["read"] = False

        notification = Notification.from_dict(entry)
        self._commit((notification,) + self._entries)

        self.logger.info(f"Notification added: {notification.title}", extra={
            "notification_id": notification.id,
            "kind": notification.kind.value,
            "order_id": notification.order_id
        })
        return notification

    def mark_as_read(self, notification_id: str) -> bool:
        """Returns True only if an unread entry was flipped."""
        target = self.get_notification(notification_id)
        if target is None or target.read:
            return False

        self._commit(tuple(
            replace(n, read=True) if n is target else n for n in self._entries
        ))
        return True

    def mark_all_as_read(self) -> int:
        unread = sum(1 for n in self._entries if not n.read)
        if unread:
            self._commit(tuple(
                n if n.read else replace(n, read=True) for n in self._entries
            ))
        return unread

    def remove_notification(self, notification_id: str) -> bool:
        remaining = tuple(n for n in self._entries if n.id != str(notification_id))
        if len(remaining) == len(self._entries):
            return False
        self._commit(remaining)
        return True

    def clear_all(self) -> None:
        self._entries = ()
        self._mutated = True
        self.persister.submit_remove(StorageKeys.NOTIFICATIONS)

    def get_unread_count(self) -> int:
        return sum(1 for n in self._entries if not n.read)

    def send_order_notification(
        self,
        order_id: str,
        status: Any,
        custom_message: Optional[str] = None
    ) -> Notification:
        """Log the canonical notification for an order status."""
        status_value = getattr(status, "value", status)
        title, kind = ORDER_NOTIFICATION_TABLE.get(status_value, DEFAULT_ORDER_NOTIFICATION)

        return self.add_notification({
            "title": title,
            "message": custom_message or f"Order #{order_id} status updated.",
            "type": kind.value,
            "orderId": str(order_id),
            "data": {"orderId": str(order_id), "status": status_value},
        })

    # ========================================================================
    # PUSH
    # ========================================================================

    @property
    def push_token(self) -> Optional[str]:
        return self._push_token

    def register_for_push(self) -> Optional[str]:
        token = self.push.register_for_push()
        if token is None:
            self.logger.warning("Push permission not granted")
        self._push_token = token
        return token

    def schedule_notification(self, content: Mapping, trigger: Optional[Mapping] = None) -> str:
        return self.push.schedule_notification(content, trigger)

    def _commit(self, entries: Tuple[Notification, ...]) -> None:
        self._entries = entries
        self._mutated = True
        self.persister.submit(StorageKeys.NOTIFICATIONS, [n.to_dict() for n in entries])
