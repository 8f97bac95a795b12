"""
State containers: cart, orders, addresses, notifications, profile.
"""

from .cart import (
    Cart,
    CartItem,
    CartStateMachine,
    Product,
    Vendor,
    options_key,
)
from .order import (
    ALLOWED_TRANSITIONS,
    Order,
    OrderStatus,
    OrderTransition,
    TrackingInfo,
    TrackingStep,
)
from .order_machine import OrderStateMachine
from .location import Address, CurrentLocation, GeocodedAddress, LocationStore, calculate_distance
from .notifications import (
    Notification,
    NotificationKind,
    NotificationLog,
    NullPushTransport,
    PushTransport,
)
from .profile import ProfileStore

__all__ = [
    "Cart",
    "CartItem",
    "CartStateMachine",
    "Product",
    "Vendor",
    "options_key",
    "ALLOWED_TRANSITIONS",
    "Order",
    "OrderStatus",
    "OrderTransition",
    "TrackingInfo",
    "TrackingStep",
    "OrderStateMachine",
    "Address",
    "CurrentLocation",
    "GeocodedAddress",
    "LocationStore",
    "calculate_distance",
    "Notification",
    "NotificationKind",
    "NotificationLog",
    "NullPushTransport",
    "PushTransport",
    "ProfileStore",
]
