"""
Order model: status enum, transition table, immutable Order snapshot and
the tracking projection.

Orders hold deep copies of the cart lines and address they were created
from; later cart or address changes never reach a placed order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union
import copy

from ubazol.state.cart import CartItem, Vendor, ZERO, to_money
from ubazol.time import format_timestamp, parse_timestamp


# ============================================================================
# ORDER STATUS ENUM
# ============================================================================

class OrderStatus(str, Enum):
    """Canonical delivery states (values are the persisted strings)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Union["OrderStatus", str]) -> "OrderStatus":
        if isinstance(value, OrderStatus):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown order status: {value!r}") from None


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})

# Cancelling is refused once the courier has the order
CANCEL_LOCKED_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
})

# Forward progression; ready_for_pickup is optional between preparing and
# out_for_delivery
STATUS_SEQUENCE: Tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)


# ============================================================================
# TRANSITION DEFINITION
# ============================================================================

@dataclass(frozen=True)
class OrderTransition:
    """Immutable definition of an allowed status change."""
    from_status: OrderStatus
    to_status: OrderStatus
    description: str = ""


ALLOWED_TRANSITIONS: FrozenSet[OrderTransition] = frozenset({
    OrderTransition(OrderStatus.PENDING, OrderStatus.CONFIRMED, "Vendor accepted"),
    OrderTransition(OrderStatus.CONFIRMED, OrderStatus.PREPARING, "Kitchen started"),
    OrderTransition(OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP, "Waiting for courier"),
    OrderTransition(OrderStatus.PREPARING, OrderStatus.OUT_FOR_DELIVERY, "Picked up"),
    OrderTransition(OrderStatus.READY_FOR_PICKUP, OrderStatus.OUT_FOR_DELIVERY, "Picked up"),
    OrderTransition(OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED, "Handed over"),
    OrderTransition(OrderStatus.PENDING, OrderStatus.CANCELLED, "Cancelled before confirmation"),
    OrderTransition(OrderStatus.CONFIRMED, OrderStatus.CANCELLED, "Cancelled after confirmation"),
    OrderTransition(OrderStatus.PREPARING, OrderStatus.CANCELLED, "Cancelled while preparing"),
    OrderTransition(OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED, "Cancelled before pickup"),
})

_transition_map: Dict[Tuple[OrderStatus, OrderStatus], OrderTransition] = {
    (t.from_status, t.to_status): t for t in ALLOWED_TRANSITIONS
}


def is_allowed_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return (from_status, to_status) in _transition_map


def status_rank(status: OrderStatus) -> int:
    """Position in STATUS_SEQUENCE; cancelled ranks as pending."""
    if status == OrderStatus.CANCELLED:
        return 0
    return STATUS_SEQUENCE.index(status)


# ============================================================================
# ORDER DATACLASS
# ============================================================================

@dataclass(frozen=True)
class Order:
    """Immutable order snapshot. Status changes produce a new Order."""
    # Identification
    id: str
    items: Tuple[CartItem, ...]
    vendor: Optional[Vendor]

    # Checkout details
    delivery_address: Any = None
    payment_method: Any = None

    # Pricing
    subtotal: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    service_fee: Decimal = ZERO
    tax: Decimal = ZERO

    # State tracking
    status: OrderStatus = OrderStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    estimated_delivery_time: Optional[datetime] = None

    reorder_of: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.delivery_fee + self.service_fee + self.tax

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def can_cancel(self) -> bool:
        return self.status not in CANCEL_LOCKED_STATUSES

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "items": [item.to_dict() for item in self.items],
            "vendor": self.vendor.to_dict() if self.vendor else None,
            "deliveryAddress": copy.deepcopy(self.delivery_address),
            "paymentMethod": copy.deepcopy(self.payment_method),
            "subtotal": str(self.subtotal),
            "deliveryFee": str(self.delivery_fee),
            "serviceFee": str(self.service_fee),
            "tax": str(self.tax),
            "total": str(self.total),
            "status": self.status.value,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "estimatedDeliveryTime": format_timestamp(self.estimated_delivery_time),
            "reorderOf": self.reorder_of,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Order":
        """
        Raises:
            ValueError: snapshot without createdAt (history is ordered by it)
        """
        created_at = parse_timestamp(data.get("createdAt"))
        if created_at is None:
            raise ValueError(f"Order {data.get('id')!r} has no createdAt")

        vendor_data = data.get("vendor")
        return cls(
            id=str(data["id"]),
            items=tuple(CartItem.from_dict(i) for i in data.get("items") or []),
            vendor=Vendor.from_dict(vendor_data) if vendor_data else None,
            delivery_address=copy.deepcopy(data.get("deliveryAddress")),
            payment_method=copy.deepcopy(data.get("paymentMethod")),
            subtotal=to_money(data.get("subtotal"), "subtotal"),
            delivery_fee=to_money(data.get("deliveryFee"), "deliveryFee"),
            service_fee=to_money(data.get("serviceFee"), "serviceFee"),
            tax=to_money(data.get("tax"), "tax"),
            status=OrderStatus.parse(data.get("status", OrderStatus.PENDING)),
            created_at=created_at,
            updated_at=parse_timestamp(data.get("updatedAt")),
            estimated_delivery_time=parse_timestamp(data.get("estimatedDeliveryTime")),
            reorder_of=data.get("reorderOf"),
        )


# ============================================================================
# TRACKING PROJECTION
# ============================================================================

@dataclass(frozen=True)
class TrackingStep:
    status: OrderStatus
    title: str
    completed: bool


@dataclass(frozen=True)
class TrackingInfo:
    """Derived view of an order's progress. Never persisted."""
    order: Order
    steps: Tuple[TrackingStep, ...]
    current_step: int
    eta_local: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "order": self.order.to_dict(),
            "trackingSteps": [
                {"status": s.status.value, "title": s.title, "completed": s.completed}
                for s in self.steps
            ],
            "currentStep": self.current_step,
            "etaLocal": self.eta_local.isoformat() if self.eta_local else None,
        }


TRACKING_STEPS: Tuple[Tuple[OrderStatus, str], ...] = (
    (OrderStatus.PENDING, "Order Placed"),
    (OrderStatus.CONFIRMED, "Order Confirmed"),
    (OrderStatus.PREPARING, "Preparing"),
    (OrderStatus.OUT_FOR_DELIVERY, "Out for Delivery"),
    (OrderStatus.DELIVERED, "Delivered"),
)


def build_tracking_steps(status: OrderStatus) -> Tuple[List[TrackingStep], int]:
    """Flag each canonical step completed when status is at or past it."""
    rank = status_rank(status)
    steps = [
        TrackingStep(step_status, title, completed=status_rank(step_status) <= rank)
        for step_status, title in TRACKING_STEPS
    ]
    current = next(
        (i for i, (step_status, _) in enumerate(TRACKING_STEPS) if step_status == status),
        -1
    )
    return steps, current
