"""
Order State Machine: order creation, status lifecycle, cancellation,
re-order and tracking projection.

ARCHITECTURE:
- Orders kept most-recent-first as immutable Order snapshots
- Every change replaces the affected Order and re-submits the whole list
  (key: orders) to the write-behind persister
- Status changes publish OrderStatusChangedEvent on the event bus
- Operations run inside LogContext(order_id) so every log line of one
  order shares a correlation id

CRITICAL RULES:
1. New orders start in PENDING with a fresh, monotonically increasing id
2. DELIVERED and CANCELLED orders are immutable
3. CANCELLED is refused from OUT_FOR_DELIVERY and DELIVERED
4. Forward-only progression is only enforced when enforce_transitions is on
   (otherwise any non-terminal order may move to any status)
5. create_order() never clears the cart; the caller does that
6. Tracking info is derived on every call and never persisted
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from typing import Any, List, Mapping, Optional, Union
import copy

from ubazol.errors import InvalidTransitionError, OrderNotFoundError
from ubazol.events import EventBus, OrderCreatedEvent, OrderStatusChangedEvent
from ubazol.logging import get_logger, LogStream, LogContext
from ubazol.state.cart import Cart
from ubazol.state.ids import MonotonicIdGenerator
from ubazol.state.order import (
    CANCEL_LOCKED_STATUSES,
    Order,
    OrderStatus,
    TrackingInfo,
    build_tracking_steps,
    is_allowed_transition,
)
from ubazol.storage.keys import StorageKeys
from ubazol.time import Clock, DEFAULT_TIMEZONE, RealTimeClock, to_local


class OrderStateMachine:
    """
    Order lifecycle with write-behind persistence and status events.

    USAGE:
        orders = OrderStateMachine(persister, clock, event_bus)
        orders.load()

        order = orders.create_order(cart.snapshot(), address, "card")
        orders.update_order_status(order.id, OrderStatus.CONFIRMED)
        orders.cancel_order(order.id)
    """

    def __init__(
        self,
        persister,
        clock: Optional[Clock] = None,
        event_bus: Optional[EventBus] = None,
        estimated_delivery_minutes: int = 30,
        enforce_transitions: bool = False,
        timezone: str = DEFAULT_TIMEZONE
    ):
        """
        Args:
            persister: WriteBehindPersister
            clock: Time source for ids and timestamps
            event_bus: Receives OrderCreatedEvent/OrderStatusChangedEvent
            estimated_delivery_minutes: ETA offset applied at creation
            enforce_transitions: Only accept pairs in ALLOWED_TRANSITIONS
            timezone: Zone used for the tracking ETA
        """
        self.persister = persister
        self.clock = clock or RealTimeClock()
        self.event_bus = event_bus
        self.estimated_delivery_minutes = estimated_delivery_minutes
        self.enforce_transitions = enforce_transitions
        self.timezone = timezone
        self.logger = get_logger(LogStream.ORDERS)

        self._ids = MonotonicIdGenerator(self.clock)
        self._orders: List[Order] = []
        self._current_order_id: Optional[str] = None
        self._mutated = False

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def load(self) -> bool:
        """Seed from the persisted order list unless already mutated."""
        if self._mutated:
            self.logger.info("Orders mutated before load; keeping in-memory state")
            return False

        try:
            data = self.persister.store.get(StorageKeys.ORDERS)
            if data is None:
                return False
            orders = [Order.from_dict(o) for o in data]
        except Exception as e:
            self.logger.error(
                "Error loading orders",
                extra={"error": str(e)},
                exc_info=True
            )
            return False

        self._orders = orders
        self._ids.seed(o.id for o in orders)

        self.logger.info(f"Loaded {len(orders)} orders", extra={
            "order_count": len(orders),
            "active_count": len(self.get_active_orders())
        })
        return True

    # ========================================================================
    # CREATION
    # ========================================================================

    def create_order(
        self,
        cart: Union[Cart, Mapping],
        delivery_address: Any,
        payment_method: Any,
        *,
        reorder_of: Optional[str] = None
    ) -> Order:
        """
        Place an order from a cart snapshot.

        The cart, address and payment method are deep-copied; the cart is
        not cleared.

        Raises:
            ValueError: cart has no items
        """
        if not isinstance(cart, Cart):
            cart = Cart.from_dict(cart)
        if cart.is_empty:
            raise ValueError("Cannot create an order from an empty cart")

        now = self.clock.now()
        order = Order(
            id=self._ids.next_id(),
            items=copy.deepcopy(cart.items),
            vendor=cart.vendor,
            delivery_address=_snapshot_address(delivery_address),
            payment_method=copy.deepcopy(payment_method),
            subtotal=cart.subtotal,
            delivery_fee=cart.delivery_fee,
            service_fee=cart.service_fee,
            tax=cart.tax,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
            estimated_delivery_time=now + timedelta(minutes=self.estimated_delivery_minutes),
            reorder_of=reorder_of,
        )

        self._orders.insert(0, order)
        self._current_order_id = order.id
        self._commit()

        with LogContext(order.id):
            self.logger.info(f"Order created: {order.id}", extra={
                "order_id": order.id,
                "vendor_id": order.vendor.id if order.vendor else None,
                "item_count": order.item_count,
                "total": str(order.total),
                "reorder_of": reorder_of
            })

        self._emit(OrderCreatedEvent(
            order_id=order.id,
            vendor_id=order.vendor.id if order.vendor else None,
            total=str(order.total),
            reorder_of=reorder_of,
            timestamp=now
        ))
        return order

    def reorder(self, order_id: str) -> Order:
        """Place a fresh order with the items, vendor, address, pricing and payment of order_id."""
        original = self._require(order_id)

        cart = Cart(
            items=original.items,
            vendor=original.vendor,
            delivery_fee=original.delivery_fee,
            service_fee=original.service_fee,
            tax=original.tax,
        )
        return self.create_order(
            cart,
            original.delivery_address,
            original.payment_method,
            reorder_of=original.id
        )

    # ========================================================================
    # STATUS CHANGES
    # ========================================================================

    def update_order_status(self, order_id: str, new_status: Union[OrderStatus, str]) -> Order:
        """
        Overwrite an order's status.

        Setting the current status again is a no-op.

        Raises:
            OrderNotFoundError: unknown order_id
            InvalidTransitionError: order is delivered/cancelled, cancel
                is locked, or the pair is not allowed while
                enforce_transitions is on
            ValueError: unknown status value
        """
        new_status = OrderStatus.parse(new_status)

        with LogContext(order_id):
            order = self._require(order_id)
            if order.status == new_status:
                return order

            if order.is_terminal:
                raise InvalidTransitionError(
                    order_id, order.status, new_status,
                    f"Order {order_id} is {order.status.value} and can no longer change"
                )

            if new_status == OrderStatus.CANCELLED and order.status in CANCEL_LOCKED_STATUSES:
                raise InvalidTransitionError(
                    order_id, order.status, new_status,
                    "Order cannot be cancelled at this stage"
                )

            if self.enforce_transitions and not is_allowed_transition(order.status, new_status):
                raise InvalidTransitionError(order_id, order.status, new_status)

            return self._apply_status(order, new_status)

    def cancel_order(self, order_id: str) -> Order:
        """
        Cancel an order.

        Cancelling an already-cancelled order returns it unchanged.

        Raises:
            OrderNotFoundError: unknown order_id
            InvalidTransitionError: order is out for delivery or delivered
        """
        with LogContext(order_id):
            order = self._require(order_id)

            if order.status == OrderStatus.CANCELLED:
                self.logger.debug(f"Order already cancelled: {order_id}")
                return order

            if order.status in CANCEL_LOCKED_STATUSES:
                self.logger.warning(f"Cancel refused: {order_id}", extra={
                    "order_id": order_id, "status": order.status.value
                })
                raise InvalidTransitionError(
                    order_id, order.status, OrderStatus.CANCELLED,
                    "Order cannot be cancelled at this stage"
                )

            return self._apply_status(order, OrderStatus.CANCELLED)

    def _apply_status(self, order: Order, new_status: OrderStatus) -> Order:
        old_status = order.status
        updated = replace(order, status=new_status, updated_at=self.clock.now())

        self._orders = [updated if o.id == order.id else o for o in self._orders]
        self._commit()

        self.logger.info(
            f"Order {order.id}: {old_status.value} → {new_status.value}",
            extra={
                "order_id": order.id,
                "from_status": old_status.value,
                "to_status": new_status.value
            }
        )

        self._emit(OrderStatusChangedEvent(
            order_id=order.id,
            from_status=old_status.value,
            to_status=new_status.value,
            timestamp=updated.updated_at
        ))
        return updated

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_order(self, order_id: str) -> Optional[Order]:
        order_id = str(order_id)
        for order in self._orders:
            if order.id == order_id:
                return order
        return None

    def get_orders(self) -> List[Order]:
        """Orders in stored (most-recent-first) order."""
        return list(self._orders)

    def get_order_history(self) -> List[Order]:
        return sorted(self._orders, key=lambda o: o.created_at, reverse=True)

    def get_active_orders(self) -> List[Order]:
        return [o for o in self._orders if o.is_active]

    def get_orders_by_status(self, status: Union[OrderStatus, str]) -> List[Order]:
        status = OrderStatus.parse(status)
        return [o for o in self._orders if o.status == status]

    def track_order(self, order_id: str) -> Optional[TrackingInfo]:
        order = self.get_order(order_id)
        if order is None:
            return None

        steps, current = build_tracking_steps(order.status)
        eta = order.estimated_delivery_time
        return TrackingInfo(
            order=order,
            steps=tuple(steps),
            current_step=current,
            eta_local=to_local(eta, self.timezone) if eta else None,
        )

    @property
    def current_order(self) -> Optional[Order]:
        if self._current_order_id is None:
            return None
        return self.get_order(self._current_order_id)

    def set_current_order(self, order_id: Optional[str]) -> Optional[Order]:
        """Select the order shown on the tracking screen (None clears it)."""
        if order_id is None:
            self._current_order_id = None
            return None
        order = self._require(order_id)
        self._current_order_id = order.id
        return order

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require(self, order_id: str) -> Order:
        order = self.get_order(order_id)
        if order is None:
            self.logger.warning(f"Order not found: {order_id}")
            raise OrderNotFoundError(str(order_id))
        return order

    def _commit(self) -> None:
        self._mutated = True
        self.persister.submit(StorageKeys.ORDERS, [o.to_dict() for o in self._orders])

    def _emit(self, event) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(event)


def _snapshot_address(address: Any) -> Any:
    """Detached copy of an Address, address mapping or address text."""
    if address is None or isinstance(address, str):
        return address
    if hasattr(address, "to_dict"):
        return address.to_dict()
    if isinstance(address, Mapping):
        return copy.deepcopy(dict(address))
    raise ValueError(f"Unsupported delivery address: {address!r}")
