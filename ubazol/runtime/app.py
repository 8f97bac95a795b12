"""
Application container: owns every state object for one app run.

ARCHITECTURE:
- init() builds, in dependency order: store -> persister -> event bus ->
  state machines -> scheduler, then reloads every state machine from the
  store before handing the container out
- dispose() flushes pending writes, stops the persister and closes the
  store (only when the container created it)
- Presentation-facing operations return ActionResult instead of raising;
  domain errors (UbazolError) and input errors (ValueError) become
  ActionResult(success=False, error=<message>)

USAGE:
    with DeliveryApp(load_config(Path("config"))) as app:
        result = app.add_to_cart(product, 2)
        if not result.success:
            show(result.error)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from ubazol.config import ConfigSchema, StorageBackend
from ubazol.errors import UbazolError
from ubazol.events import EventBus, OrderCreatedEvent, OrderStatusChangedEvent
from ubazol.location import LocationProvider
from ubazol.logging import get_logger, log_performance, LogStream
from ubazol.runtime.scheduler import DemoStatusScheduler
from ubazol.state import (
    CartStateMachine,
    LocationStore,
    NotificationLog,
    OrderStateMachine,
    OrderStatus,
    ProfileStore,
    PushTransport,
)
from ubazol.storage import MemoryKeyValueStore, SqliteKeyValueStore, WriteBehindPersister
from ubazol.time import Clock, RealTimeClock


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a presentation-level operation."""
    success: bool
    error: Optional[str] = None
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "ActionResult":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)


class DeliveryApp:
    """Explicitly owned state for one app session."""

    def __init__(
        self,
        config: Optional[ConfigSchema] = None,
        *,
        store=None,
        clock: Optional[Clock] = None,
        location_provider: Optional[LocationProvider] = None,
        push: Optional[PushTransport] = None,
        synchronous: Optional[bool] = None
    ):
        """
        Args:
            config: Validated configuration (defaults if None)
            store: KeyValueStore to use instead of the configured backend
            clock: Time source shared by every component
            location_provider: Device-location collaborator
            push: Push transport collaborator
            synchronous: Override storage.write_behind (True writes inline)
        """
        self.config = config or ConfigSchema()
        self.clock = clock or RealTimeClock()
        self.logger = get_logger(LogStream.SYSTEM)

        self._external_store = store
        self._location_provider = location_provider
        self._push = push
        self._synchronous = (
            synchronous if synchronous is not None else not self.config.storage.write_behind
        )

        self.store = None
        self.persister: Optional[WriteBehindPersister] = None
        self.event_bus: Optional[EventBus] = None
        self.cart: Optional[CartStateMachine] = None
        self.orders: Optional[OrderStateMachine] = None
        self.location: Optional[LocationStore] = None
        self.notifications: Optional[NotificationLog] = None
        self.profile: Optional[ProfileStore] = None
        self.scheduler: Optional[DemoStatusScheduler] = None

        self._initialized = False

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @log_performance(LogStream.PERFORMANCE)
    def init(self) -> "DeliveryApp":
        if self._initialized:
            raise RuntimeError("DeliveryApp already initialized")

        # 1. Store
        self.store = self._external_store or self._create_store()

        # 2. Persister
        self.persister = WriteBehindPersister(self.store, synchronous=self._synchronous)
        self.persister.start()

        # 3. Events
        self.event_bus = EventBus()

        # 4. State machines
        self.cart = CartStateMachine(self.persister, self.clock)
        self.orders = OrderStateMachine(
            self.persister,
            self.clock,
            event_bus=self.event_bus,
            estimated_delivery_minutes=self.config.orders.estimated_delivery_minutes,
            enforce_transitions=self.config.orders.enforce_transitions,
            timezone=self.config.app.timezone
        )
        self.location = LocationStore(self.persister, self._location_provider, self.clock)
        self.notifications = NotificationLog(self.persister, self.clock, self._push)
        self.profile = ProfileStore(self.persister)

        # 5. Reload last snapshots
        for component in (self.cart, self.orders, self.location, self.notifications, self.profile):
            component.load()

        # 6. Wiring
        self.event_bus.subscribe(OrderStatusChangedEvent, self._on_order_status_changed)

        if self.config.scheduler.enabled:
            self.scheduler = DemoStatusScheduler(
                self.orders,
                self.clock,
                steps=(
                    (self.config.scheduler.confirm_after_seconds, OrderStatus.CONFIRMED),
                    (self.config.scheduler.prepare_after_seconds, OrderStatus.PREPARING),
                )
            )
            self.event_bus.subscribe(OrderCreatedEvent, self.scheduler.on_order_created)

        self._initialized = True

        self.logger.info("DeliveryApp initialized", extra={
            "backend": type(self.store).__name__,
            "write_behind": not self._synchronous,
            "scheduler": self.scheduler is not None,
            "cart_items": self.cart.get_item_count(),
            "orders": len(self.orders.get_orders())
        })
        return self

    def dispose(self) -> None:
        if not self._initialized:
            return

        self.flush()
        self.persister.stop(timeout=self.config.storage.flush_timeout_seconds)
        self.event_bus.clear()

        if self._external_store is None and hasattr(self.store, "close"):
            self.store.close()

        self._initialized = False
        self.logger.info("DeliveryApp disposed", extra={
            "writes_completed": self.persister.writes_completed,
            "writes_failed": self.persister.writes_failed
        })

    def __enter__(self) -> "DeliveryApp":
        return self.init()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every submitted snapshot has been written."""
        if self.persister is None:
            return True
        if timeout is None:
            timeout = self.config.storage.flush_timeout_seconds
        return self.persister.flush(timeout=timeout)

    def tick(self) -> int:
        """Run due demo status steps."""
        if self.scheduler is None:
            return 0
        return self.scheduler.run_due()

    def _create_store(self):
        storage = self.config.storage
        if storage.backend == StorageBackend.MEMORY:
            return MemoryKeyValueStore()
        return SqliteKeyValueStore(storage.path, clock=self.clock)

    def _require_init(self) -> None:
        if not self._initialized:
            raise RuntimeError("DeliveryApp not initialized. Call init() first.")

    def _on_order_status_changed(self, event: OrderStatusChangedEvent) -> None:
        self.notifications.send_order_notification(event.order_id, event.to_status)

    def _run(self, action: str, fn: Callable[[], Any]) -> ActionResult:
        self._require_init()
        try:
            return ActionResult.ok(fn())
        except (UbazolError, ValueError) as e:
            self.logger.info(f"{action} failed: {e}", extra={
                "action": action, "error_type": type(e).__name__
            })
            return ActionResult.fail(str(e))

    # ========================================================================
    # CART
    # ========================================================================

    def add_to_cart(self, product, quantity: int = 1, options: Optional[Mapping] = None) -> ActionResult:
        return self._run("add_to_cart", lambda: self.cart.add_item(product, quantity, options))

    def remove_from_cart(self, product_id: str, options: Optional[Mapping] = None) -> ActionResult:
        return self._run("remove_from_cart", lambda: self.cart.remove_item(product_id, options))

    def update_cart_quantity(self, product_id: str, options: Optional[Mapping], quantity: int) -> ActionResult:
        return self._run(
            "update_cart_quantity",
            lambda: self.cart.update_quantity(product_id, options, quantity)
        )

    def update_fees(self, delivery_fee=None, service_fee=None, tax=None) -> ActionResult:
        return self._run("update_fees", lambda: self.cart.update_fees(delivery_fee, service_fee, tax))

    def clear_cart(self) -> ActionResult:
        return self._run("clear_cart", self.cart.clear_cart)

    # ========================================================================
    # ORDERS
    # ========================================================================

    def place_order(
        self,
        payment_method: Any,
        delivery_address: Any = None,
        clear_cart: bool = True
    ) -> ActionResult:
        """
        Create an order from the current cart, then clear the cart.

        The delivery address defaults to the location store's active address.
        """
        def _place():
            address = delivery_address
            if address is None:
                address = self.location.delivery_address
            order = self.orders.create_order(self.cart.snapshot(), address, payment_method)
            if clear_cart:
                self.cart.clear_cart()
            return order

        return self._run("place_order", _place)

    def update_order_status(self, order_id: str, status) -> ActionResult:
        return self._run("update_order_status", lambda: self.orders.update_order_status(order_id, status))

    def cancel_order(self, order_id: str) -> ActionResult:
        return self._run("cancel_order", lambda: self.orders.cancel_order(order_id))

    def reorder(self, order_id: str) -> ActionResult:
        return self._run("reorder", lambda: self.orders.reorder(order_id))

    def track_order(self, order_id: str) -> ActionResult:
        def _track():
            info = self.orders.track_order(order_id)
            if info is None:
                raise ValueError(f"Order not found: {order_id}")
            return info

        return self._run("track_order", _track)

    # ========================================================================
    # LOCATION
    # ========================================================================

    def set_delivery_address(self, address) -> ActionResult:
        return self._run("set_delivery_address", lambda: self.location.set_delivery_address(address))

    def add_saved_address(self, data: Mapping) -> ActionResult:
        return self._run("add_saved_address", lambda: self.location.add_saved_address(data))

    def update_saved_address(self, address_id: str, **updates) -> ActionResult:
        return self._run(
            "update_saved_address",
            lambda: self.location.update_saved_address(address_id, **updates)
        )

    def set_default_address(self, address_id: str) -> ActionResult:
        def _set_default():
            address = self.location.set_default_address(address_id)
            if address is None:
                raise ValueError(f"Address not found: {address_id}")
            return address

        return self._run("set_default_address", _set_default)

    def remove_saved_address(self, address_id: str) -> ActionResult:
        return self._run("remove_saved_address", lambda: self.location.remove_saved_address(address_id))

    def get_current_location(self) -> ActionResult:
        return self._run("get_current_location", self.location.get_current_position)

    def geocode_address(self, text: str) -> ActionResult:
        return self._run("geocode_address", lambda: self.location.geocode_address(text))
