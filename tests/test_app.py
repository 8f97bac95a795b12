"""
Tests for the application container.

COVERAGE:
- init()/dispose() lifecycle and dependency wiring
- Presentation operations report failures as ActionResult
- Status changes produce notifications; new orders get demo steps
- State survives a restart through the shared store
- Write-behind and SQLite backends through configuration
"""

from decimal import Decimal

import pytest

from ubazol.config import ConfigSchema
from ubazol.errors import VendorConflictError
from ubazol.location import MockLocationProvider, PERMISSION_GRANTED
from ubazol.runtime.app import ActionResult, DeliveryApp
from ubazol.state import NotificationKind, OrderStatus
from ubazol.storage import MemoryKeyValueStore, SqliteKeyValueStore, StorageKeys


HOME = {"label": "Home", "address": "12 Elm Street", "city": "New York", "zipCode": "10001"}
CARD = {"type": "card", "last4": "4242"}


def _config(**blocks):
    data = {"storage": {"backend": "memory"}}
    data.update(blocks)
    return ConfigSchema.from_dict(data)


@pytest.fixture
def shared_store():
    return MemoryKeyValueStore()


@pytest.fixture
def make_app(shared_store, clock):
    apps = []

    def _make(config=None, **kwargs):
        kwargs.setdefault("store", shared_store)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("synchronous", True)
        kwargs.setdefault("location_provider", MockLocationProvider(permission=PERMISSION_GRANTED))
        app = DeliveryApp(config or _config(), **kwargs).init()
        apps.append(app)
        return app

    yield _make

    for app in apps:
        app.dispose()


@pytest.fixture
def app(make_app):
    return make_app()


def _fill_cart(app, make_product):
    app.add_to_cart(make_product("p1", price="15.99"))
    app.add_to_cart(make_product("p2", price="5.99"))
    app.update_fees(delivery_fee=Decimal("2.99"), service_fee=Decimal("1.50"), tax=Decimal("1.50"))


# ============================================================================
# LIFECYCLE
# ============================================================================

class TestLifecycle:

    def test_requires_init(self, make_product):
        app = DeliveryApp(_config())

        with pytest.raises(RuntimeError):
            app.add_to_cart(make_product())

    def test_double_init(self, app):
        with pytest.raises(RuntimeError):
            app.init()

    def test_context_manager(self, shared_store, clock, make_product):
        with DeliveryApp(_config(), store=shared_store, clock=clock, synchronous=True) as app:
            assert app.is_initialized
            app.add_to_cart(make_product())

        assert not app.is_initialized
        assert shared_store.get(StorageKeys.CART)["items"][0]["id"] == "p1"

    def test_scheduler_follows_config(self, make_app):
        assert make_app().scheduler is not None
        assert make_app(_config(scheduler={"enabled": False})).scheduler is None


# ============================================================================
# ACTION RESULTS
# ============================================================================

class TestActionResults:

    def test_ok_carries_value(self, app, make_product):
        result = app.add_to_cart(make_product(), 2)

        assert result == ActionResult(success=True, value=result.value)
        assert app.cart.get_item_count() == 2

    def test_vendor_conflict(self, app, make_product):
        app.add_to_cart(make_product("p1", vendor_id="v1"))

        result = app.add_to_cart(make_product("b1", vendor_id="v2"))

        assert result.success is False
        assert result.error == str(VendorConflictError("v1", "v2"))
        assert app.cart.get_item_count() == 1

    def test_bad_input(self, app, make_product):
        result = app.add_to_cart(make_product(), 0)

        assert not result.success
        assert result.error

    def test_empty_cart_order(self, app):
        result = app.place_order(CARD)

        assert not result.success
        assert app.orders.get_orders() == []

    def test_unknown_order(self, app):
        assert not app.track_order("missing").success
        assert not app.cancel_order("missing").success
        assert not app.reorder("missing").success

    def test_unknown_default_address(self, app):
        result = app.set_default_address("missing")

        assert not result.success
        assert "missing" in result.error

    def test_location_failure(self, make_app):
        app = make_app(location_provider=MockLocationProvider(grant_on_request=False))

        result = app.get_current_location()

        assert not result.success
        assert app.location.current_location is None

    def test_permission_service_failure(self, make_app):
        class BrokenPermissions(MockLocationProvider):
            def request_permission(self):
                raise OSError("Permission dialog unavailable")

        app = make_app(location_provider=BrokenPermissions())

        result = app.get_current_location()

        assert not result.success
        assert "Permission dialog unavailable" in result.error


# ============================================================================
# ORDER FLOW
# ============================================================================

class TestOrderFlow:

    def test_place_order_clears_cart_and_uses_delivery_address(self, app, make_product):
        address = app.add_saved_address(HOME).value
        app.set_default_address(address.id)
        _fill_cart(app, make_product)

        order = app.place_order(CARD).value

        assert order.total == Decimal("27.97")
        assert order.delivery_address == "12 Elm Street"
        assert app.cart.snapshot().is_empty
        assert app.orders.current_order == order

    def test_place_order_keeps_cart_when_asked(self, app, make_product):
        _fill_cart(app, make_product)

        app.place_order(CARD, delivery_address="1 Main St", clear_cart=False)

        assert app.cart.get_item_count() == 2

    def test_status_changes_notify(self, app, make_product):
        _fill_cart(app, make_product)
        order = app.place_order(CARD, "1 Main St").value

        app.update_order_status(order.id, "confirmed")
        app.update_order_status(order.id, "confirmed")

        assert [n.title for n in app.notifications.notifications] == ["Order Confirmed"]
        assert app.notifications.notifications[0].kind == NotificationKind.SUCCESS

    def test_cancel_lock(self, app, make_product):
        _fill_cart(app, make_product)
        order = app.place_order(CARD, "1 Main St").value
        app.update_order_status(order.id, "out_for_delivery")

        result = app.cancel_order(order.id)

        assert result.error == "Order cannot be cancelled at this stage"
        assert app.orders.get_order(order.id).status == OrderStatus.OUT_FOR_DELIVERY

    def test_demo_progression(self, app, clock, make_product):
        _fill_cart(app, make_product)
        order = app.place_order(CARD, "1 Main St").value

        clock.advance(seconds=5)
        app.tick()
        clock.advance(seconds=5)
        app.tick()

        assert app.orders.get_order(order.id).status == OrderStatus.PREPARING
        assert [n.title for n in app.notifications.notifications] == [
            "Order Being Prepared", "Order Confirmed"
        ]

    def test_tracking(self, app, make_product):
        _fill_cart(app, make_product)
        order = app.place_order(CARD, "1 Main St").value
        app.update_order_status(order.id, "preparing")

        info = app.track_order(order.id).value

        assert info.current_step == 2
        assert [s.completed for s in info.steps] == [True, True, True, False, False]

    def test_reorder(self, app, make_product):
        _fill_cart(app, make_product)
        order = app.place_order(CARD, "1 Main St").value

        again = app.reorder(order.id).value

        assert again.id != order.id
        assert again.reorder_of == order.id
        assert again.total == order.total
        assert again.status == OrderStatus.PENDING


# ============================================================================
# RESTART AND BACKENDS
# ============================================================================

class TestPersistence:

    def test_restart_restores_state(self, make_app, make_product):
        first = make_app()
        address = first.add_saved_address(HOME).value
        first.set_default_address(address.id)
        _fill_cart(first, make_product)
        order = first.place_order(CARD).value
        first.update_order_status(order.id, "confirmed")
        first.add_to_cart(make_product("p3", price="3.00"))
        first.dispose()

        second = make_app()

        assert second.cart.get_item_count() == 1
        assert second.orders.get_order(order.id).status == OrderStatus.CONFIRMED
        assert second.location.delivery_address_text == "12 Elm Street"
        assert second.notifications.get_unread_count() == 1

        again = second.reorder(order.id).value
        assert int(again.id) > int(order.id)

    def test_write_behind(self, shared_store, clock, make_product):
        app = DeliveryApp(_config(), store=shared_store, clock=clock).init()
        try:
            assert app.persister.synchronous is False

            app.add_to_cart(make_product())
            assert app.flush(timeout=5.0)

            assert shared_store.get(StorageKeys.CART)["items"][0]["id"] == "p1"
        finally:
            app.dispose()

    def test_sqlite_backend(self, tmp_path, clock, make_product):
        db_path = tmp_path / "data" / "ubazol.db"
        config = ConfigSchema.from_dict({"storage": {"backend": "sqlite", "path": str(db_path)}})

        with DeliveryApp(config, clock=clock) as app:
            app.add_to_cart(make_product())
            order = app.place_order(CARD, "1 Main St").value

        with SqliteKeyValueStore(db_path) as store:
            assert store.get(StorageKeys.ORDERS)[0]["id"] == order.id
            assert store.get(StorageKeys.CART) is None

        with DeliveryApp(config, clock=clock) as reopened:
            assert reopened.orders.get_order(order.id) is not None
