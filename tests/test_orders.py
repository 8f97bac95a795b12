"""
Tests for the order state machine.

COVERAGE:
- Creation from cart snapshots (deep copies, ids, timestamps)
- Status updates and the terminal lock
- Cancellation rules
- Re-order
- Tracking projection
- Persistence and events
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from ubazol.errors import InvalidTransitionError, OrderNotFoundError
from ubazol.events import OrderCreatedEvent, OrderStatusChangedEvent
from ubazol.state import ALLOWED_TRANSITIONS, OrderStateMachine, OrderStatus
from ubazol.storage import StorageKeys


@pytest.fixture
def filled_cart(cart, make_product):
    """Two lines, $27.97 total."""
    cart.add_item(make_product("p1", "v1", "15.99", name="Margherita"), 1, {"size": "L"})
    cart.add_item(make_product("p2", "v1", "5.99", name="Garlic Bread"), 1)
    cart.update_fees(Decimal("2.99"), Decimal("1.50"), Decimal("1.50"))
    return cart


ADDRESS = {"id": "a1", "label": "Home", "address": "12 Elm Street", "city": "New York", "zipCode": "10001"}


# ============================================================================
# CREATION
# ============================================================================

class TestCreateOrder:

    def test_scenario_two_item_order(self, orders, filled_cart):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")

        assert order.status == OrderStatus.PENDING
        assert len(order.items) == 2
        assert order.total == Decimal("27.97")

        orders.update_order_status(order.id, "delivered")
        with pytest.raises(InvalidTransitionError):
            orders.cancel_order(order.id)

    def test_timestamps_and_eta(self, orders, filled_cart, clock):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")

        assert order.created_at == clock.now()
        assert order.updated_at == clock.now()
        assert order.estimated_delivery_time == clock.now() + timedelta(minutes=30)

    def test_custom_eta(self, persister, clock, filled_cart):
        machine = OrderStateMachine(persister, clock, estimated_delivery_minutes=45)
        order = machine.create_order(filled_cart.snapshot(), ADDRESS, "card")

        assert order.estimated_delivery_time - order.created_at == timedelta(minutes=45)

    def test_most_recent_first_and_current(self, orders, filled_cart, clock):
        first = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        clock.advance(seconds=1)
        second = orders.create_order(filled_cart.snapshot(), ADDRESS, "cash")

        assert [o.id for o in orders.get_orders()] == [second.id, first.id]
        assert orders.current_order.id == second.id

    def test_ids_unique_within_same_millisecond(self, orders, filled_cart):
        ids = [orders.create_order(filled_cart.snapshot(), ADDRESS, "card").id for _ in range(5)]

        assert len(set(ids)) == 5
        assert ids == sorted(ids, key=int)

    def test_does_not_clear_cart(self, orders, filled_cart):
        orders.create_order(filled_cart.snapshot(), ADDRESS, "card")

        assert filled_cart.get_item_count() == 2

    def test_later_cart_changes_do_not_reach_order(self, orders, filled_cart):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")

        filled_cart.update_quantity("p1", {"size": "L"}, 9)
        filled_cart.clear_cart()

        stored = orders.get_order(order.id)
        assert stored.items[0].quantity == 1
        assert stored.total == Decimal("27.97")

    def test_address_is_copied(self, orders, filled_cart):
        address = dict(ADDRESS)
        order = orders.create_order(filled_cart.snapshot(), address, "card")

        address["address"] = "somewhere else"

        assert order.delivery_address["address"] == "12 Elm Street"

    def test_empty_cart_rejected(self, orders, cart):
        with pytest.raises(ValueError):
            orders.create_order(cart.snapshot(), ADDRESS, "card")

        assert orders.get_orders() == []

    def test_cart_mapping_accepted(self, orders):
        order = orders.create_order(
            {
                "items": [{"id": "p1", "name": "Tea", "price": "2.50", "vendorId": "v1",
                           "vendorName": "Cafe", "quantity": 2}],
                "selectedVendor": {"id": "v1", "name": "Cafe"},
                "deliveryFee": "1.00",
            },
            "1 Main St",
            "cash"
        )

        assert order.total == Decimal("6.00")
        assert order.delivery_address == "1 Main St"


# ============================================================================
# STATUS UPDATES
# ============================================================================

class TestStatusUpdates:

    def test_update_overwrites_status_and_updated_at(self, orders, filled_cart, clock):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        clock.advance(minutes=2)

        updated = orders.update_order_status(order.id, OrderStatus.CONFIRMED)

        assert updated.status == OrderStatus.CONFIRMED
        assert updated.updated_at == clock.now()
        assert orders.get_order(order.id).status == OrderStatus.CONFIRMED

    def test_unknown_order(self, orders):
        with pytest.raises(OrderNotFoundError):
            orders.update_order_status("404", "confirmed")

    def test_unknown_status(self, orders, filled_cart):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")

        with pytest.raises(ValueError):
            orders.update_order_status(order.id, "teleported")

    def test_backward_move_allowed_by_default(self, orders, filled_cart):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.update_order_status(order.id, "preparing")

        orders.update_order_status(order.id, "confirmed")

        assert orders.get_order(order.id).status == OrderStatus.CONFIRMED

    def test_enforced_transitions_reject_skips(self, persister, clock, filled_cart):
        machine = OrderStateMachine(persister, clock, enforce_transitions=True)
        order = machine.create_order(filled_cart.snapshot(), ADDRESS, "card")

        with pytest.raises(InvalidTransitionError):
            machine.update_order_status(order.id, "delivered")

        for status in ("confirmed", "preparing", "out_for_delivery", "delivered"):
            machine.update_order_status(order.id, status)
        assert machine.get_order(order.id).status == OrderStatus.DELIVERED

    @pytest.mark.parametrize("terminal", ["delivered", "cancelled"])
    def test_terminal_orders_are_immutable(self, orders, filled_cart, terminal):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.update_order_status(order.id, terminal)

        with pytest.raises(InvalidTransitionError):
            orders.update_order_status(order.id, "preparing")

        assert orders.get_order(order.id).status.value == terminal

    def test_same_status_is_noop(self, orders, filled_cart, clock, event_bus):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        seen = []
        event_bus.subscribe(OrderStatusChangedEvent, seen.append)
        clock.advance(minutes=1)

        result = orders.update_order_status(order.id, "pending")

        assert result.updated_at == order.updated_at
        assert seen == []

    def test_update_to_cancelled_respects_cancel_lock(self, orders, filled_cart):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.update_order_status(order.id, "out_for_delivery")

        with pytest.raises(InvalidTransitionError):
            orders.update_order_status(order.id, "cancelled")

    def test_transition_table_has_no_terminal_exits(self):
        assert all(t.from_status not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)
                   for t in ALLOWED_TRANSITIONS)


# ============================================================================
# CANCELLATION
# ============================================================================

class TestCancelOrder:

    @pytest.mark.parametrize("status", ["pending", "confirmed", "preparing", "ready_for_pickup"])
    def test_cancel_allowed(self, orders, filled_cart, status):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        if status != "pending":
            orders.update_order_status(order.id, status)

        cancelled = orders.cancel_order(order.id)

        assert cancelled.status == OrderStatus.CANCELLED

    @pytest.mark.parametrize("status", ["out_for_delivery", "delivered"])
    def test_cancel_locked(self, orders, filled_cart, status):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.update_order_status(order.id, status)

        with pytest.raises(InvalidTransitionError) as exc_info:
            orders.cancel_order(order.id)

        assert "cannot be cancelled" in str(exc_info.value)
        assert orders.get_order(order.id).status.value == status

    def test_cancel_unknown(self, orders):
        with pytest.raises(OrderNotFoundError):
            orders.cancel_order("missing")

    def test_cancel_twice_is_idempotent(self, orders, filled_cart, clock, event_bus):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        first = orders.cancel_order(order.id)
        seen = []
        event_bus.subscribe(OrderStatusChangedEvent, seen.append)
        clock.advance(minutes=1)

        second = orders.cancel_order(order.id)

        assert second == first
        assert seen == []


# ============================================================================
# RE-ORDER
# ============================================================================

class TestReorder:

    def test_reorder_copies_original(self, orders, filled_cart, clock):
        original = orders.create_order(filled_cart.snapshot(), ADDRESS, {"type": "card"})
        orders.update_order_status(original.id, "delivered")
        clock.advance(days=1)

        again = orders.reorder(original.id)

        assert again.id != original.id
        assert again.status == OrderStatus.PENDING
        assert again.items == original.items
        assert again.vendor == original.vendor
        assert again.delivery_address == original.delivery_address
        assert again.payment_method == {"type": "card"}
        assert again.total == original.total
        assert again.reorder_of == original.id
        assert again.created_at == clock.now()

    def test_reorder_unknown(self, orders):
        with pytest.raises(OrderNotFoundError):
            orders.reorder("nope")


# ============================================================================
# QUERIES AND TRACKING
# ============================================================================

class TestQueries:

    def test_history_sorted_by_created_at_desc(self, orders, filled_cart, clock):
        created = []
        for _ in range(3):
            created.append(orders.create_order(filled_cart.snapshot(), ADDRESS, "card"))
            clock.advance(minutes=5)

        assert [o.id for o in orders.get_order_history()] == [o.id for o in reversed(created)]

    def test_active_orders_exclude_terminal(self, orders, filled_cart):
        a = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        b = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        c = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.update_order_status(a.id, "delivered")
        orders.cancel_order(b.id)

        assert [o.id for o in orders.get_active_orders()] == [c.id]
        assert [o.id for o in orders.get_orders_by_status("cancelled")] == [b.id]

    def test_set_current_order(self, orders, filled_cart):
        a = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.create_order(filled_cart.snapshot(), ADDRESS, "card")

        orders.set_current_order(a.id)
        assert orders.current_order.id == a.id

        orders.set_current_order(None)
        assert orders.current_order is None

        with pytest.raises(OrderNotFoundError):
            orders.set_current_order("missing")


class TestTracking:

    def test_unknown_order_returns_none(self, orders):
        assert orders.track_order("missing") is None

    @pytest.mark.parametrize("status, completed, current", [
        ("pending", [True, False, False, False, False], 0),
        ("confirmed", [True, True, False, False, False], 1),
        ("preparing", [True, True, True, False, False], 2),
        ("ready_for_pickup", [True, True, True, False, False], -1),
        ("out_for_delivery", [True, True, True, True, False], 3),
        ("delivered", [True, True, True, True, True], 4),
        ("cancelled", [True, False, False, False, False], -1),
    ])
    def test_steps(self, orders, filled_cart, status, completed, current):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        if status != "pending":
            orders.update_order_status(order.id, status)

        info = orders.track_order(order.id)

        assert [s.completed for s in info.steps] == completed
        assert info.current_step == current
        assert [s.title for s in info.steps] == [
            "Order Placed", "Order Confirmed", "Preparing", "Out for Delivery", "Delivered"
        ]

    def test_eta_in_configured_timezone(self, persister, clock, filled_cart):
        machine = OrderStateMachine(persister, clock, timezone="Europe/Paris")
        order = machine.create_order(filled_cart.snapshot(), ADDRESS, "card")

        info = machine.track_order(order.id)

        assert info.eta_local == order.estimated_delivery_time
        assert info.eta_local.tzinfo.zone == "Europe/Paris"

    def test_tracking_not_persisted(self, orders, filled_cart, store):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.track_order(order.id)

        stored = store.get(StorageKeys.ORDERS)[0]
        assert "trackingSteps" not in stored


# ============================================================================
# PERSISTENCE AND EVENTS
# ============================================================================

class TestOrderPersistence:

    def test_orders_reload_after_restart(self, orders, filled_cart, persister, clock):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.update_order_status(order.id, "confirmed")

        restarted = OrderStateMachine(persister, clock)
        assert restarted.load() is True

        reloaded = restarted.get_order(order.id)
        assert reloaded == orders.get_order(order.id)

    def test_new_ids_after_restart_do_not_collide(self, orders, filled_cart, persister, clock):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")

        restarted = OrderStateMachine(persister, clock)
        restarted.load()
        again = restarted.create_order(filled_cart.snapshot(), ADDRESS, "card")

        assert int(again.id) > int(order.id)

    def test_persisted_layout(self, orders, filled_cart, store):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")

        stored = store.get(StorageKeys.ORDERS)
        assert stored[0]["id"] == order.id
        assert stored[0]["status"] == "pending"
        assert stored[0]["total"] == "27.97"
        assert stored[0]["createdAt"].endswith("Z")

    def test_snapshot_without_created_at_is_ignored(self, orders, filled_cart, store, persister, clock):
        orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        stored = store.get(StorageKeys.ORDERS)
        del stored[0]["createdAt"]
        store.set(StorageKeys.ORDERS, stored)

        restarted = OrderStateMachine(persister, clock)

        assert restarted.load() is False
        assert restarted.get_order_history() == []


class TestOrderEvents:

    def test_created_and_status_events(self, orders, filled_cart, event_bus):
        created, changed = [], []
        event_bus.subscribe(OrderCreatedEvent, created.append)
        event_bus.subscribe(OrderStatusChangedEvent, changed.append)

        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.update_order_status(order.id, "confirmed")
        orders.cancel_order(order.id)

        assert [e.order_id for e in created] == [order.id]
        assert created[0].total == "27.97"
        assert [(e.from_status, e.to_status) for e in changed] == [
            ("pending", "confirmed"),
            ("confirmed", "cancelled"),
        ]

    def test_failed_change_emits_nothing(self, orders, filled_cart, event_bus):
        order = orders.create_order(filled_cart.snapshot(), ADDRESS, "card")
        orders.update_order_status(order.id, "delivered")
        changed = []
        event_bus.subscribe(OrderStatusChangedEvent, changed.append)

        with pytest.raises(InvalidTransitionError):
            orders.cancel_order(order.id)

        assert changed == []
