"""
Tests for the demo status scheduler.
"""

import pytest

from ubazol.events import OrderCreatedEvent
from ubazol.runtime.scheduler import DemoStatusScheduler
from ubazol.state import OrderStatus


@pytest.fixture
def scheduler(orders, clock, event_bus):
    scheduler = DemoStatusScheduler(orders, clock)
    event_bus.subscribe(OrderCreatedEvent, scheduler.on_order_created)
    return scheduler


@pytest.fixture
def placed(cart, orders, make_product):
    cart.add_item(make_product("p1"), 1)
    return orders.create_order(cart.snapshot(), "12 Elm Street", {"type": "card"})


class TestDemoStatusScheduler:

    def test_new_order_is_scheduled(self, scheduler, placed):
        steps = scheduler.pending

        assert [(s.order_id, s.status) for s in steps] == [
            (placed.id, OrderStatus.CONFIRMED),
            (placed.id, OrderStatus.PREPARING),
        ]

    def test_progression(self, scheduler, placed, orders, clock):
        clock.advance(seconds=4)
        assert scheduler.run_due() == 0
        assert orders.get_order(placed.id).status == OrderStatus.PENDING

        clock.advance(seconds=1)
        assert scheduler.run_due() == 1
        assert orders.get_order(placed.id).status == OrderStatus.CONFIRMED

        clock.advance(seconds=5)
        assert scheduler.run_due() == 1
        assert orders.get_order(placed.id).status == OrderStatus.PREPARING
        assert scheduler.pending == []

    def test_both_steps_at_once(self, scheduler, placed, orders, clock):
        clock.advance(seconds=30)

        assert scheduler.run_due() == 2
        assert orders.get_order(placed.id).status == OrderStatus.PREPARING

    def test_cancelled_order_is_skipped(self, scheduler, placed, orders, clock):
        orders.cancel_order(placed.id)
        clock.advance(seconds=10)

        assert scheduler.run_due() == 0
        assert orders.get_order(placed.id).status == OrderStatus.CANCELLED

    def test_cancel_plan(self, scheduler, placed, orders, clock):
        scheduler.cancel(placed.id)
        clock.advance(seconds=10)

        assert scheduler.run_due() == 0
        assert orders.get_order(placed.id).status == OrderStatus.PENDING

    def test_refused_step_is_logged_not_raised(self, orders, clock, placed):
        scheduler = DemoStatusScheduler(orders, clock, steps=[(1, "cancelled")])
        scheduler.schedule(placed.id)
        orders.update_order_status(placed.id, "out_for_delivery")
        clock.advance(seconds=1)

        assert scheduler.run_due() == 0
        assert orders.get_order(placed.id).status == OrderStatus.OUT_FOR_DELIVERY

    def test_custom_steps(self, orders, clock, placed):
        scheduler = DemoStatusScheduler(orders, clock, steps=[(2, "confirmed")])
        scheduler.schedule(placed.id)
        clock.advance(seconds=2)

        assert scheduler.run_due() == 1
        assert orders.get_order(placed.id).status == OrderStatus.CONFIRMED

    def test_never_moves_order_backwards(self, scheduler, placed, orders, clock):
        orders.update_order_status(placed.id, "out_for_delivery")
        clock.advance(seconds=11)

        assert scheduler.run_due() == 0
        assert orders.get_order(placed.id).status == OrderStatus.OUT_FOR_DELIVERY
        assert scheduler.pending == []

    def test_skips_only_steps_already_reached(self, scheduler, placed, orders, clock):
        orders.update_order_status(placed.id, "confirmed")
        clock.advance(seconds=10)

        assert scheduler.run_due() == 1
        assert orders.get_order(placed.id).status == OrderStatus.PREPARING
