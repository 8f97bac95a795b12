# tests/conftest.py
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

import pytest

from ubazol.errors import PersistenceError
from ubazol.events import EventBus
from ubazol.location import MockLocationProvider, PERMISSION_GRANTED
from ubazol.state import (
    CartStateMachine,
    LocationStore,
    NotificationLog,
    NullPushTransport,
    OrderStateMachine,
    Product,
    ProfileStore,
)
from ubazol.storage import MemoryKeyValueStore, WriteBehindPersister
from ubazol.time import SimulatedClock


START = datetime(2026, 1, 15, 17, 0, 0, tzinfo=timezone.utc)


# -------------------------
# Fakes
# -------------------------

class FailingStore(MemoryKeyValueStore):
    """Memory store whose writes fail while `failing` is set."""

    def __init__(self, initial: Dict[str, Any] = None):
        super().__init__(initial)
        self.failing = True
        self.attempts = 0

    def set(self, key, value):
        self.attempts += 1
        if self.failing:
            raise PersistenceError(f"disk full while writing {key}")
        super().set(key, value)


def make_product(product_id="p1", vendor_id="v1", price="10", name=None, vendor_name=None) -> Product:
    return Product(
        product_id=product_id,
        name=name or f"Product {product_id}",
        unit_price=Decimal(price),
        vendor_id=vendor_id,
        vendor_name=vendor_name or f"Vendor {vendor_id}",
    )


# -------------------------
# Fixtures
# -------------------------

@pytest.fixture
def clock():
    return SimulatedClock(START)


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def persister(store):
    return WriteBehindPersister(store, synchronous=True)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def cart(persister, clock):
    return CartStateMachine(persister, clock)


@pytest.fixture
def orders(persister, clock, event_bus):
    return OrderStateMachine(persister, clock, event_bus=event_bus)


@pytest.fixture
def provider():
    return MockLocationProvider(permission=PERMISSION_GRANTED)


@pytest.fixture
def location(persister, provider, clock):
    return LocationStore(persister, provider=provider, clock=clock)


@pytest.fixture
def push():
    return NullPushTransport()


@pytest.fixture
def notifications(persister, clock, push):
    return NotificationLog(persister, clock, push=push)


@pytest.fixture
def profile(persister):
    return ProfileStore(persister)


@pytest.fixture(name="make_product")
def make_product_fixture():
    return make_product


@pytest.fixture
def failing_store():
    return FailingStore()
