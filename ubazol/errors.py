"""
Exception hierarchy for the state containers.

State machines raise these and leave their state untouched; the runtime
container converts them to ActionResult values for the presentation layer.
"""


class UbazolError(Exception):
    """Base exception for all state-core errors."""
    pass


class VendorConflictError(UbazolError):
    """Item from a different vendor added to a non-empty cart."""

    def __init__(self, cart_vendor_id: str, product_vendor_id: str):
        self.cart_vendor_id = cart_vendor_id
        self.product_vendor_id = product_vendor_id
        super().__init__(
            "You can only order from one vendor at a time. "
            "Clear cart to add items from a different vendor."
        )


class OrderNotFoundError(UbazolError):
    """No order with the given id."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidTransitionError(UbazolError):
    """Status change not allowed from the order's current status."""

    def __init__(self, order_id: str, from_status, to_status, message: str = None):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Order {order_id}: {_value(from_status)} → {_value(to_status)} not allowed"
        )


class AddressNotFoundError(UbazolError):
    """No saved address with the given id."""

    def __init__(self, address_id: str):
        self.address_id = address_id
        super().__init__(f"Address not found: {address_id}")


class LocationUnavailableError(UbazolError):
    """Device position could not be determined (permission denied, device error)."""
    pass


class PersistenceError(UbazolError):
    """Key-value store read or write failed."""
    pass


def _value(status) -> str:
    return getattr(status, "value", str(status))
