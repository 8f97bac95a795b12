"""
Cart State Machine with single-vendor enforcement and derived totals.

ARCHITECTURE:
- Holds one immutable Cart snapshot; every mutation builds a new snapshot
  and swaps it in only on success
- Persists the full snapshot (key: cartData) through the write-behind
  persister after every mutation
- Reloads the last snapshot on start, unless a mutation already happened

CRITICAL RULES:
1. All items in a non-empty cart share one vendor (checked on insert)
2. vendor is None iff items is empty
3. Line identity is (product_id, options) compared structurally
4. Quantities <= 0 never survive as line items
5. Fees missing from update_fees() reset to 0
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple, Union
import copy

from ubazol.errors import VendorConflictError
from ubazol.logging import get_logger, LogStream
from ubazol.storage.keys import StorageKeys
from ubazol.time import Clock, RealTimeClock, format_timestamp, parse_timestamp


ZERO = Decimal("0")


# ============================================================================
# VALUE HELPERS
# ============================================================================

def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """Coerce a price/fee to a non-negative Decimal (None -> 0)."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number, got {value!r}")
    try:
        # str() keeps floats like 15.99 from turning into binary noise
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{field_name} must be a number, got {value!r}") from e
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"{field_name} must be a non-negative number, got {value!r}")
    return amount


def options_key(options: Optional[Mapping]) -> Tuple:
    """
    Canonical, order-independent form of an options mapping.

    {"size": "L", "extras": ["cheese"]} and {"extras": ["cheese"], "size": "L"}
    produce the same key.
    """
    return _normalize(options or {})


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return ("map", tuple(sorted(((str(k), _normalize(v)) for k, v in value.items()),
                                    key=lambda kv: kv[0])))
    if isinstance(value, (list, tuple)):
        return ("seq", tuple(_normalize(v) for v in value))
    if isinstance(value, (set, frozenset)):
        return ("set", tuple(sorted((_normalize(v) for v in value), key=repr)))
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# ============================================================================
# DATA MODEL
# ============================================================================

@dataclass(frozen=True)
class Vendor:
    id: str
    name: str
    image: Optional[str] = None

    def to_dict(self) -> Dict:
        return {"id": self.id, "name": self.name, "image": self.image}

    @classmethod
    def from_dict(cls, data: Mapping) -> "Vendor":
        return cls(id=str(data["id"]), name=data.get("name", ""), image=data.get("image"))


@dataclass(frozen=True)
class Product:
    """Catalog entry as handed over by the vendor screens."""
    product_id: str
    name: str
    unit_price: Decimal
    vendor_id: str
    vendor_name: str = ""
    image: Optional[str] = None
    vendor_image: Optional[str] = None

    def __post_init__(self):
        for name in ("product_id", "vendor_id", "unit_price"):
            if getattr(self, name) in (None, ""):
                raise ValueError(f"Product {name} is required")
        object.__setattr__(self, "product_id", str(self.product_id))
        object.__setattr__(self, "vendor_id", str(self.vendor_id))
        object.__setattr__(self, "unit_price", to_money(self.unit_price, "unit_price"))

    @classmethod
    def from_dict(cls, data: Mapping) -> "Product":
        """Accepts the client's camelCase shape ({id, price, vendorId, ...})."""
        return cls(
            product_id=data.get("id", data.get("product_id")),
            name=data.get("name", ""),
            unit_price=data.get("price", data.get("unitPrice", data.get("unit_price"))),
            vendor_id=data.get("vendorId", data.get("vendor_id")),
            vendor_name=data.get("vendorName", data.get("vendor_name", "")),
            image=data.get("image"),
            vendor_image=data.get("vendorImage", data.get("vendor_image")),
        )


@dataclass(frozen=True)
class CartItem:
    """One cart line. Identity is (product_id, options_key(options))."""
    product_id: str
    name: str
    unit_price: Decimal
    vendor_id: str
    vendor_name: str
    quantity: int
    options: Dict = field(default_factory=dict)
    added_at: Optional[datetime] = None
    image: Optional[str] = None

    @property
    def key(self) -> Tuple:
        return (self.product_id, options_key(self.options))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def matches(self, product_id: str, options: Optional[Mapping]) -> bool:
        return self.key == (str(product_id), options_key(options))

    def to_dict(self) -> Dict:
        return {
            "id": self.product_id,
            "name": self.name,
            "price": str(self.unit_price),
            "image": self.image,
            "vendorId": self.vendor_id,
            "vendorName": self.vendor_name,
            "quantity": self.quantity,
            "options": copy.deepcopy(self.options),
            "addedAt": format_timestamp(self.added_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "CartItem":
        quantity = int(data["quantity"])
        if quantity < 1:
            raise ValueError(f"Stored cart line has quantity {quantity}")
        return cls(
            product_id=str(data["id"]),
            name=data.get("name", ""),
            unit_price=to_money(data.get("price"), "price"),
            vendor_id=str(data["vendorId"]),
            vendor_name=data.get("vendorName", ""),
            quantity=quantity,
            options=copy.deepcopy(dict(data.get("options") or {})),
            added_at=parse_timestamp(data.get("addedAt")),
            image=data.get("image"),
        )


@dataclass(frozen=True)
class Cart:
    """Immutable cart snapshot."""
    items: Tuple[CartItem, ...] = ()
    vendor: Optional[Vendor] = None
    delivery_fee: Decimal = ZERO
    service_fee: Decimal = ZERO
    tax: Decimal = ZERO

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), ZERO)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.delivery_fee + self.service_fee + self.tax

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def find(self, product_id: str, options: Optional[Mapping] = None) -> Optional[CartItem]:
        for item in self.items:
            if item.matches(product_id, options):
                return item
        return None

    def to_dict(self) -> Dict:
        """Persisted shape: {items, selectedVendor, deliveryFee, serviceFee, tax}."""
        return {
            "items": [item.to_dict() for item in self.items],
            "selectedVendor": self.vendor.to_dict() if self.vendor else None,
            "deliveryFee": str(self.delivery_fee),
            "serviceFee": str(self.service_fee),
            "tax": str(self.tax),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Cart":
        items = tuple(CartItem.from_dict(i) for i in data.get("items") or [])
        vendor_data = data.get("selectedVendor")
        vendor = Vendor.from_dict(vendor_data) if vendor_data and items else None

        # Repair snapshots written without a vendor
        if items and vendor is None:
            vendor = Vendor(id=items[0].vendor_id, name=items[0].vendor_name)

        if vendor is not None and any(item.vendor_id != vendor.id for item in items):
            raise ValueError("Stored cart mixes vendors")

        return cls(
            items=items,
            vendor=vendor,
            delivery_fee=to_money(data.get("deliveryFee"), "deliveryFee"),
            service_fee=to_money(data.get("serviceFee"), "serviceFee"),
            tax=to_money(data.get("tax"), "tax"),
        )


# ============================================================================
# CART STATE MACHINE
# ============================================================================

class CartStateMachine:
    """
    Single-vendor cart with write-behind persistence.

    USAGE:
        cart = CartStateMachine(persister, clock)
        cart.load()

        cart.add_item(Product("p1", "Margherita", Decimal("15.99"), "v1", "Pizza Palace"))
        cart.update_fees(delivery_fee=Decimal("2.99"))
        cart.get_total()
    """

    def __init__(self, persister, clock: Optional[Clock] = None):
        self.persister = persister
        self.clock = clock or RealTimeClock()
        self.logger = get_logger(LogStream.CART)

        self._state = Cart()
        self._mutated = False
        self._loaded = False

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def load(self) -> bool:
        """
        Seed from the persisted snapshot.

        Skipped when a mutation already happened since construction, so a
        late load never clobbers newer state. Returns True if seeded.
        """
        self._loaded = True

        if self._mutated:
            self.logger.info("Cart mutated before load; keeping in-memory state")
            return False

        try:
            data = self.persister.store.get(StorageKeys.CART)
            if data is None:
                return False
            self._state = Cart.from_dict(data)
        except Exception as e:
            self.logger.error(
                "Error loading cart data",
                extra={"error": str(e)},
                exc_info=True
            )
            return False

        self.logger.info("Cart loaded", extra={
            "items": len(self._state.items),
            "vendor_id": self._state.vendor.id if self._state.vendor else None
        })
        return True

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def snapshot(self) -> Cart:
        return self._state

    @property
    def items(self) -> Tuple[CartItem, ...]:
        return self._state.items

    @property
    def vendor(self) -> Optional[Vendor]:
        return self._state.vendor

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def add_item(
        self,
        product: Union[Product, Mapping],
        quantity: int = 1,
        options: Optional[Mapping] = None
    ) -> Cart:
        """
        Add quantity of product (merging into an identical line).

        Raises:
            VendorConflictError: cart holds items from another vendor
            ValueError: quantity < 1 or malformed product
        """
        if not isinstance(product, Product):
            product = Product.from_dict(product)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValueError(f"quantity must be a positive integer, got {quantity!r}")

        state = self._state
        if state.vendor is not None and state.vendor.id != product.vendor_id:
            self.logger.warning("Vendor conflict", extra={
                "cart_vendor_id": state.vendor.id,
                "product_vendor_id": product.vendor_id,
                "product_id": product.product_id
            })
            raise VendorConflictError(state.vendor.id, product.vendor_id)

        options = copy.deepcopy(dict(options or {}))
        existing = state.find(product.product_id, options)

        if existing is not None:
            merged = replace(existing, quantity=existing.quantity + quantity)
            items = tuple(merged if item is existing else item for item in state.items)
        else:
            line = CartItem(
                product_id=product.product_id,
                name=product.name,
                unit_price=product.unit_price,
                vendor_id=product.vendor_id,
                vendor_name=product.vendor_name,
                quantity=quantity,
                options=options,
                added_at=self.clock.now(),
                image=product.image,
            )
            items = state.items + (line,)

        vendor = state.vendor or Vendor(
            id=product.vendor_id, name=product.vendor_name, image=product.vendor_image
        )

        self._commit(replace(state, items=items, vendor=vendor))

        self.logger.info(f"Item added: {product.product_id}", extra={
            "product_id": product.product_id,
            "quantity": quantity,
            "merged": existing is not None,
            "item_count": self._state.item_count
        })
        return self._state

    def remove_item(self, product_id: str, options: Optional[Mapping] = None) -> bool:
        """Remove the matching line. Returns False if no line matched."""
        state = self._state
        items = tuple(item for item in state.items if not item.matches(product_id, options))
        if len(items) == len(state.items):
            return False

        self._commit(self._with_items(state, items))

        self.logger.info(f"Item removed: {product_id}", extra={
            "product_id": str(product_id),
            "remaining_lines": len(items)
        })
        return True

    def update_quantity(self, product_id: str, options: Optional[Mapping], quantity: int) -> bool:
        """
        Set a line's quantity; quantity <= 0 removes the line.

        Returns False if no line matched.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValueError(f"quantity must be an integer, got {quantity!r}")
        if quantity <= 0:
            return self.remove_item(product_id, options)

        state = self._state
        existing = state.find(product_id, options)
        if existing is None:
            return False

        updated = replace(existing, quantity=quantity)
        items = tuple(updated if item is existing else item for item in state.items)
        self._commit(replace(state, items=items))

        self.logger.debug(f"Quantity updated: {product_id}", extra={
            "product_id": str(product_id), "quantity": quantity
        })
        return True

    def clear_cart(self) -> None:
        """Reset to the empty cart and erase the persisted snapshot."""
        self._state = Cart()
        self._mutated = True
        self.persister.submit_remove(StorageKeys.CART)

        self.logger.info("Cart cleared")

    def update_fees(self, delivery_fee=None, service_fee=None, tax=None) -> Cart:
        """Overwrite all three fees; any value not given becomes 0."""
        new_state = replace(
            self._state,
            delivery_fee=to_money(delivery_fee, "delivery_fee"),
            service_fee=to_money(service_fee, "service_fee"),
            tax=to_money(tax, "tax"),
        )
        self._commit(new_state)
        return self._state

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_total(self) -> Decimal:
        return self._state.total

    def get_subtotal(self) -> Decimal:
        return self._state.subtotal

    def get_item_count(self) -> int:
        return self._state.item_count

    def is_item_in_cart(self, product_id: str, options: Optional[Mapping] = None) -> bool:
        return self._state.find(product_id, options) is not None

    def get_item_quantity(self, product_id: str, options: Optional[Mapping] = None) -> int:
        item = self._state.find(product_id, options)
        return item.quantity if item else 0

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @staticmethod
    def _with_items(state: Cart, items: Tuple[CartItem, ...]) -> Cart:
        return replace(state, items=items, vendor=state.vendor if items else None)

    def _commit(self, new_state: Cart) -> None:
        self._state = new_state
        self._mutated = True
        self.persister.submit(StorageKeys.CART, new_state.to_dict())
