"""
Location/address store: device position, the active checkout address and
the saved address book.

CRITICAL RULES:
1. At most one saved address has is_default=True; set_default_address()
   flips every flag in a single transition
2. New addresses are never default on creation
3. Removing the default address leaves the book without a default
4. A failed position lookup leaves the previous current location in place

Persisted keys: savedAddresses (list), deliveryAddress (Address dict or text).
The current device position is session-only.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import math

from ubazol.errors import AddressNotFoundError, LocationUnavailableError
from ubazol.location import Coordinates, LocationProvider, MockLocationProvider, PERMISSION_GRANTED
from ubazol.logging import get_logger, LogStream
from ubazol.state.ids import MonotonicIdGenerator
from ubazol.storage.keys import StorageKeys
from ubazol.time import Clock, RealTimeClock, format_timestamp, parse_timestamp


EARTH_RADIUS_KM = 6371.0

# Fields update_saved_address() may change
EDITABLE_FIELDS = ("label", "address", "city", "zip_code", "latitude", "longitude")

_CAMEL = {"zipCode": "zip_code", "isDefault": "is_default", "createdAt": "created_at"}


@dataclass(frozen=True)
class Address:
    id: str
    label: str
    address: str
    city: str = ""
    zip_code: str = ""
    is_default: bool = False
    created_at: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinates(self.latitude, self.longitude)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "label": self.label,
            "address": self.address,
            "city": self.city,
            "zipCode": self.zip_code,
            "isDefault": self.is_default,
            "createdAt": format_timestamp(self.created_at),
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Address":
        fields = _snake(data)
        return cls(
            id=str(fields["id"]),
            label=fields.get("label") or "",
            address=fields.get("address") or "",
            city=fields.get("city") or "",
            zip_code=fields.get("zip_code") or "",
            is_default=bool(fields.get("is_default", False)),
            created_at=parse_timestamp(fields.get("created_at")),
            latitude=fields.get("latitude"),
            longitude=fields.get("longitude"),
        )


@dataclass(frozen=True)
class CurrentLocation:
    latitude: float
    longitude: float
    address: Optional[str]
    timestamp: datetime


@dataclass(frozen=True)
class GeocodedAddress:
    latitude: float
    longitude: float
    address: str


def _snake(data: Mapping) -> Dict[str, Any]:
    return {_CAMEL.get(k, k): v for k, v in dict(data).items()}


def _point(value: Any) -> Tuple[float, float]:
    if isinstance(value, Mapping):
        return float(value["latitude"]), float(value["longitude"])
    return float(value.latitude), float(value.longitude)


def calculate_distance(a: Any, b: Any) -> float:
    """Great-circle (haversine) distance in kilometres."""
    lat1, lon1 = _point(a)
    lat2, lon2 = _point(b)

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    h = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
         * math.sin(d_lon / 2) ** 2)
    # Rounding can push h just past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_KM * 2 * math.asin(math.sqrt(h))


class LocationStore:
    """
    Owns the delivery address, the saved address book and the last known
    device position.

    USAGE:
        store = LocationStore(persister, provider=MockLocationProvider())
        store.load()

        home = store.add_saved_address({"label": "Home", "address": "1 Elm St"})
        store.set_default_address(home.id)
        store.delivery_address_text  # "1 Elm St"
    """

    def __init__(
        self,
        persister,
        provider: Optional[LocationProvider] = None,
        clock: Optional[Clock] = None
    ):
        self.persister = persister
        self.provider = provider or MockLocationProvider()
        self.clock = clock or RealTimeClock()
        self.logger = get_logger(LogStream.LOCATION)

        self._ids = MonotonicIdGenerator(self.clock)
        self._saved: Tuple[Address, ...] = ()
        self._delivery_address: Union[Address, str, None] = None
        self._current_location: Optional[CurrentLocation] = None
        self._permission: Optional[str] = None
        self._mutated = False

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def load(self) -> bool:
        """Seed saved addresses and delivery address unless already mutated."""
        if self._mutated:
            self.logger.info("Addresses mutated before load; keeping in-memory state")
            return False

        try:
            saved = self.persister.store.get(StorageKeys.SAVED_ADDRESSES)
            delivery = self.persister.store.get(StorageKeys.DELIVERY_ADDRESS)

            addresses = tuple(Address.from_dict(a) for a in saved or [])
            if isinstance(delivery, Mapping):
                delivery = Address.from_dict(delivery)
        except Exception as e:
            self.logger.error(
                "Error loading saved addresses",
                extra={"error": str(e)},
                exc_info=True
            )
            return False

        self._saved = addresses
        self._delivery_address = delivery
        self._ids.seed(a.id for a in addresses)

        self.logger.info(f"Loaded {len(addresses)} saved addresses", extra={
            "address_count": len(addresses),
            "has_delivery_address": delivery is not None
        })
        return True

    # ========================================================================
    # DELIVERY ADDRESS
    # ========================================================================

    @property
    def delivery_address(self) -> Union[Address, str, None]:
        return self._delivery_address

    @property
    def delivery_address_text(self) -> Optional[str]:
        if isinstance(self._delivery_address, Address):
            return self._delivery_address.address
        return self._delivery_address

    def set_delivery_address(self, address: Union[Address, Mapping, str, None]) -> None:
        if isinstance(address, Mapping):
            address = Address.from_dict({"id": "", "label": "", **address})
        self._delivery_address = address
        self._persist_delivery_address()

        self.logger.info("Delivery address set", extra={
            "address": self.delivery_address_text
        })

    # ========================================================================
    # SAVED ADDRESSES
    # ========================================================================

    @property
    def saved_addresses(self) -> List[Address]:
        return list(self._saved)

    def get_saved_address(self, address_id: str) -> Optional[Address]:
        for addr in self._saved:
            if addr.id == str(address_id):
                return addr
        return None

    def add_saved_address(self, data: Mapping) -> Address:
        """Append a new, non-default address. Requires label and address text."""
        fields = _snake(data)
        if not fields.get("address"):
            raise ValueError("Address text is required")

        address = Address(
            id=self._ids.next_id(),
            label=fields.get("label") or "",
            address=fields["address"],
            city=fields.get("city") or "",
            zip_code=fields.get("zip_code") or "",
            is_default=False,
            created_at=self.clock.now(),
            latitude=fields.get("latitude"),
            longitude=fields.get("longitude"),
        )
        self._commit_saved(self._saved + (address,))

        self.logger.info(f"Address saved: {address.id}", extra={
            "address_id": address.id, "label": address.label
        })
        return address

    def update_saved_address(self, address_id: str, **updates) -> Address:
        """
        Merge editable fields into a saved address.

        Raises:
            AddressNotFoundError: unknown address_id
            ValueError: attempt to change id, is_default or created_at
        """
        updates = _snake(updates)
        illegal = set(updates) - set(EDITABLE_FIELDS)
        if illegal:
            raise ValueError(f"Cannot update fields: {sorted(illegal)}")

        existing = self.get_saved_address(address_id)
        if existing is None:
            raise AddressNotFoundError(str(address_id))

        updated = replace(existing, **updates)
        self._commit_saved(tuple(updated if a is existing else a for a in self._saved))

        self.logger.info(f"Address updated: {existing.id}", extra={
            "address_id": existing.id, "fields": sorted(updates)
        })
        return updated

    def set_default_address(self, address_id: str) -> Optional[Address]:
        """
        Make address_id the only default and use it for checkout.

        Unknown ids leave everything unchanged and return None.
        """
        target = self.get_saved_address(address_id)
        if target is None:
            self.logger.warning(f"Default address not found: {address_id}")
            return None

        self._commit_saved(tuple(
            replace(a, is_default=(a.id == target.id)) for a in self._saved
        ))
        self._delivery_address = target.address
        self._persist_delivery_address()

        self.logger.info(f"Default address set: {target.id}", extra={
            "address_id": target.id
        })
        return self.get_saved_address(target.id)

    def remove_saved_address(self, address_id: str) -> bool:
        remaining = tuple(a for a in self._saved if a.id != str(address_id))
        if len(remaining) == len(self._saved):
            return False

        self._commit_saved(remaining)

        self.logger.info(f"Address removed: {address_id}", extra={
            "address_id": str(address_id),
            "has_default": self.get_default_address() is not None
        })
        return True

    def get_default_address(self) -> Optional[Address]:
        for addr in self._saved:
            if addr.is_default:
                return addr
        return None

    # ========================================================================
    # DEVICE POSITION
    # ========================================================================

    @property
    def current_location(self) -> Optional[CurrentLocation]:
        return self._current_location

    @property
    def location_permission(self) -> Optional[str]:
        return self._permission

    def request_permission(self) -> bool:
        self._permission = self.provider.request_permission()
        return self._permission == PERMISSION_GRANTED

    def get_current_position(self) -> CurrentLocation:
        """
        Permission check (requesting it when needed), GPS fix, reverse geocode.

        Raises:
            LocationUnavailableError: permission denied or device failure
        """
        try:
            self._permission = self.provider.get_permission_status()
            granted = self._permission == PERMISSION_GRANTED or self.request_permission()
            if granted:
                coords = self.provider.get_current_position()
                address = self.provider.reverse_geocode(coords)
        except Exception as e:
            self.logger.error(
                "Location lookup failed",
                extra={"error": str(e)},
                exc_info=True
            )
            raise LocationUnavailableError(f"Location unavailable: {e}") from e

        if not granted:
            self.logger.warning("Location permission denied")
            raise LocationUnavailableError("Location permission denied")

        location = CurrentLocation(
            latitude=coords.latitude,
            longitude=coords.longitude,
            address=address,
            timestamp=self.clock.now(),
        )
        self._current_location = location

        self.logger.debug("Current location updated", extra={
            "latitude": location.latitude, "longitude": location.longitude
        })
        return location

    def geocode_address(self, text: str) -> GeocodedAddress:
        """
        Resolve address text to coordinates.

        Raises:
            LocationUnavailableError: no match or provider failure
        """
        try:
            matches = self.provider.geocode(text)
        except Exception as e:
            raise LocationUnavailableError(f"Geocoding failed: {e}") from e

        if not matches:
            raise LocationUnavailableError("Address not found")

        first = matches[0]
        return GeocodedAddress(latitude=first.latitude, longitude=first.longitude, address=text)

    @staticmethod
    def calculate_distance(a: Any, b: Any) -> float:
        return calculate_distance(a, b)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _commit_saved(self, addresses: Tuple[Address, ...]) -> None:
        self._saved = addresses
        self._mutated = True
        self.persister.submit(StorageKeys.SAVED_ADDRESSES, [a.to_dict() for a in addresses])

    def _persist_delivery_address(self) -> None:
        self._mutated = True
        value = self._delivery_address
        if value is None:
            self.persister.submit_remove(StorageKeys.DELIVERY_ADDRESS)
        else:
            self.persister.submit(
                StorageKeys.DELIVERY_ADDRESS,
                value.to_dict() if isinstance(value, Address) else value
            )
