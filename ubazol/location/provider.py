"""
Device-location collaborator.

The address store never talks to platform location services directly; it
goes through a LocationProvider. MockLocationProvider serves the demo and
the tests with a fixed downtown position.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple, runtime_checkable


PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"
PERMISSION_UNDETERMINED = "undetermined"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}


@runtime_checkable
class LocationProvider(Protocol):
    """Platform location services (permissions, GPS, geocoding)."""

    def get_permission_status(self) -> str:
        ...

    def request_permission(self) -> str:
        ...

    def get_current_position(self) -> Coordinates:
        ...

    def reverse_geocode(self, coords: Coordinates) -> Optional[str]:
        ...

    def geocode(self, address: str) -> List[Coordinates]:
        ...


class MockLocationProvider:
    """
    Deterministic provider: New York City downtown.

    Args:
        permission: Initial permission status
        grant_on_request: Status returned by request_permission()
        fail: Raise on get_current_position() (device error)
        known_addresses: address text -> (lat, lon) for geocode()
    """

    DEFAULT_POSITION = Coordinates(40.7128, -74.0060)
    DEFAULT_ADDRESS = "123 Main Street, Downtown"

    def __init__(
        self,
        permission: str = PERMISSION_UNDETERMINED,
        grant_on_request: bool = True,
        fail: bool = False,
        position: Optional[Coordinates] = None,
        address: Optional[str] = DEFAULT_ADDRESS,
        known_addresses: Optional[dict] = None
    ):
        self.permission = permission
        self.grant_on_request = grant_on_request
        self.fail = fail
        self.position = position or self.DEFAULT_POSITION
        self.address = address
        self.known_addresses = dict(known_addresses or {})
        self.permission_requests = 0

    def get_permission_status(self) -> str:
        return self.permission

    def request_permission(self) -> str:
        self.permission_requests += 1
        self.permission = PERMISSION_GRANTED if self.grant_on_request else PERMISSION_DENIED
        return self.permission

    def get_current_position(self) -> Coordinates:
        if self.fail:
            raise OSError("Location services unavailable")
        return self.position

    def reverse_geocode(self, coords: Coordinates) -> Optional[str]:
        return self.address

    def geocode(self, address: str) -> List[Coordinates]:
        match: Optional[Tuple[float, float]] = self.known_addresses.get(address)
        if match is None:
            return []
        return [Coordinates(*match)]
