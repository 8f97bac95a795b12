from .provider import (
    Coordinates,
    LocationProvider,
    MockLocationProvider,
    PERMISSION_GRANTED,
    PERMISSION_DENIED,
    PERMISSION_UNDETERMINED,
)

__all__ = [
    "Coordinates",
    "LocationProvider",
    "MockLocationProvider",
    "PERMISSION_GRANTED",
    "PERMISSION_DENIED",
    "PERMISSION_UNDETERMINED",
]
