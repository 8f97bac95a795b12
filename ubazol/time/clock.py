"""
Time abstraction layer for the Ubazol state core.

Provides an injectable clock that can be:
- Real-time (the running app)
- Simulated (tests, demo scheduler replays)

Order timestamps, estimated delivery times and notification timestamps
all come from the injected clock, never from datetime.now() directly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone, timedelta
from typing import Optional
import pytz


DEFAULT_TIMEZONE = "America/New_York"


class Clock(ABC):
    """Abstract clock interface"""

    @abstractmethod
    def now(self) -> datetime:
        """Get current time (always UTC)"""
        pass

    def now_local(self, tz: str = DEFAULT_TIMEZONE) -> datetime:
        """Get current time in specified timezone"""
        return to_local(self.now(), tz)

    def epoch_ms(self) -> int:
        """Milliseconds since the Unix epoch for the current time."""
        return int(self.now().timestamp() * 1000)


class RealTimeClock(Clock):
    """Wall clock (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class SimulatedClock(Clock):
    """Manually driven clock for tests and scheduler replays."""

    def __init__(self, start_time: Optional[datetime] = None):
        """
        Args:
            start_time: Initial time (must be timezone-aware). Defaults to now.
        """
        if start_time is None:
            start_time = datetime.now(timezone.utc)
        if start_time.tzinfo is None:
            raise ValueError("start_time must be timezone-aware (UTC)")

        self._current_time = start_time.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def advance(self, delta: timedelta = None, **kwargs):
        """
        Advance simulated time.

        Accepts a timedelta or timedelta keyword arguments:
            clock.advance(timedelta(seconds=5))
            clock.advance(minutes=30)
        """
        if delta is None:
            delta = timedelta(**kwargs)
        if delta < timedelta(0):
            raise ValueError("Cannot move a simulated clock backwards")
        self._current_time += delta

    def set_time(self, new_time: datetime):
        """Set simulated time to a specific (timezone-aware) value."""
        if new_time.tzinfo is None:
            raise ValueError("new_time must be timezone-aware (UTC)")

        self._current_time = new_time.astimezone(timezone.utc)


def to_local(dt: datetime, tz: str = DEFAULT_TIMEZONE) -> datetime:
    """Convert an aware datetime to the named timezone."""
    return ensure_utc(dt).astimezone(pytz.timezone(tz))


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure *dt* is timezone-aware and in UTC.

    - If naive (no tzinfo): attach UTC (assumes caller meant UTC).
    - If aware but not UTC: convert to UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string (trailing Z allowed) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime as ISO-8601 UTC with a trailing Z."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def get_clock(mode: str = "real", start_time: Optional[datetime] = None) -> Clock:
    """
    Create clock based on mode.

    Args:
        mode: 'real' or 'simulated'
        start_time: Initial time for the simulated clock
    """
    if mode == "real":
        return RealTimeClock()
    if mode == "simulated":
        return SimulatedClock(start_time)
    raise ValueError(f"Unknown clock mode: {mode}")
