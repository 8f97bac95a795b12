"""Time abstraction layer"""

from .clock import (
    Clock,
    RealTimeClock,
    SimulatedClock,
    DEFAULT_TIMEZONE,
    ensure_utc,
    format_timestamp,
    get_clock,
    parse_timestamp,
    to_local,
)

__all__ = [
    'Clock',
    'RealTimeClock',
    'SimulatedClock',
    'DEFAULT_TIMEZONE',
    'ensure_utc',
    'format_timestamp',
    'get_clock',
    'parse_timestamp',
    'to_local',
]
