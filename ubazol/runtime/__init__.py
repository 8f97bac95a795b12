"""
Runtime: application container, demo scheduler and CLI.
"""

from .app import ActionResult, DeliveryApp
from .scheduler import DemoStatusScheduler, ScheduledStep

__all__ = [
    "ActionResult",
    "DeliveryApp",
    "DemoStatusScheduler",
    "ScheduledStep",
]
