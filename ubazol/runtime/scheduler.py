"""
Demo status scheduler: walks newly created orders through the early
delivery states (confirmed after 5 s, preparing after 10 s by default).

Clock-driven, no threads: run_due() applies every step whose due time
has passed. Under a SimulatedClock the progression is fully deterministic.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from ubazol.errors import UbazolError
from ubazol.events import OrderCreatedEvent
from ubazol.logging import get_logger, LogStream, LogContext
from ubazol.state.order import OrderStatus, status_rank
from ubazol.time import Clock


DEFAULT_STEPS: Tuple[Tuple[float, OrderStatus], ...] = (
    (5.0, OrderStatus.CONFIRMED),
    (10.0, OrderStatus.PREPARING),
)


@dataclass(frozen=True)
class ScheduledStep:
    order_id: str
    status: OrderStatus
    due_at: datetime


class DemoStatusScheduler:
    """
    Per-order plans of (delay, status) steps.

    USAGE:
        scheduler = DemoStatusScheduler(order_machine, clock)
        event_bus.subscribe(OrderCreatedEvent, scheduler.on_order_created)
        ...
        scheduler.run_due()
    """

    def __init__(
        self,
        order_machine,
        clock: Clock,
        steps: Sequence[Tuple[float, OrderStatus]] = DEFAULT_STEPS
    ):
        self.order_machine = order_machine
        self.clock = clock
        self.steps = tuple((float(delay), OrderStatus.parse(status)) for delay, status in steps)
        self.logger = get_logger(LogStream.ORDERS)

        self._pending: List[ScheduledStep] = []

    @property
    def pending(self) -> List[ScheduledStep]:
        return list(self._pending)

    def schedule(self, order_id: str, created_at: Optional[datetime] = None) -> None:
        start = created_at or self.clock.now()
        for delay, status in self.steps:
            self._pending.append(
                ScheduledStep(order_id, status, start + timedelta(seconds=delay))
            )
        self._pending.sort(key=lambda s: s.due_at)

    def on_order_created(self, event: OrderCreatedEvent) -> None:
        self.schedule(event.order_id, event.timestamp)

    def cancel(self, order_id: str) -> None:
        self._pending = [s for s in self._pending if s.order_id != order_id]

    def run_due(self) -> int:
        """
        Apply every step due at or before now.

        Missing and terminal orders are skipped. Progress steps never move
        an order backwards: a step at or behind the current status is dropped.

        Returns:
            Number of status changes applied
        """
        now = self.clock.now()
        due = [s for s in self._pending if s.due_at <= now]
        self._pending = [s for s in self._pending if s.due_at > now]

        applied = 0
        for step in due:
            order = self.order_machine.get_order(step.order_id)
            if order is None or order.is_terminal:
                continue
            if (step.status != OrderStatus.CANCELLED
                    and status_rank(order.status) >= status_rank(step.status)):
                self.logger.debug(
                    f"Scheduled step already passed: {step.status.value}",
                    extra={"order_id": step.order_id, "status": order.status.value}
                )
                continue

            with LogContext(step.order_id):
                try:
                    self.order_machine.update_order_status(step.order_id, step.status)
                    applied += 1
                except UbazolError as e:
                    self.logger.warning(
                        f"Scheduled step skipped: {step.status.value}",
                        extra={"order_id": step.order_id, "error": str(e)}
                    )

        return applied
