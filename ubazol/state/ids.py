from __future__ import annotations

import threading
from typing import Iterable

from ubazol.time import Clock


class MonotonicIdGenerator:
    """
    Epoch-millisecond ids, strictly increasing per generator.

    Two ids issued in the same millisecond are bumped by one, so ids sort in
    generation order and stay unique. seed() keeps ids issued before a
    restart from being reused.

    Examples:
      "1760869845123", "1760869845124"
    """

    def __init__(self, clock: Clock):
        self.clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def seed(self, existing_ids: Iterable[str]) -> None:
        numeric = [int(i) for i in existing_ids if str(i).isdigit()]
        if numeric:
            with self._lock:
                self._last = max(self._last, max(numeric))

    def next_id(self) -> str:
        with self._lock:
            candidate = max(self.clock.epoch_ms(), self._last + 1)
            self._last = candidate
            return str(candidate)
