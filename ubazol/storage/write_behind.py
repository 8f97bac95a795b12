"""
Write-behind persistence for state snapshots.

CRITICAL PROPERTIES:
1. Mutations never block on storage: submit() only records the job
2. Coalescing: only the latest snapshot per key is written
3. Dedicated worker thread drains pending jobs
4. Write failures are logged and counted, never raised to the caller
   (the in-memory state stays authoritative; the next mutation re-submits
   the full snapshot)
5. flush() makes durability observable: it returns once every job
   submitted before the call has been attempted
6. synchronous=True writes inline (tests, CLI one-shots)

USAGE:
    persister = WriteBehindPersister(store)
    persister.start()

    persister.submit("cartData", cart.to_dict())
    persister.submit_remove("cartData")

    persister.flush(timeout=2.0)
    persister.stop()
"""

import threading
from typing import Any, Dict, Optional, Tuple

from ubazol.errors import PersistenceError
from ubazol.logging import get_logger, LogStream


_SET = "set"
_REMOVE = "remove"


class WriteBehindPersister:
    """Background writer between the state containers and a KeyValueStore."""

    def __init__(self, store, synchronous: bool = False, *, daemon: bool = True):
        """
        Args:
            store: KeyValueStore implementation
            synchronous: Write inline on submit instead of on the worker
            daemon: Run the worker as a daemon thread
        """
        self.store = store
        self.synchronous = synchronous
        self.logger = get_logger(LogStream.STORAGE)

        # key -> (op, value); insertion order is submission order
        self._pending: Dict[str, Tuple[str, Any]] = {}
        self._in_flight = 0
        self._cond = threading.Condition()

        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stopping = False
        self._daemon = daemon

        # Statistics
        self.writes_completed = 0
        self.writes_failed = 0
        self.writes_coalesced = 0
        self.last_error: Optional[str] = None

    # ========================================================================
    # SUBMISSION
    # ========================================================================

    def submit(self, key: str, value: Any) -> None:
        """Schedule value to be written under key."""
        self._enqueue(key, _SET, value)

    def submit_remove(self, key: str) -> None:
        """Schedule key to be removed."""
        self._enqueue(key, _REMOVE, None)

    def _enqueue(self, key: str, op: str, value: Any) -> None:
        if self.synchronous:
            self._write(key, op, value)
            return

        with self._cond:
            if not self._running:
                raise RuntimeError("WriteBehindPersister is not running. Call start() first.")

            if key in self._pending:
                self.writes_coalesced += 1
                del self._pending[key]  # re-insert at the end
            self._pending[key] = (op, value)
            self._cond.notify_all()

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @property
    def is_running(self) -> bool:
        return self._running or self.synchronous

    def start(self) -> None:
        if self.synchronous:
            return
        if self._running:
            raise RuntimeError("WriteBehindPersister already running")

        self._running = True
        self._stopping = False
        self._thread = threading.Thread(
            target=self._run,
            name="WriteBehindPersister",
            daemon=self._daemon
        )
        self._thread.start()

        self.logger.info("WriteBehindPersister started")

    def stop(self, timeout: float = 5.0) -> None:
        """Drain pending writes and stop the worker."""
        if self.synchronous or not self._running:
            return

        with self._cond:
            self._stopping = True
            self._cond.notify_all()

        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                self.logger.warning(
                    "Write-behind worker did not stop cleanly",
                    extra={"timeout": timeout, "pending": len(self._pending)}
                )

        self._running = False

        self.logger.info("WriteBehindPersister stopped", extra={
            "writes_completed": self.writes_completed,
            "writes_failed": self.writes_failed,
            "writes_coalesced": self.writes_coalesced
        })

    def flush(self, timeout: Optional[float] = 5.0) -> bool:
        """
        Block until every pending job has been attempted.

        Returns:
            True if drained, False on timeout
        """
        if self.synchronous:
            return True

        with self._cond:
            drained = self._cond.wait_for(
                lambda: not self._pending and self._in_flight == 0,
                timeout=timeout
            )

        if not drained:
            self.logger.warning("Write-behind flush timed out", extra={
                "timeout": timeout, "pending": len(self._pending)
            })
        return drained

    @property
    def pending_count(self) -> int:
        with self._cond:
            return len(self._pending) + self._in_flight

    # ========================================================================
    # WORKER
    # ========================================================================

    def _run(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._pending or self._stopping)
                if not self._pending and self._stopping:
                    return

                batch = self._pending
                self._pending = {}
                self._in_flight = len(batch)

            for key, (op, value) in batch.items():
                self._write(key, op, value)
                with self._cond:
                    self._in_flight -= 1
                    self._cond.notify_all()

    def _write(self, key: str, op: str, value: Any) -> None:
        try:
            if op == _SET:
                self.store.set(key, value)
            else:
                self.store.remove(key)
        except PersistenceError as e:
            self._record_failure(key, op, e)
        except Exception as e:
            # Backends outside this package may raise their own errors
            self._record_failure(key, op, PersistenceError(str(e)))
        else:
            self.writes_completed += 1

    def _record_failure(self, key: str, op: str, error: Exception) -> None:
        self.writes_failed += 1
        self.last_error = str(error)
        self.logger.error(
            f"Background {op} of {key} failed",
            extra={"key": key, "op": op, "error": str(error), "writes_failed": self.writes_failed},
            exc_info=True
        )
