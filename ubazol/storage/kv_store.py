"""
Key-value store interface and in-memory backend.

The state containers persist one JSON document per key (cartData, orders,
savedAddresses, ...). Values cross the store boundary as JSON text, so what
comes back from get() is always a detached copy of what was set().

No transactions and no atomicity across keys.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol

from ubazol.logging import get_logger, LogStream
from ubazol.errors import PersistenceError


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...
    def set(self, key: str, value: Any) -> None: ...
    def remove(self, key: str) -> None: ...
    def multi_remove(self, keys: Iterable[str]) -> None: ...
    def keys(self) -> List[str]: ...


def encode_value(key: str, value: Any) -> str:
    """Serialize a JSON-compatible value; raise PersistenceError otherwise."""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Value for {key!r} is not JSON-serializable: {e}") from e


def decode_value(key: str, raw: Optional[str]) -> Optional[Any]:
    """Parse stored JSON text; raise PersistenceError on corrupt data."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"Stored value for {key!r} is corrupt: {e}") from e


class MemoryKeyValueStore:
    """
    Dict-backed store.

    Used by tests and by the CLI demo when no storage path is configured.
    Thread-safe; the write-behind worker writes from its own thread.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.logger = get_logger(LogStream.STORAGE)

        for key, value in (initial or {}).items():
            self._data[key] = encode_value(key, value)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        return decode_value(key, raw)

    def set(self, key: str, value: Any) -> None:
        encoded = encode_value(key, value)
        with self._lock:
            self._data[key] = encoded
        self.logger.debug(f"Stored {key}", extra={"key": key, "bytes": len(encoded)})

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def multi_remove(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)

    def raw(self, key: str) -> Optional[str]:
        """Stored JSON text for a key (diagnostics and tests)."""
        with self._lock:
            return self._data.get(key)

    def close(self) -> None:
        pass
