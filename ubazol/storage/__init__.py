"""
Persistent key-value storage for the state containers.

Provides:
- KeyValueStore: store protocol (get/set/remove/multi_remove/keys)
- MemoryKeyValueStore: in-memory backend
- SqliteKeyValueStore: SQLite file backend
- WriteBehindPersister: non-blocking, coalescing snapshot writer
- StorageKeys: the persisted key names
"""

from .keys import StorageKeys
from .kv_store import KeyValueStore, MemoryKeyValueStore
from .sqlite_store import SqliteKeyValueStore
from .write_behind import WriteBehindPersister

__all__ = [
    "StorageKeys",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "WriteBehindPersister",
]
