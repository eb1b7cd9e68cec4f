from .kv_store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from .snapshot import SnapshotSource, SnapshotStore, first_non_empty

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SnapshotSource",
    "SnapshotStore",
    "SqliteKeyValueStore",
    "first_non_empty",
]
