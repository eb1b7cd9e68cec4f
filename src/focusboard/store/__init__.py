from .http_store import HttpRecordStore
from .record_store import (
    FOCUS_TASK_KIND,
    FOCUSED_PROJECT_KIND,
    PROJECT_KIND,
    SYNC_TYPES,
    AccountStatus,
    ModifyResult,
    Record,
    RecordStoreClient,
    RecordStoreError,
)
from .sqlite_store import SqliteRecordStore

__all__ = [
    "AccountStatus",
    "FOCUS_TASK_KIND",
    "FOCUSED_PROJECT_KIND",
    "HttpRecordStore",
    "ModifyResult",
    "PROJECT_KIND",
    "Record",
    "RecordStoreClient",
    "RecordStoreError",
    "SqliteRecordStore",
    "SYNC_TYPES",
]
