"""
SQLite-backed record store.

Used as the local-only store when no remote is configured and as the
backing of the REST record service. It deliberately behaves like a capped
remote store: pages are clamped to ``page_limit`` and batches above
``batch_limit`` are refused, so clients must page and chunk.

Every save stamps a server-side ``modified_at`` (and ``created_at`` on
first insert), which is what duplicate cleanup orders by.
"""

import json
import logging
import re
import sqlite3
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from focusboard.store.record_store import (
    AccountStatus,
    Record,
    RecordStoreClient,
    RecordStoreError,
)
from focusboard.utils.dates import parse_iso, to_iso, utcnow

log = logging.getLogger(__name__)

_CREATE_RECORDS_TABLE = """
CREATE TABLE IF NOT EXISTS records (
    kind TEXT NOT NULL,
    record_id TEXT NOT NULL,
    fields TEXT NOT NULL,
    created_at TEXT NOT NULL,
    modified_at TEXT NOT NULL,
    PRIMARY KEY (kind, record_id)
);
"""

_CREATE_RECORDS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_records_kind_created ON records (kind, created_at);
"""

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _row_to_record(row: sqlite3.Row) -> Record:
    return Record(
        kind=row["kind"],
        record_id=row["record_id"],
        fields=json.loads(row["fields"]),
        created_at=parse_iso(row["created_at"]),
        modified_at=parse_iso(row["modified_at"]),
    )


class SqliteRecordStore(RecordStoreClient):
    """
    Thread-safe record store on a single SQLite database.

    Args:
        path: database file, or ":memory:"
        page_limit: largest page the store will return
        batch_limit: largest save/delete batch the store accepts
        clock: source of modification timestamps
    """

    def __init__(
        self,
        path: str = ":memory:",
        page_limit: int = 100,
        batch_limit: int = 400,
        clock: Callable[[], datetime] = utcnow,
        page_size: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        super().__init__(
            page_size=page_size or page_limit,
            batch_size=batch_size or batch_limit,
        )
        self.page_limit = page_limit
        self.batch_limit = batch_limit
        self._clock = clock
        self._lock = threading.RLock()
        self._db = sqlite3.connect(str(path), check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.executescript(_CREATE_RECORDS_TABLE + _CREATE_RECORDS_INDEX)

    def close(self) -> None:
        with self._lock:
            self._db.close()

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def account_status(self) -> AccountStatus:
        return AccountStatus.AVAILABLE

    def _query_page(
        self,
        kind: str,
        filters: Dict[str, object],
        cursor: Optional[str],
        limit: int,
    ) -> Tuple[List[Record], Optional[str]]:
        try:
            offset = int(cursor) if cursor else 0
        except ValueError:
            raise RecordStoreError(f"Invalid cursor: {cursor!r}")
        limit = max(1, min(limit, self.page_limit))

        clauses = ["kind = ?"]
        params: list = [kind]
        for name, value in filters.items():
            if not _FIELD_NAME.match(name):
                raise RecordStoreError(f"Invalid field name: {name!r}")
            clauses.append(f"json_extract(fields, '$.{name}') = ?")
            params.append(value)

        sql = (
            f"SELECT * FROM records WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, record_id LIMIT ? OFFSET ?"
        )
        # Fetch one extra row to learn whether another page exists
        params.extend([limit + 1, offset])

        with self._lock:
            rows = self._db.execute(sql, params).fetchall()

        has_more = len(rows) > limit
        records = [_row_to_record(row) for row in rows[:limit]]
        return records, str(offset + limit) if has_more else None

    def _lookup(self, kind: str, record_ids: List[str]) -> List[Record]:
        if not record_ids:
            return []
        placeholders = ",".join("?" * len(record_ids))
        with self._lock:
            rows = self._db.execute(
                f"SELECT * FROM records WHERE kind = ? AND record_id IN ({placeholders})",
                [kind, *record_ids],
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def _modify(
        self,
        kind: str,
        records_to_save: List[Record],
        ids_to_delete: List[str],
    ) -> Dict[str, str]:
        if len(records_to_save) + len(ids_to_delete) > self.batch_limit:
            raise RecordStoreError(
                f"Batch of {len(records_to_save) + len(ids_to_delete)} exceeds limit {self.batch_limit}"
            )

        errors: Dict[str, str] = {}
        with self._lock:
            now = to_iso(self._clock())
            cursor = self._db.cursor()
            for record in records_to_save:
                if record.kind != kind:
                    errors[record.record_id] = f"kind mismatch: {record.kind} != {kind}"
                    continue
                try:
                    payload = json.dumps(record.fields)
                except (TypeError, ValueError) as e:
                    errors[record.record_id] = f"unserialisable fields: {e}"
                    continue
                cursor.execute(
                    """
                    INSERT INTO records (kind, record_id, fields, created_at, modified_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(kind, record_id) DO UPDATE SET
                        fields = excluded.fields,
                        modified_at = excluded.modified_at
                    """,
                    (kind, record.record_id, payload, now, now),
                )
            if ids_to_delete:
                placeholders = ",".join("?" * len(ids_to_delete))
                cursor.execute(
                    f"DELETE FROM records WHERE kind = ? AND record_id IN ({placeholders})",
                    [kind, *ids_to_delete],
                )
            self._db.commit()
        return errors

    # ------------------------------------------------------------------
    # Service surface (used by the REST record routes)
    # ------------------------------------------------------------------

    def query_page(self, kind, filters, cursor=None, limit=None):
        return self._query_page(kind, filters, cursor, limit or self.page_limit)

    def lookup(self, kind, record_ids):
        return self._lookup(kind, list(record_ids))

    def modify(self, kind, records_to_save, ids_to_delete):
        return self._modify(kind, list(records_to_save), list(ids_to_delete))

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def count(self, kind: Optional[str] = None) -> int:
        with self._lock:
            if kind:
                row = self._db.execute("SELECT COUNT(*) FROM records WHERE kind = ?", (kind,)).fetchone()
            else:
                row = self._db.execute("SELECT COUNT(*) FROM records").fetchone()
        return row[0]
