"""
Record store client interface.

Thin capability over a remote multi-device record store: list every record
of a kind, look records up by id, query by field equality, upsert and
delete. No merge logic lives here.

Backends implement four primitives (_query_page, _lookup, _modify,
account_status). Paging and batch chunking are handled once, in the base
class, so every backend gets the same behaviour:

    fetch_all: loops on the continuation cursor until exhausted
    save: chunks into batch_size groups; each chunk succeeds or fails
          on its own and a failed chunk never aborts its siblings
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

log = logging.getLogger(__name__)

# Record kinds and the discriminator stored in each record's syncType field
PROJECT_KIND = "Project"
FOCUSED_PROJECT_KIND = "FocusedProject"
FOCUS_TASK_KIND = "FocusTask"

SYNC_TYPES: Dict[str, str] = {
    PROJECT_KIND: "project",
    FOCUSED_PROJECT_KIND: "focused",
    FOCUS_TASK_KIND: "task",
}

DEFAULT_PAGE_SIZE = 100
DEFAULT_BATCH_SIZE = 400


class RecordStoreError(Exception):
    """A fetch, save or delete request failed as a whole."""


class AccountStatus(str, Enum):
    AVAILABLE = "available"
    NO_ACCOUNT = "noAccount"
    RESTRICTED = "restricted"
    COULD_NOT_DETERMINE = "couldNotDetermine"
    TEMPORARILY_UNAVAILABLE = "temporarilyUnavailable"

    @property
    def display(self) -> str:
        return {
            AccountStatus.AVAILABLE: "Ready",
            AccountStatus.NO_ACCOUNT: "Not Signed In",
            AccountStatus.RESTRICTED: "Restricted",
            AccountStatus.COULD_NOT_DETERMINE: "Unknown",
            AccountStatus.TEMPORARILY_UNAVAILABLE: "Temporarily Unavailable",
        }[self]


@dataclass
class Record:
    """A raw remote record. ``record_id`` is unique within its kind."""

    kind: str
    record_id: str
    fields: Dict[str, object] = field(default_factory=dict)
    modified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class ModifyResult:
    """Outcome of a chunked save or delete."""

    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def merge(self, other: "ModifyResult") -> None:
        self.succeeded.extend(other.succeeded)
        self.failed.update(other.failed)


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class RecordStoreClient(ABC):
    """
    Abstract record store client.

    Args:
        page_size: records requested per query page
        batch_size: records per save/delete request
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.page_size = page_size
        self.batch_size = batch_size

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _query_page(
        self,
        kind: str,
        filters: Dict[str, object],
        cursor: Optional[str],
        limit: int,
    ) -> Tuple[List[Record], Optional[str]]:
        """Return one page of matching records and the next cursor (None when done)."""

    @abstractmethod
    def _lookup(self, kind: str, record_ids: List[str]) -> List[Record]:
        """Return the records that exist among ``record_ids``."""

    @abstractmethod
    def _modify(
        self,
        kind: str,
        records_to_save: List[Record],
        ids_to_delete: List[str],
    ) -> Dict[str, str]:
        """
        Apply one batch. Returns {record_id: error} for records that failed
        individually; raises RecordStoreError if the batch failed as a whole.
        """

    @abstractmethod
    def account_status(self) -> AccountStatus:
        """Report whether the store can be used right now."""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, kind: str, **filters) -> List[Record]:
        """Every record of ``kind`` whose fields equal ``filters``, all pages."""
        records: List[Record] = []
        cursor: Optional[str] = None
        pages = 0
        while True:
            page, cursor = self._query_page(kind, filters, cursor, self.page_size)
            records.extend(page)
            pages += 1
            if not cursor:
                break
        log.debug("Queried %d %s records in %d page(s)", len(records), kind, pages)
        return records

    def fetch_all(self, kind: str) -> List[Record]:
        """Every record of ``kind`` tagged with that kind's discriminator."""
        return self.query(kind, syncType=SYNC_TYPES[kind])

    def fetch_by_ids(self, kind: str, record_ids: Iterable[str]) -> List[Record]:
        """Best-effort lookup; ids without a record are simply absent."""
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            return []
        found: List[Record] = []
        for chunk in _chunks(ids, self.batch_size):
            found.extend(self._lookup(kind, list(chunk)))
        return found

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def save(self, records: Sequence[Record]) -> ModifyResult:
        """Idempotent upsert keyed by each record's ``record_id``."""
        result = ModifyResult()
        by_kind: Dict[str, List[Record]] = {}
        for record in records:
            by_kind.setdefault(record.kind, []).append(record)

        for kind, kind_records in by_kind.items():
            chunks = list(_chunks(kind_records, self.batch_size))
            for index, chunk in enumerate(chunks, start=1):
                ids = [r.record_id for r in chunk]
                result.merge(self._run_chunk(kind, list(chunk), [], ids, index, len(chunks)))
        return result

    def delete(self, kind: str, record_ids: Iterable[str]) -> ModifyResult:
        result = ModifyResult()
        ids = list(dict.fromkeys(record_ids))
        chunks = list(_chunks(ids, self.batch_size))
        for index, chunk in enumerate(chunks, start=1):
            result.merge(self._run_chunk(kind, [], list(chunk), list(chunk), index, len(chunks)))
        return result

    def _run_chunk(
        self,
        kind: str,
        to_save: List[Record],
        to_delete: List[str],
        ids: List[str],
        index: int,
        total: int,
    ) -> ModifyResult:
        action = "save" if to_save else "delete"
        try:
            errors = self._modify(kind, to_save, to_delete)
        except RecordStoreError as e:
            log.warning(
                "Failed to %s chunk %d/%d of %d %s records: %s",
                action, index, total, len(ids), kind, e,
            )
            return ModifyResult(failed={rid: str(e) for rid in ids})

        for rid, err in errors.items():
            log.warning("Failed to %s %s record %s: %s", action, kind, rid, err)
        log.debug("%s chunk %d/%d: %d %s records", action, index, total, len(ids), kind)
        return ModifyResult(
            succeeded=[rid for rid in ids if rid not in errors],
            failed=dict(errors),
        )
