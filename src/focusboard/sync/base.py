"""
Shared shape of the per-kind sync managers.

A sync pass for one record kind:

1. fetch every remote record of the kind and decode it
2. merge with the local entities by natural key (per-kind tie-break)
3. upload the merged set (idempotent upsert)
4. replace the local snapshot with the merged set

The snapshot is only written after the upload, and routine passes never
delete remote records.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Generic, Iterable, List, Optional, Sequence, TypeVar

from focusboard.cache.snapshot import SnapshotStore
from focusboard.store.record_store import SYNC_TYPES, ModifyResult, Record, RecordStoreClient, RecordStoreError

log = logging.getLogger(__name__)

T = TypeVar("T")


class SyncError(Exception):
    """A sync pass could not complete against the record store."""


class EntitySyncManager(ABC, Generic[T]):
    """
    Base class for Project, FocusedProject and FocusTask sync.

    Subclasses set ``kind`` and ``snapshot_key`` and implement the codec and
    the tie-break rule.
    """

    kind: str = ""
    snapshot_key: str = ""

    def __init__(self, store: RecordStoreClient, snapshots: SnapshotStore) -> None:
        self.store = store
        self.snapshots = snapshots

    @property
    def sync_type(self) -> str:
        return SYNC_TYPES[self.kind]

    # ------------------------------------------------------------------
    # Per-kind behaviour
    # ------------------------------------------------------------------

    @abstractmethod
    def natural_key(self, entity: T) -> str:
        """Key that identifies the same entity on every device."""

    @abstractmethod
    def to_record(self, entity: T) -> Record:
        """Encode an entity as a remote record."""

    @abstractmethod
    def decode_record(self, record: Record) -> T:
        """Decode a remote record; raises on malformed fields."""

    @abstractmethod
    def decode_snapshot(self, data: dict) -> T:
        """Decode one item of the local snapshot array."""

    @abstractmethod
    def prefer_local(self, local: T, remote: T) -> bool:
        """True when ``local`` should win over ``remote``."""

    # ------------------------------------------------------------------
    # Pass steps
    # ------------------------------------------------------------------

    def from_record(self, record: Record) -> Optional[T]:
        try:
            return self.decode_record(record)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Skipping malformed %s record %s: %s", self.kind, record.record_id, e)
            return None

    def load_local(self) -> List[T]:
        return self.snapshots.read_items(self.snapshot_key, self.decode_snapshot)

    def save_local(self, entities: Sequence[T]) -> None:
        self.snapshots.write_items(self.snapshot_key, entities)

    def fetch_all(self) -> List[T]:
        try:
            records = self.store.fetch_all(self.kind)
        except RecordStoreError as e:
            raise SyncError(f"Failed to fetch {self.kind} records: {e}") from e
        entities = [self.from_record(r) for r in records]
        decoded = [e for e in entities if e is not None]
        log.debug("Fetched %d %s records (%d decoded)", len(records), self.kind, len(decoded))
        return decoded

    def merge(self, local: Iterable[T], remote: Iterable[T]) -> List[T]:
        merged: Dict[str, T] = {}
        # Duplicate remote keys collapse to whichever copy the tie-break favours
        for entity in remote:
            key = self.natural_key(entity)
            existing = merged.get(key)
            if existing is None or self.prefer_local(entity, existing):
                merged[key] = entity
        for entity in local:
            key = self.natural_key(entity)
            existing = merged.get(key)
            if existing is None or self.prefer_local(entity, existing):
                merged[key] = entity
        return [merged[key] for key in sorted(merged)]

    def push(self, entities: Sequence[T]) -> ModifyResult:
        if not entities:
            return ModifyResult()
        try:
            result = self.store.save([self.to_record(e) for e in entities])
        except RecordStoreError as e:
            raise SyncError(f"Failed to save {self.kind} records: {e}") from e
        if result.failed and not result.succeeded:
            first = next(iter(result.failed.values()))
            raise SyncError(f"Failed to save {len(result.failed)} {self.kind} records: {first}")
        if result.failed:
            log.warning(
                "Saved %d %s records, %d failed",
                len(result.succeeded), self.kind, len(result.failed),
            )
        return result

    def sync(self, local: Optional[Sequence[T]] = None) -> List[T]:
        """Run one pass; ``local`` defaults to the stored snapshot."""
        if local is None:
            local = self.load_local()
        remote = self.fetch_all()
        merged = self.merge(local, remote)
        self.push(merged)
        self.save_local(merged)
        log.info(
            "Synced %s: %d local, %d remote, %d merged",
            self.kind, len(local), len(remote), len(merged),
        )
        return merged
