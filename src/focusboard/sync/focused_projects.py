"""
Focused project sync.

The remote record id of a focused project is its project id, so at most one
record per project is ever written by this code. Older clients wrote records
under random ids, which is why duplicate cleanup and the force-update path
exist.

Merge rule (status-aware):

* Active beats Inactive whatever the timestamps say
* same status: if the remote copy has no dates and the local one does,
  local wins; otherwise local wins only with a strictly newer
  ``last_worked_on or activated_date``
"""

import logging
import time
import uuid
from typing import Dict, Iterable, List, Optional, Sequence

from focusboard.cache.snapshot import SHARED_FOCUSED_PROJECTS
from focusboard.models.focus import FocusedProject
from focusboard.models.status import ProjectStatus
from focusboard.store.record_store import FOCUSED_PROJECT_KIND, Record, RecordStoreError
from focusboard.sync.base import EntitySyncManager, SyncError
from focusboard.utils.dates import parse_iso, to_iso
from focusboard.utils.ids import new_id, parse_uuid

log = logging.getLogger(__name__)


def _optional_date(fields: dict, key: str):
    try:
        return parse_iso(fields.get(key))
    except ValueError:
        log.debug("Ignoring unreadable %s: %r", key, fields.get(key))
        return None


def status_aware_wins(candidate: FocusedProject, current: FocusedProject) -> bool:
    """True when ``candidate`` should replace ``current`` for the same project."""
    if candidate.status != current.status:
        return candidate.is_active
    candidate_date = candidate.activity_date
    current_date = current.activity_date
    if current_date is None:
        return candidate_date is not None
    if candidate_date is None:
        return False
    return candidate_date > current_date


class FocusedProjectSyncManager(EntitySyncManager[FocusedProject]):
    """
    Args:
        propagation_delay: seconds to wait between delete and re-create
            during a force update, for the remote to settle
        verify_delay: seconds to wait before reading back forced records
    """

    kind = FOCUSED_PROJECT_KIND
    snapshot_key = SHARED_FOCUSED_PROJECTS

    def __init__(self, store, snapshots, propagation_delay: float = 1.0, verify_delay: float = 5.0) -> None:
        super().__init__(store, snapshots)
        self.propagation_delay = propagation_delay
        self.verify_delay = verify_delay

    def natural_key(self, entity: FocusedProject) -> str:
        return str(entity.project_id)

    def prefer_local(self, local: FocusedProject, remote: FocusedProject) -> bool:
        return status_aware_wins(local, remote)

    # ------------------------------------------------------------------
    # Codec
    # ------------------------------------------------------------------

    def to_record(self, entity: FocusedProject) -> Record:
        fields = {
            "id": str(entity.id),
            "projectId": str(entity.project_id),
            "status": entity.status.value,
            "priority": entity.priority,
            "syncType": self.sync_type,
        }
        if entity.last_worked_on:
            fields["lastWorkedOn"] = to_iso(entity.last_worked_on)
        if entity.activated_date:
            fields["activatedDate"] = to_iso(entity.activated_date)
        return Record(kind=self.kind, record_id=str(entity.project_id), fields=fields)

    def decode_record(self, record: Record) -> FocusedProject:
        fields = record.fields
        project_id = parse_uuid(fields["projectId"])
        activated = _optional_date(fields, "activatedDate")

        try:
            status = ProjectStatus(fields.get("status"))
        except ValueError:
            # Records written before status existed only carry the activation date
            status = ProjectStatus.ACTIVE if activated else ProjectStatus.INACTIVE

        try:
            entity_id = parse_uuid(fields.get("id"))
        except ValueError:
            entity_id = new_id()

        try:
            priority = int(fields.get("priority") or 0)
        except (TypeError, ValueError):
            priority = 0

        return FocusedProject(
            id=entity_id,
            project_id=project_id,
            status=status,
            priority=priority,
            last_worked_on=_optional_date(fields, "lastWorkedOn"),
            activated_date=activated,
        )

    def decode_snapshot(self, data: dict) -> FocusedProject:
        return FocusedProject.from_dict(data)

    # ------------------------------------------------------------------
    # Repair paths
    # ------------------------------------------------------------------

    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def cleanup_duplicates(self) -> int:
        """
        Delete all but one remote record per project id.

        The survivor is the Active one if any, else the most recently
        modified. Returns the number of records deleted.
        """
        try:
            records = self.store.fetch_all(self.kind)
        except RecordStoreError as e:
            raise SyncError(f"Failed to fetch {self.kind} records: {e}") from e

        groups: Dict[uuid.UUID, List[Record]] = {}
        for record in records:
            try:
                project_id = parse_uuid(record.fields.get("projectId"))
            except ValueError:
                continue
            groups.setdefault(project_id, []).append(record)

        doomed: List[str] = []
        for project_id, group in groups.items():
            if len(group) < 2:
                continue
            group.sort(key=self._survivor_rank, reverse=True)
            doomed.extend(r.record_id for r in group[1:])
            log.info("Project %s has %d focus records, keeping %s", project_id, len(group), group[0].record_id)

        if not doomed:
            return 0
        result = self.store.delete(self.kind, doomed)
        log.info("Deleted %d duplicate %s records", len(result.succeeded), self.kind)
        if result.failed:
            log.warning("Could not delete %d duplicate %s records", len(result.failed), self.kind)
        return len(result.succeeded)

    def _survivor_rank(self, record: Record):
        entity = self.from_record(record)
        is_active = entity is not None and entity.is_active
        modified = record.modified_at.timestamp() if record.modified_at else 0.0
        return (is_active, modified)

    def fetch_by_ids(self, project_ids: Iterable[uuid.UUID]) -> List[FocusedProject]:
        try:
            records = self.store.fetch_by_ids(self.kind, [str(pid) for pid in project_ids])
        except RecordStoreError as e:
            raise SyncError(f"Failed to look up {self.kind} records: {e}") from e
        return [e for e in (self.from_record(r) for r in records) if e is not None]

    def force_update(self, entities: Sequence[FocusedProject], verify: bool = True) -> Optional[int]:
        """
        Overwrite the remote copies of ``entities`` outright.

        Every remote record carrying one of their project ids is deleted
        (found by query, whatever its record id) before fresh records are
        created. With ``verify``, returns how many read back with the
        expected status.
        """
        if not entities:
            return 0 if verify else None

        self.cleanup_duplicates()
        self._pause(self.propagation_delay)

        try:
            stale: List[str] = []
            for entity in entities:
                # Other clients may have written the id in upper case
                spellings = {str(entity.project_id), str(entity.project_id).upper()}
                for spelling in sorted(spellings):
                    matches = self.store.query(self.kind, projectId=spelling)
                    stale.extend(r.record_id for r in matches if r.record_id not in stale)
            if stale:
                result = self.store.delete(self.kind, stale)
                log.info("Force update removed %d %s records", len(result.succeeded), self.kind)
                if result.failed:
                    log.warning(
                        "Force update could not remove %d %s records: %s",
                        len(result.failed), self.kind, ", ".join(sorted(result.failed)),
                    )
        except RecordStoreError as e:
            raise SyncError(f"Failed to clear {self.kind} records: {e}") from e

        self._pause(self.propagation_delay)
        self.push(entities)

        forced = {self.natural_key(e): e for e in entities}
        stored = [e for e in self.load_local() if self.natural_key(e) not in forced]
        self.save_local(sorted(stored + list(entities), key=self.natural_key))

        if not verify:
            return None

        self._pause(self.verify_delay)
        expected = {self.natural_key(e): e.status for e in entities}
        found = self.fetch_by_ids(e.project_id for e in entities)
        verified = sum(1 for e in found if expected.get(self.natural_key(e)) == e.status)
        log.info("Force update verified %d/%d %s records", verified, len(entities), self.kind)
        return verified
