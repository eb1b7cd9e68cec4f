"""Focus task sync: the side modified last wins, ties keep the local copy."""

from focusboard.cache.snapshot import SHARED_FOCUS_TASKS
from focusboard.models.status import TaskStatus
from focusboard.models.task import FocusTask
from focusboard.store.record_store import FOCUS_TASK_KIND, Record
from focusboard.sync.base import EntitySyncManager
from focusboard.utils.dates import parse_iso, to_iso, utcnow
from focusboard.utils.ids import parse_uuid


class FocusTaskSyncManager(EntitySyncManager[FocusTask]):
    kind = FOCUS_TASK_KIND
    snapshot_key = SHARED_FOCUS_TASKS

    def natural_key(self, entity: FocusTask) -> str:
        return str(entity.id)

    def prefer_local(self, local: FocusTask, remote: FocusTask) -> bool:
        return local.last_modified >= remote.last_modified

    def to_record(self, entity: FocusTask) -> Record:
        fields = {
            "id": str(entity.id),
            "text": entity.display_text,
            "status": entity.status.value,
            "projectId": str(entity.project_id),
            "lastModified": to_iso(entity.last_modified),
            "createdDate": to_iso(entity.created_date),
            "syncType": self.sync_type,
        }
        if entity.due_date:
            fields["dueDate"] = to_iso(entity.due_date)
        if entity.completed_date:
            fields["completedDate"] = to_iso(entity.completed_date)
        return Record(kind=self.kind, record_id=str(entity.id), fields=fields)

    def decode_record(self, record: Record) -> FocusTask:
        fields = record.fields
        text = fields["text"]
        if not isinstance(text, str) or not text.strip():
            raise ValueError("task text is missing")
        last_modified = parse_iso(fields.get("lastModified")) or record.modified_at or utcnow()
        return FocusTask(
            id=parse_uuid(fields.get("id") or record.record_id),
            text=text,
            project_id=parse_uuid(fields["projectId"]),
            status=TaskStatus(fields["status"]),
            due_date=parse_iso(fields.get("dueDate")),
            completed_date=parse_iso(fields.get("completedDate")),
            created_date=parse_iso(fields.get("createdDate")) or record.created_at or last_modified,
            last_modified=last_modified,
        )

    def decode_snapshot(self, data: dict) -> FocusTask:
        return FocusTask.from_dict(data)
