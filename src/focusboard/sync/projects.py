"""Project sync: the folder scan on this device is authoritative."""

import logging

from focusboard.cache.snapshot import SHARED_PROJECTS
from focusboard.models.project import Project
from focusboard.store.record_store import PROJECT_KIND, Record
from focusboard.sync.base import EntitySyncManager

log = logging.getLogger(__name__)


class ProjectSyncManager(EntitySyncManager[Project]):
    kind = PROJECT_KIND
    snapshot_key = SHARED_PROJECTS

    def natural_key(self, entity: Project) -> str:
        return str(entity.id)

    def prefer_local(self, local: Project, remote: Project) -> bool:
        return True

    def to_record(self, entity: Project) -> Record:
        fields = {
            "id": str(entity.id),
            "name": entity.name,
            "folderPath": entity.folder_path,
            "syncType": self.sync_type,
        }
        content = self._overview_text(entity)
        if content is not None:
            fields["overviewContent"] = content
        return Record(kind=self.kind, record_id=str(entity.id), fields=fields)

    def decode_record(self, record: Record) -> Project:
        return Project.from_dict(record.fields)

    def decode_snapshot(self, data: dict) -> Project:
        return Project.from_dict(data)

    @staticmethod
    def _overview_text(entity: Project):
        path = entity.overview_path
        try:
            if path.is_file():
                return path.read_text(encoding="utf-8")
        except OSError as e:
            log.debug("Could not read overview %s: %s", path, e)
        return entity.overview_content
