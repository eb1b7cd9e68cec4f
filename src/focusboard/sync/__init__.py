from .base import EntitySyncManager, SyncError
from .focused_projects import FocusedProjectSyncManager
from .projects import ProjectSyncManager
from .service import SyncService, SyncSnapshot
from .tasks import FocusTaskSyncManager

__all__ = [
    "EntitySyncManager",
    "FocusTaskSyncManager",
    "FocusedProjectSyncManager",
    "ProjectSyncManager",
    "SyncError",
    "SyncService",
    "SyncSnapshot",
]
