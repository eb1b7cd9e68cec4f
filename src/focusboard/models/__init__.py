from .focus import FocusedProject, ProjectSlot
from .project import Project
from .status import ProjectStatus, TaskStatus
from .task import FocusTask

__all__ = [
    "Project",
    "FocusedProject",
    "ProjectSlot",
    "FocusTask",
    "ProjectStatus",
    "TaskStatus",
]
