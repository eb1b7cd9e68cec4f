"""
Status enums for focused projects and focus tasks.

Values are the exact strings stored in snapshots and remote records.
"""

from enum import Enum


class ProjectStatus(str, Enum):
    INACTIVE = "Inactive"
    ACTIVE = "Active"


class TaskStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @property
    def color(self) -> str:
        return {
            TaskStatus.TODO: "gray",
            TaskStatus.IN_PROGRESS: "orange",
            TaskStatus.COMPLETED: "green",
        }[self]

    @property
    def description(self) -> str:
        return {
            TaskStatus.TODO: "Tasks waiting to be started",
            TaskStatus.IN_PROGRESS: "Tasks currently being worked on",
            TaskStatus.COMPLETED: "Finished tasks",
        }[self]
