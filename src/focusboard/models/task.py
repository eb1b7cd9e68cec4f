"""
Focus task data model.

Tasks are derived from the checklist in a project's Next Steps section and
can always be rebuilt from it. What the user layers on top (status and
completion date) survives rebuilds by matching on project id + display
text.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from focusboard.models.status import TaskStatus
from focusboard.utils.dates import parse_iso, to_iso, utcnow
from focusboard.utils.ids import new_id, parse_uuid

_CHECKBOX_PREFIXES = ("- [ ] ", "- [x] ", "- [X] ")


def strip_checkbox(text: str) -> str:
    """Remove markdown checkbox markers and surrounding whitespace."""
    for prefix in _CHECKBOX_PREFIXES:
        text = text.replace(prefix, "")
    return text.strip()


@dataclass
class FocusTask:
    """A single card on the focus board."""

    text: str
    project_id: uuid.UUID
    status: TaskStatus = TaskStatus.TODO
    due_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    created_date: datetime = field(default_factory=utcnow)
    last_modified: datetime = field(default_factory=utcnow)
    id: uuid.UUID = field(default_factory=new_id)

    @property
    def display_text(self) -> str:
        return strip_checkbox(self.text)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def update_status(self, new_status: TaskStatus) -> None:
        """
        Move to a new status.

        ``last_modified`` is bumped on every transition since the sync merge
        picks the side with the later timestamp.
        """
        self.status = new_status
        self.last_modified = utcnow()
        if new_status == TaskStatus.COMPLETED:
            if self.completed_date is None:
                self.completed_date = self.last_modified
        else:
            self.completed_date = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "text": self.text,
            "status": self.status.value,
            "projectId": str(self.project_id),
            "dueDate": to_iso(self.due_date),
            "completedDate": to_iso(self.completed_date),
            "createdDate": to_iso(self.created_date),
            "lastModified": to_iso(self.last_modified),
        }

    @classmethod
    def from_dict(cls, data: dict) -> FocusTask:
        text = data["text"]
        if not isinstance(text, str):
            raise ValueError("text must be a string")
        created = parse_iso(data.get("createdDate")) or utcnow()
        return cls(
            id=parse_uuid(data["id"]),
            text=text,
            project_id=parse_uuid(data["projectId"]),
            status=TaskStatus(data["status"]),
            due_date=parse_iso(data.get("dueDate")),
            completed_date=parse_iso(data.get("completedDate")),
            created_date=created,
            last_modified=parse_iso(data.get("lastModified")) or created,
        )
