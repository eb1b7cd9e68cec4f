"""
Focus data models: the per-project focus record and capacity slots.

Exactly one FocusedProject per project id is authoritative. Slots bound how
many projects can be Active and can reserve capacity for tagged projects.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional, Set

from focusboard.models.status import ProjectStatus
from focusboard.utils.dates import parse_iso, to_iso, utcnow
from focusboard.utils.ids import new_id, parse_uuid

STALE_AFTER = timedelta(days=7)


@dataclass
class FocusedProject:
    """Focus state of one project."""

    project_id: uuid.UUID
    status: ProjectStatus = ProjectStatus.INACTIVE
    priority: int = 0
    last_worked_on: Optional[datetime] = None
    activated_date: Optional[datetime] = None
    id: uuid.UUID = field(default_factory=new_id)

    @classmethod
    def create(
        cls, project_id: uuid.UUID, status: ProjectStatus = ProjectStatus.INACTIVE, priority: int = 0
    ) -> FocusedProject:
        return cls(
            project_id=project_id,
            status=status,
            priority=priority,
            activated_date=utcnow() if status == ProjectStatus.ACTIVE else None,
        )

    @property
    def is_active(self) -> bool:
        return self.status == ProjectStatus.ACTIVE

    @property
    def activity_date(self) -> Optional[datetime]:
        """Most meaningful timestamp: last worked on, else activation."""
        return self.last_worked_on or self.activated_date

    @property
    def is_stale(self) -> bool:
        if not self.is_active or self.last_worked_on is None:
            return False
        return utcnow() - self.last_worked_on >= STALE_AFTER

    def activate(self) -> None:
        now = utcnow()
        self.status = ProjectStatus.ACTIVE
        self.activated_date = now
        self.last_worked_on = now

    def deactivate(self) -> None:
        self.status = ProjectStatus.INACTIVE
        self.activated_date = None

    def mark_worked_on(self) -> None:
        self.last_worked_on = utcnow()

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "projectId": str(self.project_id),
            "status": self.status.value,
            "priority": self.priority,
            "lastWorkedOn": to_iso(self.last_worked_on),
            "activatedDate": to_iso(self.activated_date),
        }

    @classmethod
    def from_dict(cls, data: dict) -> FocusedProject:
        return cls(
            id=parse_uuid(data["id"]) if data.get("id") else new_id(),
            project_id=parse_uuid(data["projectId"]),
            status=ProjectStatus(data.get("status") or ProjectStatus.INACTIVE.value),
            priority=int(data.get("priority") or 0),
            last_worked_on=parse_iso(data.get("lastWorkedOn")),
            activated_date=parse_iso(data.get("activatedDate")),
        )


@dataclass
class ProjectSlot:
    """
    A unit of Active capacity.

    An empty ``required_tags`` set accepts any project; otherwise a project
    qualifies when it carries at least one of the required tags.
    """

    required_tags: Set[str] = field(default_factory=set)
    occupied_by: Optional[uuid.UUID] = None
    id: uuid.UUID = field(default_factory=new_id)

    @property
    def is_empty(self) -> bool:
        return self.occupied_by is None

    @property
    def has_requirements(self) -> bool:
        return bool(self.required_tags)

    def can_accept(self, project_tags: Iterable[str]) -> bool:
        if not self.required_tags:
            return True
        return not self.required_tags.isdisjoint(project_tags)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "requiredTags": sorted(self.required_tags),
            "occupiedBy": str(self.occupied_by) if self.occupied_by else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ProjectSlot:
        tags = data.get("requiredTags") or []
        if not isinstance(tags, list):
            raise ValueError("requiredTags must be a list")
        occupied = data.get("occupiedBy")
        return cls(
            id=parse_uuid(data["id"]),
            required_tags={str(t) for t in tags},
            occupied_by=parse_uuid(occupied) if occupied else None,
        )
