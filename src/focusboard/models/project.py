"""
Project data model.

A project is a folder under the projects root. Its overview lives in
``<folder>/<name>.md``; devices without folder access use the cached
overview text that travels with the synced record instead.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from focusboard.utils.ids import normalize_folder_path, project_id_for_path


@dataclass
class Project:
    """A tracked project folder. ``id`` is derived from ``folder_path``."""

    name: str
    folder_path: str
    overview_content: Optional[str] = None
    id: uuid.UUID = field(init=False)

    def __post_init__(self) -> None:
        self.folder_path = normalize_folder_path(self.folder_path)
        self.id = project_id_for_path(self.folder_path)

    @classmethod
    def from_folder(cls, folder_path, overview_content: Optional[str] = None) -> Project:
        normalized = normalize_folder_path(folder_path)
        return cls(
            name=PurePosixPath(normalized).name,
            folder_path=normalized,
            overview_content=overview_content,
        )

    @property
    def overview_path(self) -> Path:
        return Path(self.folder_path) / f"{self.name}.md"

    @property
    def has_overview(self) -> bool:
        if self.overview_content is not None:
            return True
        return self.overview_path.exists()

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "folderPath": self.folder_path,
            "overviewContent": self.overview_content,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Project:
        """Rebuild a project; the id is always recomputed from the path."""
        name = data["name"]
        folder_path = data["folderPath"]
        if not isinstance(name, str) or not isinstance(folder_path, str) or not folder_path:
            raise ValueError("Project requires string name and folderPath")
        content = data.get("overviewContent")
        if content is not None and not isinstance(content, str):
            raise ValueError("overviewContent must be a string")
        return cls(name=name, folder_path=folder_path, overview_content=content)
