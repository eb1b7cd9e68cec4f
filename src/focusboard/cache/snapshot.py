"""
Local snapshot store.

Every collection is persisted as one JSON array under one key, written in a
single ``set``. Shared keys live in the shared namespace that companion
processes read; the legacy keys predate it and are still written for them.

Reads never raise on bad data: an undecodable value counts as "no data"
and individual malformed items are dropped with a warning.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from focusboard.cache.kv_store import KeyValueStore
from focusboard.models.focus import FocusedProject, ProjectSlot
from focusboard.models.project import Project
from focusboard.models.task import FocusTask
from focusboard.utils.dates import parse_iso, to_iso

log = logging.getLogger(__name__)

T = TypeVar("T")

SHARED_PROJECTS = "shared_projects"
SHARED_FOCUSED_PROJECTS = "shared_focusedProjects"
SHARED_FOCUS_TASKS = "shared_focusTasks"
LEGACY_FOCUSED_PROJECTS = "focusedProjects"
LEGACY_FOCUS_TASKS = "focusTasks"
PROJECT_SLOTS = "projectSlots"
LAST_SYNC = "lastSync"

SHARED_KEYS = frozenset({SHARED_PROJECTS, SHARED_FOCUSED_PROJECTS, SHARED_FOCUS_TASKS, LAST_SYNC})


@dataclass(frozen=True)
class SnapshotSource:
    """One place a collection may be loaded from, tried in list order."""

    name: str
    loader: Callable[[], list]


def first_non_empty(sources: Sequence[SnapshotSource]) -> Tuple[Optional[str], list]:
    """Return (source name, items) for the first source with data."""
    for source in sources:
        items = source.loader()
        if items:
            log.debug("Loaded %d items from %s", len(items), source.name)
            return source.name, items
    return None, []


class SnapshotStore:
    """
    Typed access to the persisted collections.

    Args:
        shared: namespace visible to companion processes
        local: namespace for legacy keys and slots (defaults to ``shared``)
    """

    def __init__(self, shared: KeyValueStore, local: Optional[KeyValueStore] = None) -> None:
        self.shared = shared
        self.local = local or shared

    def _store_for(self, key: str) -> KeyValueStore:
        return self.shared if key in SHARED_KEYS else self.local

    # ------------------------------------------------------------------
    # Raw arrays
    # ------------------------------------------------------------------

    def read_array(self, key: str) -> list:
        raw = self._store_for(key).get(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            log.warning("Snapshot %s is not valid JSON, treating as empty: %s", key, e)
            return []
        if not isinstance(data, list):
            log.warning("Snapshot %s is not an array, treating as empty", key)
            return []
        return data

    def write_array(self, key: str, items: list) -> None:
        payload = json.dumps(items).encode("utf-8")
        self._store_for(key).set(key, payload)
        log.debug("Wrote %d items to %s", len(items), key)

    def read_items(self, key: str, decode: Callable[[dict], T]) -> List[T]:
        items: List[T] = []
        for raw in self.read_array(key):
            try:
                if not isinstance(raw, dict):
                    raise TypeError(f"expected object, got {type(raw).__name__}")
                items.append(decode(raw))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("Dropping malformed item in %s: %s", key, e)
        return items

    def write_items(self, key: str, items: Sequence) -> None:
        self.write_array(key, [item.to_dict() for item in items])

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def load_projects(self) -> List[Project]:
        return self.read_items(SHARED_PROJECTS, Project.from_dict)

    def save_projects(self, projects: Sequence[Project]) -> None:
        self.write_items(SHARED_PROJECTS, projects)

    def load_focused_projects(self) -> List[FocusedProject]:
        return self.read_items(SHARED_FOCUSED_PROJECTS, FocusedProject.from_dict)

    def load_legacy_focused_projects(self) -> List[FocusedProject]:
        return self.read_items(LEGACY_FOCUSED_PROJECTS, FocusedProject.from_dict)

    def save_focused_projects(self, focused: Sequence[FocusedProject], mirror_legacy: bool = False) -> None:
        self.write_items(SHARED_FOCUSED_PROJECTS, focused)
        if mirror_legacy:
            self.write_items(LEGACY_FOCUSED_PROJECTS, focused)

    def load_tasks(self) -> List[FocusTask]:
        return self.read_items(SHARED_FOCUS_TASKS, FocusTask.from_dict)

    def load_legacy_tasks(self) -> List[FocusTask]:
        return self.read_items(LEGACY_FOCUS_TASKS, FocusTask.from_dict)

    def save_tasks(self, tasks: Sequence[FocusTask], mirror_legacy: bool = False) -> None:
        self.write_items(SHARED_FOCUS_TASKS, tasks)
        if mirror_legacy:
            self.write_items(LEGACY_FOCUS_TASKS, tasks)

    def load_slots(self) -> List[ProjectSlot]:
        return self.read_items(PROJECT_SLOTS, ProjectSlot.from_dict)

    def save_slots(self, slots: Sequence[ProjectSlot]) -> None:
        self.write_items(PROJECT_SLOTS, slots)

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    def load_last_sync(self) -> Optional[datetime]:
        raw = self.shared.get(LAST_SYNC)
        if raw is None:
            return None
        try:
            return parse_iso(raw.decode("utf-8"))
        except (ValueError, UnicodeDecodeError):
            log.warning("Ignoring unreadable %s value", LAST_SYNC)
            return None

    def save_last_sync(self, when: datetime) -> None:
        self.shared.set(LAST_SYNC, to_iso(when).encode("utf-8"))
