"""
Focus session manager.

Owns the in-memory focus state (projects, focused projects, tasks, slots)
and every user command on it. All mutations are serialised by one lock and
persisted to the local snapshot before a background sync is requested, so
a command never waits on the network.

Each persist bumps a generation counter that is handed to the sync service
as the request token. A completed pass is applied only if its token is the
latest generation; older passes are superseded by the newer local change
and only trigger a re-write of the local snapshot.
"""

import logging
import threading
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from focusboard.cache.snapshot import (
    LEGACY_FOCUS_TASKS,
    LEGACY_FOCUSED_PROJECTS,
    SHARED_FOCUS_TASKS,
    SHARED_FOCUSED_PROJECTS,
    SnapshotSource,
    SnapshotStore,
    first_non_empty,
)
from focusboard.models.focus import FocusedProject, ProjectSlot
from focusboard.models.project import Project
from focusboard.models.status import TaskStatus
from focusboard.models.task import FocusTask
from focusboard.parsers.checklist import count_open_items, extract_checklist, prepend_item, rename_item, set_item_completed
from focusboard.parsers.overview import NEXT_STEPS, OverviewStore
from focusboard.parsers.tags import project_tags
from focusboard.sync.base import SyncError
from focusboard.sync.focused_projects import status_aware_wins
from focusboard.utils.dates import parse_due_date, utcnow

log = logging.getLogger(__name__)

PROJECT_COLORS = ("blue", "green", "orange", "purple", "pink")
UNSLOTTED_COLOR = "gray"


def _dedupe_focused(focused: Iterable[FocusedProject]) -> List[FocusedProject]:
    """One FocusedProject per project id, chosen by the status-aware rule."""
    chosen: Dict[uuid.UUID, FocusedProject] = {}
    order: List[uuid.UUID] = []
    for fp in focused:
        current = chosen.get(fp.project_id)
        if current is None:
            order.append(fp.project_id)
            chosen[fp.project_id] = fp
        elif status_aware_wins(fp, current):
            chosen[fp.project_id] = fp
    return [chosen[pid] for pid in order]


class FocusManager:
    """
    Args:
        snapshots: local snapshot store
        sync: SyncService, or None for a local-only session
        overviews: overview reader/writer (defaults to the file-backed one)
        max_active: number of slots, and the hard cap on Active projects
        min_active: below this many Active projects the board nags
    """

    def __init__(
        self,
        snapshots: SnapshotStore,
        sync=None,
        overviews: Optional[OverviewStore] = None,
        max_active: int = 5,
        min_active: int = 3,
    ) -> None:
        self.snapshots = snapshots
        self.sync = sync
        self.overviews = overviews or OverviewStore()
        self.max_active = max_active
        self.min_active = min_active

        self.projects: List[Project] = []
        self.focused_projects: List[FocusedProject] = []
        self.tasks: List[FocusTask] = []
        self.slots: List[ProjectSlot] = []
        self._replacement_id: Optional[uuid.UUID] = None

        self._lock = threading.RLock()
        self._generation = 0

        if sync is not None:
            sync.subscribe(self.apply_sync_snapshot)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load state from the snapshot store, migrating legacy keys."""
        with self._lock:
            self.projects = self.snapshots.load_projects()

            source, focused = first_non_empty([
                SnapshotSource(SHARED_FOCUSED_PROJECTS, self.snapshots.load_focused_projects),
                SnapshotSource(LEGACY_FOCUSED_PROJECTS, self.snapshots.load_legacy_focused_projects),
            ])
            if source == LEGACY_FOCUSED_PROJECTS:
                self.snapshots.save_focused_projects(focused)
                log.info("Migrated %d focused projects from legacy storage", len(focused))
            self.focused_projects = _dedupe_focused(focused)

            source, tasks = first_non_empty([
                SnapshotSource(SHARED_FOCUS_TASKS, self.snapshots.load_tasks),
                SnapshotSource(LEGACY_FOCUS_TASKS, self.snapshots.load_legacy_tasks),
            ])
            if source == LEGACY_FOCUS_TASKS:
                self.snapshots.save_tasks(tasks)
                log.info("Migrated %d focus tasks from legacy storage", len(tasks))
            self.tasks = tasks

            self.slots = self.snapshots.load_slots()
            self.initialize_slots()
            log.info(
                "Loaded %d projects, %d focused (%d active), %d tasks, %d slots",
                len(self.projects), len(self.focused_projects),
                len(self._active()), len(self.tasks), len(self.slots),
            )

    def initialize_slots(self) -> None:
        """Create ``max_active`` empty slots if none exist yet."""
        with self._lock:
            if self.slots:
                return
            self.slots = [ProjectSlot() for _ in range(self.max_active)]
            for slot, fp in zip(self.slots, self._active()):
                slot.occupied_by = fp.project_id

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_project(self, project_id: uuid.UUID) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

    def get_focused(self, project_id: uuid.UUID) -> Optional[FocusedProject]:
        return next((f for f in self.focused_projects if f.project_id == project_id), None)

    def get_task(self, task_id: uuid.UUID) -> Optional[FocusTask]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def get_slot(self, slot_id: uuid.UUID) -> Optional[ProjectSlot]:
        return next((s for s in self.slots if s.id == slot_id), None)

    def project_name(self, project_id: uuid.UUID) -> str:
        project = self.get_project(project_id)
        return project.name if project else "Unknown Project"

    def project_tags(self, project_id: uuid.UUID) -> Set[str]:
        project = self.get_project(project_id)
        if project is None:
            return set()
        return project_tags(self.overviews.load(project))

    def _active(self) -> List[FocusedProject]:
        return [f for f in self.focused_projects if f.is_active]

    def _slot_of(self, project_id: uuid.UUID) -> Optional[ProjectSlot]:
        return next((s for s in self.slots if s.occupied_by == project_id), None)

    # ------------------------------------------------------------------
    # Project commands
    # ------------------------------------------------------------------

    def sync_with_projects(self, projects: Iterable[Project]) -> None:
        """Reconcile focus state with a fresh project scan."""
        with self._lock:
            self.projects = list(projects)
            present = {p.id for p in self.projects}

            known = {f.project_id for f in self.focused_projects}
            for project in self.projects:
                if project.id not in known:
                    self.focused_projects.append(FocusedProject.create(project.id))
                    log.info("Tracking new project %s", project.name)

            before = len(self.focused_projects)
            self.focused_projects = [f for f in self.focused_projects if f.project_id in present]
            if len(self.focused_projects) < before:
                log.info("Dropped %d focus records for removed projects", before - len(self.focused_projects))

            for slot in self.slots:
                if slot.occupied_by is not None and slot.occupied_by not in present:
                    slot.occupied_by = None

            self._rebuild_tasks()
            self._check_for_replacement()
            self._persist()

    def activate_project(self, project_id: uuid.UUID, slot_id: Optional[uuid.UUID] = None) -> bool:
        """
        Make a project Active in a slot.

        Rejected (returns False, nothing changes) when the project is
        unknown or already Active, when the Active cap is reached, or when
        no empty slot accepts the project's tags.
        """
        with self._lock:
            fp = self.get_focused(project_id)
            if fp is None or fp.is_active:
                return False
            if len(self._active()) >= self.max_active:
                log.info("Cannot activate %s: %d projects already active", project_id, self.max_active)
                return False

            tags = self.project_tags(project_id)
            if slot_id is not None:
                slot = self.get_slot(slot_id)
                if slot is None or not slot.is_empty or not slot.can_accept(tags):
                    slot = None
            else:
                slot = next(iter(self.available_slots(tags)), None)
            if slot is None:
                log.info("Cannot activate %s: no available slot for tags %s", project_id, sorted(tags))
                return False

            slot.occupied_by = project_id
            fp.activate()
            self._rebuild_tasks_for(project_id)
            self._persist()
            return True

    def deactivate_project(self, project_id: uuid.UUID) -> bool:
        with self._lock:
            fp = self.get_focused(project_id)
            if fp is None or not fp.is_active:
                return False
            slot = self._slot_of(project_id)
            if slot is not None:
                slot.occupied_by = None
            fp.deactivate()
            self.tasks = [t for t in self.tasks if t.project_id != project_id]
            if self._replacement_id == project_id:
                self._replacement_id = None
            self._persist()
            return True

    def mark_worked_on(self, project_id: uuid.UUID) -> bool:
        with self._lock:
            fp = self.get_focused(project_id)
            if fp is None:
                return False
            fp.mark_worked_on()
            self._persist()
            return True

    # ------------------------------------------------------------------
    # Task commands
    # ------------------------------------------------------------------

    def add_task(self, project_id: uuid.UUID, text: str, due: Optional[str] = None) -> Optional[FocusTask]:
        """
        Add a Todo task and prepend it to the project's Next Steps.

        Returns None for an unknown project.

        Raises:
            ValueError: empty text or an unparseable due date
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Task text must not be empty")
        due_date = None
        if due:
            due_date = parse_due_date(due)
            if due_date is None:
                raise ValueError(f"Unrecognised due date: {due!r}")

        with self._lock:
            fp = self.get_focused(project_id)
            if fp is None or self.get_project(project_id) is None:
                return None
            task = FocusTask(text=text, project_id=project_id, due_date=due_date)
            self.tasks.append(task)
            self._edit_checklist(project_id, lambda section: prepend_item(section, text))
            fp.mark_worked_on()
            self._persist()
            return task

    def update_task_status(self, task_id: uuid.UUID, status: TaskStatus) -> Optional[FocusTask]:
        with self._lock:
            task = self.get_task(task_id)
            if task is None:
                return None
            old_status = task.status
            task.update_status(status)

            fp = self.get_focused(task.project_id)
            if fp is not None:
                fp.mark_worked_on()

            text = task.display_text
            if status == TaskStatus.COMPLETED and old_status != TaskStatus.COMPLETED:
                on = task.completed_date
                self._edit_checklist(task.project_id, lambda s: set_item_completed(s, text, True, on))
            elif status != TaskStatus.COMPLETED and old_status == TaskStatus.COMPLETED:
                self._edit_checklist(task.project_id, lambda s: set_item_completed(s, text, False))

            self._check_for_replacement()
            self._persist()
            return task

    def update_task_text(self, task_id: uuid.UUID, text: str) -> Optional[FocusTask]:
        text = (text or "").strip()
        if not text:
            raise ValueError("Task text must not be empty")
        with self._lock:
            task = self.get_task(task_id)
            if task is None:
                return None
            old_text = task.display_text
            task.text = text
            task.last_modified = utcnow()
            self._edit_checklist(task.project_id, lambda s: rename_item(s, old_text, text))

            fp = self.get_focused(task.project_id)
            if fp is not None:
                fp.mark_worked_on()
            self._persist()
            return task

    def refresh_tasks_from_active_projects(self) -> None:
        with self._lock:
            self._rebuild_tasks()
            self._persist()

    def refresh_tasks_for_project(self, project_id: uuid.UUID) -> bool:
        with self._lock:
            if self.get_project(project_id) is None:
                return False
            self._rebuild_tasks_for(project_id)
            self._persist()
            return True

    def _edit_checklist(self, project_id: uuid.UUID, edit: Callable[[str], str]) -> None:
        project = self.get_project(project_id)
        if project is None:
            return
        try:
            section = self.overviews.get_section(project, NEXT_STEPS)
            self.overviews.update_section(project, NEXT_STEPS, edit(section))
        except OSError as e:
            log.warning("Could not update Next Steps for %s: %s", project.name, e)

    def _extract_tasks(
        self, project: Project, existing: Dict[Tuple[uuid.UUID, str], FocusTask]
    ) -> List[FocusTask]:
        """Tasks for one project's checklist, reusing known tasks by text."""
        section = self.overviews.get_section(project, NEXT_STEPS)
        tasks: List[FocusTask] = []
        used: Set[uuid.UUID] = set()
        for item in extract_checklist(section):
            previous = existing.get((project.id, item.text))
            if previous is not None and previous.id not in used:
                if item.completed and not previous.is_completed:
                    previous.status = TaskStatus.COMPLETED
                    previous.completed_date = item.completed_date or utcnow()
                    previous.last_modified = utcnow()
                used.add(previous.id)
                tasks.append(previous)
            else:
                tasks.append(FocusTask(
                    text=item.text,
                    project_id=project.id,
                    status=TaskStatus.COMPLETED if item.completed else TaskStatus.TODO,
                    completed_date=item.completed_date if item.completed else None,
                ))
        return tasks

    def _existing_tasks(self) -> Dict[Tuple[uuid.UUID, str], FocusTask]:
        return {(t.project_id, t.display_text): t for t in self.tasks}

    def _rebuild_tasks(self) -> None:
        existing = self._existing_tasks()
        rebuilt: List[FocusTask] = []
        for fp in self.active_projects:
            project = self.get_project(fp.project_id)
            if project is not None:
                rebuilt.extend(self._extract_tasks(project, existing))
        self.tasks = rebuilt

    def _rebuild_tasks_for(self, project_id: uuid.UUID) -> None:
        project = self.get_project(project_id)
        if project is None:
            return
        existing = self._existing_tasks()
        others = [t for t in self.tasks if t.project_id != project_id]
        self.tasks = others + self._extract_tasks(project, existing)

    # ------------------------------------------------------------------
    # Replacement policy
    # ------------------------------------------------------------------

    @property
    def project_needing_replacement(self) -> Optional[FocusedProject]:
        with self._lock:
            if self._replacement_id is None:
                return None
            return self.get_focused(self._replacement_id)

    def _clear_stale_replacement(self) -> None:
        if self._replacement_id is None:
            return
        pending = self.get_focused(self._replacement_id)
        if pending is None or not pending.is_active:
            log.info("Dropping replacement prompt for %s, no longer active", self._replacement_id)
            self._replacement_id = None

    def _check_for_replacement(self) -> None:
        self._clear_stale_replacement()
        if self._replacement_id is not None:
            return
        done = self.projects_with_no_active_tasks
        if done and self.inactive_projects:
            self._replacement_id = done[0].project_id
            log.info("Project %s has no open tasks, suggesting a replacement", self.project_name(self._replacement_id))

    def replace_project(self, old_project_id: uuid.UUID, new_project_id: uuid.UUID) -> bool:
        """Deactivate ``old`` and activate ``new``; returns the activation result."""
        with self._lock:
            self.deactivate_project(old_project_id)
            activated = self.activate_project(new_project_id)
            self._replacement_id = None
            return activated

    def keep_project(self, project_id: uuid.UUID) -> None:
        with self._lock:
            self._replacement_id = None

    def remove_project_without_replacement(self, project_id: uuid.UUID) -> bool:
        with self._lock:
            removed = self.deactivate_project(project_id)
            self._replacement_id = None
            return removed

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def _by_name(self, focused: Iterable[FocusedProject]) -> List[FocusedProject]:
        names = {p.id: p.name for p in self.projects}
        return sorted(focused, key=lambda f: names.get(f.project_id, "").casefold())

    @property
    def active_projects(self) -> List[FocusedProject]:
        with self._lock:
            return self._by_name(self._active())

    @property
    def inactive_projects(self) -> List[FocusedProject]:
        with self._lock:
            return self._by_name(f for f in self.focused_projects if not f.is_active)

    @property
    def todo_tasks(self) -> List[FocusTask]:
        with self._lock:
            todo = [t for t in self.tasks if t.status == TaskStatus.TODO]
        return sorted(todo, key=lambda t: t.created_date)

    @property
    def in_progress_tasks(self) -> List[FocusTask]:
        with self._lock:
            doing = [t for t in self.tasks if t.status == TaskStatus.IN_PROGRESS]
        return sorted(doing, key=lambda t: t.last_modified, reverse=True)

    @property
    def completed_tasks(self) -> List[FocusTask]:
        with self._lock:
            done = [t for t in self.tasks if t.status == TaskStatus.COMPLETED]
        return sorted(done, key=lambda t: t.last_modified, reverse=True)

    @property
    def is_over_active_limit(self) -> bool:
        return len(self.active_projects) > self.max_active

    @property
    def is_under_active_minimum(self) -> bool:
        return len(self.active_projects) < self.min_active

    @property
    def stale_active_projects(self) -> List[FocusedProject]:
        return [f for f in self.active_projects if f.is_stale]

    @property
    def projects_with_no_active_tasks(self) -> List[FocusedProject]:
        with self._lock:
            open_ids = {t.project_id for t in self.tasks if not t.is_completed}
            return [f for f in self.active_projects if f.project_id not in open_ids]

    def incomplete_task_count(self, project_id: uuid.UUID) -> int:
        with self._lock:
            fp = self.get_focused(project_id)
            if fp is not None and fp.is_active:
                return sum(1 for t in self.tasks if t.project_id == project_id and not t.is_completed)
            project = self.get_project(project_id)
            if project is None:
                return 0
            return count_open_items(self.overviews.get_section(project, NEXT_STEPS))

    def project_color(self, project_id: uuid.UUID) -> str:
        with self._lock:
            for index, slot in enumerate(self.slots):
                if slot.occupied_by == project_id:
                    return PROJECT_COLORS[index % len(PROJECT_COLORS)]
        return UNSLOTTED_COLOR

    def available_slots(self, tags: Iterable[str]) -> List[ProjectSlot]:
        tags = set(tags)
        with self._lock:
            return [s for s in self.slots if s.is_empty and s.can_accept(tags)]

    def update_slot_requirements(self, slot_id: uuid.UUID, tags: Iterable[str]) -> bool:
        with self._lock:
            slot = self.get_slot(slot_id)
            if slot is None:
                return False
            slot.required_tags = {t.lstrip("#") for t in tags if t.strip("# ")}
            self._persist()
            return True

    # ------------------------------------------------------------------
    # Persistence and sync
    # ------------------------------------------------------------------

    def _write_snapshot(self) -> None:
        self.snapshots.save_projects(self.projects)
        self.snapshots.save_focused_projects(self.focused_projects, mirror_legacy=True)
        self.snapshots.save_tasks(self.tasks, mirror_legacy=True)
        self.snapshots.save_slots(self.slots)

    def _persist(self) -> None:
        self._write_snapshot()
        self._generation += 1
        if self.sync is not None:
            self.sync.request_sync(token=self._generation)

    @property
    def generation(self) -> int:
        return self._generation

    def _fit_slots(self) -> None:
        """Free slots whose occupant is no longer Active; seat unslotted Active projects."""
        active_ids = {f.project_id for f in self._active()}
        for slot in self.slots:
            if slot.occupied_by is not None and slot.occupied_by not in active_ids:
                slot.occupied_by = None
        for fp in self._active():
            if self._slot_of(fp.project_id) is not None:
                continue
            slot = next(iter(self.available_slots(self.project_tags(fp.project_id))), None)
            if slot is not None:
                slot.occupied_by = fp.project_id

    def apply_sync_snapshot(self, snapshot, token: Optional[int] = None) -> bool:
        """
        Replace in-memory collections with the result of a sync pass.

        Returns False when a newer local change superseded the pass; the
        local snapshot is then rewritten from memory so the next pass sees
        the newer state.
        """
        with self._lock:
            if token is not None and token != self._generation:
                log.info("Ignoring sync result %s, local state is at %s", token, self._generation)
                self._write_snapshot()
                return False
            self.projects = list(snapshot.projects)
            self.focused_projects = _dedupe_focused(snapshot.focused_projects)
            self.tasks = list(snapshot.tasks)
            self._fit_slots()
            self._clear_stale_replacement()
            self.snapshots.save_slots(self.slots)
            return True

    def force_sync(self) -> str:
        """Persist, run a full pass now, and return the sync status."""
        if self.sync is None:
            return "Unknown"
        with self._lock:
            self._write_snapshot()
            token = self._generation
        try:
            self.sync.sync_all(token=token)
        except SyncError as e:
            log.warning("Forced sync failed: %s", e)
        return self.sync.status
