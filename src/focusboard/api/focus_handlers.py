"""Focus board handler functions shared by MCP tools and REST API."""

import logging
import uuid
from typing import Callable, Iterable, List, Optional, Union

from focusboard.models.focus import FocusedProject, ProjectSlot
from focusboard.models.project import Project
from focusboard.models.status import TaskStatus
from focusboard.models.task import FocusTask
from focusboard.parsers.tags import extract_tags, format_tags
from focusboard.sync.base import SyncError
from focusboard.utils.dates import to_iso
from focusboard.utils.ids import parse_uuid

log = logging.getLogger(__name__)

_STATUS_ALIASES = {
    "todo": TaskStatus.TODO,
    "to do": TaskStatus.TODO,
    "to-do": TaskStatus.TODO,
    "open": TaskStatus.TODO,
    "in progress": TaskStatus.IN_PROGRESS,
    "in-progress": TaskStatus.IN_PROGRESS,
    "in_progress": TaskStatus.IN_PROGRESS,
    "doing": TaskStatus.IN_PROGRESS,
    "completed": TaskStatus.COMPLETED,
    "complete": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
}


def parse_task_status(value: str) -> TaskStatus:
    """Accept "To Do"/"todo", "In Progress"/"in-progress", "Completed"/"done"."""
    status = _STATUS_ALIASES.get((value or "").strip().lower())
    if status is None:
        raise ValueError(f"Unknown task status: {value!r}")
    return status


def _id(value: str, what: str) -> uuid.UUID:
    try:
        return parse_uuid(value)
    except ValueError:
        raise ValueError(f"Invalid {what} id: {value!r}")


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def _project_to_dict(manager, fp: FocusedProject) -> dict:
    project = manager.get_project(fp.project_id)
    return {
        "project_id": str(fp.project_id),
        "name": project.name if project else None,
        "folder_path": project.folder_path if project else None,
        "status": fp.status.value,
        "priority": fp.priority,
        "last_worked_on": to_iso(fp.last_worked_on),
        "activated_date": to_iso(fp.activated_date),
        "is_stale": fp.is_stale,
        "color": manager.project_color(fp.project_id),
        "tags": sorted(manager.project_tags(fp.project_id)),
        "incomplete_tasks": manager.incomplete_task_count(fp.project_id),
    }


def _task_to_dict(manager, task: FocusTask) -> dict:
    return {
        "id": str(task.id),
        "text": task.display_text,
        "status": task.status.value,
        "project_id": str(task.project_id),
        "project_name": manager.project_name(task.project_id),
        "color": manager.project_color(task.project_id),
        "due_date": to_iso(task.due_date),
        "completed_date": to_iso(task.completed_date),
        "created_date": to_iso(task.created_date),
        "last_modified": to_iso(task.last_modified),
    }


def _slot_to_dict(manager, index: int, slot: ProjectSlot) -> dict:
    return {
        "id": str(slot.id),
        "index": index,
        "required_tags": sorted(slot.required_tags),
        "has_requirements": slot.has_requirements,
        "requirements": format_tags(sorted(slot.required_tags)),
        "occupied_by": str(slot.occupied_by) if slot.occupied_by else None,
        "project_name": manager.project_name(slot.occupied_by) if slot.occupied_by else None,
    }


# ---------------------------------------------------------------------------
# Board and projects
# ---------------------------------------------------------------------------

def handle_focus_board(manager) -> dict:
    replacement = manager.project_needing_replacement
    return {
        "active": [_project_to_dict(manager, fp) for fp in manager.active_projects],
        "todo": [_task_to_dict(manager, t) for t in manager.todo_tasks],
        "in_progress": [_task_to_dict(manager, t) for t in manager.in_progress_tasks],
        "completed": [_task_to_dict(manager, t) for t in manager.completed_tasks],
        "max_active": manager.max_active,
        "min_active": manager.min_active,
        "is_over_active_limit": manager.is_over_active_limit,
        "is_under_active_minimum": manager.is_under_active_minimum,
        "stale_projects": [str(fp.project_id) for fp in manager.stale_active_projects],
        "project_needing_replacement": str(replacement.project_id) if replacement else None,
        "columns": [
            {"status": s.value, "color": s.color, "description": s.description}
            for s in TaskStatus
        ],
    }


def handle_project_list(manager, *, status: Optional[str] = None) -> List[dict]:
    if status is None:
        focused = manager.active_projects + manager.inactive_projects
    elif status.lower() == "active":
        focused = manager.active_projects
    elif status.lower() == "inactive":
        focused = manager.inactive_projects
    else:
        raise ValueError(f"Unknown project status: {status!r}")
    return [_project_to_dict(manager, fp) for fp in focused]


def handle_activate(manager, *, project_id: str, slot_id: Optional[str] = None) -> dict:
    pid = _id(project_id, "project")
    sid = _id(slot_id, "slot") if slot_id else None
    if manager.get_focused(pid) is None:
        return {"error": f"Project '{project_id}' not found"}
    if not manager.activate_project(pid, sid):
        return {"activated": False, "reason": "No capacity or no slot accepts this project"}
    result = _project_to_dict(manager, manager.get_focused(pid))
    result["activated"] = True
    return result


def handle_deactivate(manager, *, project_id: str) -> dict:
    pid = _id(project_id, "project")
    if manager.get_focused(pid) is None:
        return {"error": f"Project '{project_id}' not found"}
    deactivated = manager.deactivate_project(pid)
    result = _project_to_dict(manager, manager.get_focused(pid))
    result["deactivated"] = deactivated
    return result


def handle_worked_on(manager, *, project_id: str) -> dict:
    pid = _id(project_id, "project")
    if not manager.mark_worked_on(pid):
        return {"error": f"Project '{project_id}' not found"}
    return _project_to_dict(manager, manager.get_focused(pid))


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

def handle_task_list(manager, *, status: Optional[str] = None, project_id: Optional[str] = None) -> List[dict]:
    if status:
        wanted = parse_task_status(status)
        tasks = {
            TaskStatus.TODO: manager.todo_tasks,
            TaskStatus.IN_PROGRESS: manager.in_progress_tasks,
            TaskStatus.COMPLETED: manager.completed_tasks,
        }[wanted]
    else:
        tasks = manager.todo_tasks + manager.in_progress_tasks + manager.completed_tasks
    if project_id:
        pid = _id(project_id, "project")
        tasks = [t for t in tasks if t.project_id == pid]
    return [_task_to_dict(manager, t) for t in tasks]


def handle_task_add(manager, *, project_id: str, text: str, due: Optional[str] = None) -> dict:
    pid = _id(project_id, "project")
    task = manager.add_task(pid, text, due=due)
    if task is None:
        return {"error": f"Project '{project_id}' not found"}
    return _task_to_dict(manager, task)


def handle_task_update(
    manager,
    *,
    task_id: str,
    status: Optional[str] = None,
    text: Optional[str] = None,
) -> dict:
    tid = _id(task_id, "task")
    task = manager.get_task(tid)
    if task is None:
        return {"error": f"Task '{task_id}' not found"}
    if text is not None:
        task = manager.update_task_text(tid, text)
    if status is not None:
        task = manager.update_task_status(tid, parse_task_status(status))
    return _task_to_dict(manager, task)


# ---------------------------------------------------------------------------
# Replacement
# ---------------------------------------------------------------------------

def handle_replacement_get(manager) -> dict:
    fp = manager.project_needing_replacement
    if fp is None:
        return {"project": None, "candidates": []}
    return {
        "project": _project_to_dict(manager, fp),
        "candidates": [_project_to_dict(manager, c) for c in manager.inactive_projects],
    }


def handle_replace(manager, *, old_project_id: str, new_project_id: str) -> dict:
    old_id = _id(old_project_id, "project")
    new_id = _id(new_project_id, "project")
    for pid, raw in ((old_id, old_project_id), (new_id, new_project_id)):
        if manager.get_focused(pid) is None:
            return {"error": f"Project '{raw}' not found"}
    activated = manager.replace_project(old_id, new_id)
    return {
        "replaced": str(old_id),
        "activated": activated,
        "project": _project_to_dict(manager, manager.get_focused(new_id)),
    }


def handle_keep(manager, *, project_id: str, remove: bool = False) -> dict:
    """Dismiss the replacement prompt, optionally deactivating the project."""
    pid = _id(project_id, "project")
    if manager.get_focused(pid) is None:
        return {"error": f"Project '{project_id}' not found"}
    if remove:
        manager.remove_project_without_replacement(pid)
    else:
        manager.keep_project(pid)
    return _project_to_dict(manager, manager.get_focused(pid))


# ---------------------------------------------------------------------------
# Slots
# ---------------------------------------------------------------------------

def handle_slots(manager) -> List[dict]:
    return [_slot_to_dict(manager, i, s) for i, s in enumerate(manager.slots)]


def handle_slot_update(manager, *, slot_id: str, required_tags: Union[str, Iterable[str]]) -> dict:
    sid = _id(slot_id, "slot")
    if isinstance(required_tags, str):
        tags = extract_tags(required_tags) or [t.strip() for t in required_tags.split(",") if t.strip()]
    else:
        tags = list(required_tags)
    if not manager.update_slot_requirements(sid, tags):
        return {"error": f"Slot '{slot_id}' not found"}
    index = next(i for i, s in enumerate(manager.slots) if s.id == sid)
    return _slot_to_dict(manager, index, manager.slots[index])


# ---------------------------------------------------------------------------
# Sync and scanning
# ---------------------------------------------------------------------------

def handle_sync_status(sync) -> dict:
    if sync is None:
        return {"status": "Unknown", "last_sync_date": None, "is_syncing": False}
    return sync.status_dict()


def handle_force_sync(manager) -> dict:
    status = manager.force_sync()
    result = handle_sync_status(manager.sync)
    result["status"] = status
    return result


def handle_force_update_active(sync) -> dict:
    if sync is None:
        return {"error": "Sync is not configured"}
    try:
        verified = sync.force_update_active_projects()
    except SyncError as e:
        return {"error": str(e), "status": sync.status}
    return {"verified": verified, "status": sync.status}


def handle_scan(manager, rescan: Optional[Callable[[], List[Project]]]) -> dict:
    if rescan is None:
        return {"error": "No projects root configured"}
    projects = rescan()
    manager.sync_with_projects(projects)
    return {
        "projects": len(projects),
        "active": len(manager.active_projects),
        "tasks": len(manager.tasks),
    }
