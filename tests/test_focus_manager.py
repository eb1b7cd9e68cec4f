"""
Tests for focus/manager.py.

Uses a temporary projects root on disk and in-memory snapshots.

Covers:
- Reconciling focus state with project scans
- Activation rules: capacity, slots, tag requirements
- Task extraction, identity across rebuilds, checklist write-back
- Replacement prompts (singleton, keep, replace, remove)
- Legacy snapshot migration and duplicate collapse on load
- Applying sync results, including stale results
- The end-to-end activation scenario
"""

import json
import logging
import shutil
import sys
import uuid
from datetime import timedelta
from pathlib import Path
from unittest.mock import Mock

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from focusboard.cache.kv_store import MemoryKeyValueStore
from focusboard.cache.snapshot import LEGACY_FOCUSED_PROJECTS, SHARED_FOCUSED_PROJECTS, SnapshotStore
from focusboard.focus.manager import UNSLOTTED_COLOR, FocusManager
from focusboard.models.focus import FocusedProject
from focusboard.models.status import ProjectStatus, TaskStatus
from focusboard.parsers.overview import NEXT_STEPS, get_section
from focusboard.parsers.project_scanner import scan_projects
from focusboard.store.sqlite_store import SqliteRecordStore
from focusboard.sync.service import SyncService, SyncSnapshot
from focusboard.utils.dates import format_day, utcnow


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _write_project(root: Path, name: str, steps, tags: str = "") -> Path:
    folder = root / name
    folder.mkdir(parents=True, exist_ok=True)
    text = f"# {name}\n\n## Next Steps\n" + "\n".join(steps) + "\n\n## Tags\n" + tags + "\n"
    (folder / f"{name}.md").write_text(text, encoding="utf-8")
    return folder


def _make_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    root.mkdir()
    _write_project(root, "Alpha", ["- [ ] Write intro", "- [ ] Fix login bug"], "#music")
    _write_project(root, "Beta", ["- [ ] Draft outline"])
    _write_project(root, "Gamma", ["- [ ] Record demo", "- [x] Buy mic (2026-02-01)"], "#music #audio")
    _write_project(root, "Delta", ["- [ ] Sketch"])
    return root


def _overview(root: Path, name: str) -> str:
    return (root / name / f"{name}.md").read_text(encoding="utf-8")


def _make_manager(root: Path, snapshots=None, **kwargs) -> FocusManager:
    manager = FocusManager(snapshots or SnapshotStore(MemoryKeyValueStore()), **kwargs)
    manager.load()
    manager.sync_with_projects(scan_projects(root))
    return manager


def _pid(manager: FocusManager, name: str) -> uuid.UUID:
    return next(p.id for p in manager.projects if p.name == name)


@pytest.fixture
def root(tmp_path):
    return _make_root(tmp_path)


@pytest.fixture
def manager(root):
    return _make_manager(root)


# ---------------------------------------------------------------------------
# Projects and activation
# ---------------------------------------------------------------------------

class TestProjects:
    def test_new_projects_tracked_inactive(self, manager):
        assert len(manager.focused_projects) == 4
        assert manager.active_projects == []
        assert [manager.project_name(f.project_id) for f in manager.inactive_projects] == [
            "Alpha", "Beta", "Delta", "Gamma",
        ]

    def test_slots_initialised(self, manager):
        assert len(manager.slots) == 5
        assert all(s.is_empty for s in manager.slots)

    def test_removed_project_dropped(self, manager, root):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        remaining = [p for p in scan_projects(root) if p.name != "Alpha"]
        manager.sync_with_projects(remaining)
        assert manager.get_focused(alpha) is None
        assert all(s.occupied_by != alpha for s in manager.slots)

    def test_rescan_keeps_focus_state(self, manager, root):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        manager.sync_with_projects(scan_projects(root))
        assert manager.get_focused(alpha).is_active
        assert len(manager.focused_projects) == 4

    def test_unknown_project_name(self, manager):
        assert manager.project_name(uuid.uuid4()) == "Unknown Project"


class TestActivation:
    def test_activate_fills_slot_and_tasks(self, manager):
        alpha = _pid(manager, "Alpha")
        assert manager.activate_project(alpha)
        assert manager.get_focused(alpha).is_active
        assert manager.slots[0].occupied_by == alpha
        assert manager.project_color(alpha) == "blue"
        assert [t.display_text for t in manager.todo_tasks] == ["Write intro", "Fix login bug"]

    def test_activate_twice_rejected(self, manager):
        alpha = _pid(manager, "Alpha")
        assert manager.activate_project(alpha)
        assert not manager.activate_project(alpha)

    def test_unknown_project_rejected(self, manager):
        assert not manager.activate_project(uuid.uuid4())

    def test_capacity_invariant(self, root):
        manager = _make_manager(root, max_active=2)
        results = [manager.activate_project(_pid(manager, n)) for n in ("Alpha", "Beta", "Gamma", "Delta")]
        assert results == [True, True, False, False]
        assert len(manager.active_projects) == 2
        assert not manager.get_focused(_pid(manager, "Gamma")).is_active

    def test_tag_requirement(self, root):
        manager = _make_manager(root, max_active=1)
        manager.update_slot_requirements(manager.slots[0].id, ["#music"])
        assert not manager.activate_project(_pid(manager, "Beta"))
        assert manager.activate_project(_pid(manager, "Alpha"))

    def test_explicit_slot(self, manager):
        beta = _pid(manager, "Beta")
        target = manager.slots[3]
        assert manager.activate_project(beta, target.id)
        assert target.occupied_by == beta
        assert manager.project_color(beta) == "purple"

    def test_explicit_slot_must_accept(self, manager):
        beta = _pid(manager, "Beta")
        manager.update_slot_requirements(manager.slots[0].id, ["music"])
        assert not manager.activate_project(beta, manager.slots[0].id)
        assert not manager.activate_project(beta, uuid.uuid4())

    def test_deactivate(self, manager):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        assert manager.deactivate_project(alpha)
        assert not manager.get_focused(alpha).is_active
        assert manager.tasks == []
        assert all(s.is_empty for s in manager.slots)
        assert manager.project_color(alpha) == UNSLOTTED_COLOR
        assert not manager.deactivate_project(alpha)

    def test_mark_worked_on(self, manager):
        alpha = _pid(manager, "Alpha")
        assert manager.mark_worked_on(alpha)
        assert manager.get_focused(alpha).last_worked_on is not None
        assert not manager.mark_worked_on(uuid.uuid4())


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class TestTasks:
    def test_completed_items_extracted_as_completed(self, manager):
        manager.activate_project(_pid(manager, "Gamma"))
        assert [t.display_text for t in manager.completed_tasks] == ["Buy mic"]
        assert format_day(manager.completed_tasks[0].completed_date) == "2026-02-01"

    def test_add_task_prepends_to_checklist(self, manager, root):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        task = manager.add_task(alpha, "  Design logo ", due="2026-04-01")
        assert task.display_text == "Design logo"
        assert format_day(task.due_date) == "2026-04-01"
        section = get_section(_overview(root, "Alpha"), NEXT_STEPS)
        assert section.split("\n")[0] == "- [ ] Design logo"
        assert manager.get_focused(alpha).last_worked_on is not None

    def test_add_task_validation(self, manager):
        alpha = _pid(manager, "Alpha")
        with pytest.raises(ValueError):
            manager.add_task(alpha, "   ")
        with pytest.raises(ValueError):
            manager.add_task(alpha, "Task", due="someday maybe")
        assert manager.add_task(uuid.uuid4(), "Task") is None

    def test_complete_writes_back_with_date(self, manager, root):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        task = next(t for t in manager.tasks if t.display_text == "Write intro")

        manager.update_task_status(task.id, TaskStatus.COMPLETED)
        day = format_day(task.completed_date)
        assert f"- [x] Write intro ({day})" in _overview(root, "Alpha")

        manager.update_task_status(task.id, TaskStatus.TODO)
        assert "- [ ] Write intro\n" in _overview(root, "Alpha")
        assert task.completed_date is None

    def test_in_progress_does_not_touch_file(self, manager, root):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        before = _overview(root, "Alpha")
        task = manager.tasks[0]
        manager.update_task_status(task.id, TaskStatus.IN_PROGRESS)
        assert _overview(root, "Alpha") == before
        assert manager.in_progress_tasks == [task]

    def test_identity_survives_rebuild(self, manager):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        task = next(t for t in manager.tasks if t.display_text == "Fix login bug")
        manager.update_task_status(task.id, TaskStatus.IN_PROGRESS)

        manager.refresh_tasks_from_active_projects()
        assert manager.refresh_tasks_for_project(alpha)

        rebuilt = next(t for t in manager.tasks if t.display_text == "Fix login bug")
        assert rebuilt.id == task.id
        assert rebuilt.status == TaskStatus.IN_PROGRESS
        assert len(manager.tasks) == 2

    def test_external_completion_picked_up(self, manager, root):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        text = _overview(root, "Alpha").replace("- [ ] Write intro", "- [x] Write intro (2026-03-03)")
        (root / "Alpha" / "Alpha.md").write_text(text, encoding="utf-8")

        manager.refresh_tasks_for_project(alpha)
        task = next(t for t in manager.tasks if t.display_text == "Write intro")
        assert task.status == TaskStatus.COMPLETED
        assert format_day(task.completed_date) == "2026-03-03"

    def test_rename_keeps_id_and_updates_file(self, manager, root):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        task = next(t for t in manager.tasks if t.display_text == "Write intro")
        manager.update_task_text(task.id, "Write preface")

        assert "- [ ] Write preface" in _overview(root, "Alpha")
        assert "Write intro" not in _overview(root, "Alpha")
        manager.refresh_tasks_for_project(alpha)
        assert next(t for t in manager.tasks if t.display_text == "Write preface").id == task.id

    def test_unknown_task(self, manager):
        assert manager.update_task_status(uuid.uuid4(), TaskStatus.COMPLETED) is None
        assert manager.update_task_text(uuid.uuid4(), "x") is None
        assert not manager.refresh_tasks_for_project(uuid.uuid4())

    def test_incomplete_task_count(self, manager):
        alpha = _pid(manager, "Alpha")
        gamma = _pid(manager, "Gamma")
        manager.activate_project(alpha)
        manager.update_task_status(manager.tasks[0].id, TaskStatus.COMPLETED)
        assert manager.incomplete_task_count(alpha) == 1
        assert manager.incomplete_task_count(gamma) == 1
        assert manager.incomplete_task_count(uuid.uuid4()) == 0

    def test_missing_folder_keeps_edit_in_cache(self, manager, root):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        project = manager.get_project(alpha)
        project.folder_path = str(root / "moved-away" / "Alpha")
        manager.add_task(alpha, "Offline edit")
        assert "- [ ] Offline edit" in project.overview_content


# ---------------------------------------------------------------------------
# Replacement policy
# ---------------------------------------------------------------------------

def _complete_all(manager: FocusManager, project_id: uuid.UUID) -> None:
    for task in [t for t in manager.tasks if t.project_id == project_id]:
        manager.update_task_status(task.id, TaskStatus.COMPLETED)


class TestReplacement:
    def test_prompt_when_active_project_runs_dry(self, manager):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        assert manager.project_needing_replacement is None
        _complete_all(manager, alpha)
        assert manager.project_needing_replacement.project_id == alpha

    def test_no_prompt_without_candidates(self, root):
        manager = _make_manager(root, max_active=5)
        for name in ("Alpha", "Beta", "Gamma", "Delta"):
            manager.activate_project(_pid(manager, name))
        _complete_all(manager, _pid(manager, "Beta"))
        assert manager.project_needing_replacement is None

    def test_singleton(self, manager):
        alpha, beta = _pid(manager, "Alpha"), _pid(manager, "Beta")
        manager.activate_project(alpha)
        manager.activate_project(beta)
        _complete_all(manager, beta)
        _complete_all(manager, alpha)
        assert manager.project_needing_replacement.project_id == beta
        assert {f.project_id for f in manager.projects_with_no_active_tasks} == {alpha, beta}

    def test_keep_clears_prompt(self, manager):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        _complete_all(manager, alpha)
        manager.keep_project(alpha)
        assert manager.project_needing_replacement is None
        assert manager.get_focused(alpha).is_active

    def test_replace(self, manager):
        alpha, delta = _pid(manager, "Alpha"), _pid(manager, "Delta")
        manager.activate_project(alpha)
        _complete_all(manager, alpha)
        assert manager.replace_project(alpha, delta)
        assert not manager.get_focused(alpha).is_active
        assert manager.get_focused(delta).is_active
        assert manager.project_needing_replacement is None
        assert [t.display_text for t in manager.tasks] == ["Sketch"]

    def test_remove_without_replacement(self, manager):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        _complete_all(manager, alpha)
        assert manager.remove_project_without_replacement(alpha)
        assert manager.active_projects == []
        assert manager.project_needing_replacement is None

    def test_prompt_cleared_when_project_disappears(self, root, manager):
        beta, delta = _pid(manager, "Beta"), _pid(manager, "Delta")
        manager.activate_project(beta)
        manager.activate_project(delta)
        _complete_all(manager, beta)
        assert manager.project_needing_replacement.project_id == beta

        shutil.rmtree(root / "Beta")
        manager.sync_with_projects(scan_projects(root))
        assert manager.project_needing_replacement is None

        _complete_all(manager, delta)
        assert manager.project_needing_replacement.project_id == delta

    def test_prompt_cleared_when_sync_deactivates_project(self, manager):
        beta = _pid(manager, "Beta")
        manager.activate_project(beta)
        _complete_all(manager, beta)
        assert manager.project_needing_replacement.project_id == beta

        focused = [FocusedProject.from_dict(f.to_dict()) for f in manager.focused_projects]
        next(f for f in focused if f.project_id == beta).deactivate()
        assert manager.apply_sync_snapshot(SyncSnapshot(list(manager.projects), focused, list(manager.tasks)))
        assert manager.project_needing_replacement is None


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

class TestViews:
    def test_active_limits(self, root):
        manager = _make_manager(root, max_active=5, min_active=2)
        assert manager.is_under_active_minimum
        manager.activate_project(_pid(manager, "Alpha"))
        manager.activate_project(_pid(manager, "Beta"))
        assert not manager.is_under_active_minimum
        assert not manager.is_over_active_limit

    def test_stale_projects(self, manager):
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        manager.get_focused(alpha).last_worked_on = utcnow() - timedelta(days=10)
        assert [f.project_id for f in manager.stale_active_projects] == [alpha]

    def test_available_slots(self, manager):
        manager.update_slot_requirements(manager.slots[0].id, ["audio"])
        assert len(manager.available_slots(set())) == 4
        assert len(manager.available_slots({"audio"})) == 5
        assert not manager.update_slot_requirements(uuid.uuid4(), ["x"])

    def test_slot_requirements_strip_hash(self, manager):
        manager.update_slot_requirements(manager.slots[0].id, ["#music", "writing", "#"])
        assert manager.slots[0].required_tags == {"music", "writing"}


# ---------------------------------------------------------------------------
# Persistence and sync results
# ---------------------------------------------------------------------------

class TestPersistence:
    def test_state_survives_reload(self, root):
        snapshots = SnapshotStore(MemoryKeyValueStore(), MemoryKeyValueStore())
        manager = _make_manager(root, snapshots=snapshots)
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)
        task = manager.tasks[0]
        manager.update_task_status(task.id, TaskStatus.IN_PROGRESS)

        reloaded = FocusManager(snapshots)
        reloaded.load()
        assert reloaded.get_focused(alpha).is_active
        assert reloaded.get_task(task.id).status == TaskStatus.IN_PROGRESS
        assert [s.id for s in reloaded.slots] == [s.id for s in manager.slots]

    def test_legacy_keys_migrated(self):
        shared, local = MemoryKeyValueStore(), MemoryKeyValueStore()
        fp = FocusedProject.create(uuid.uuid4(), status=ProjectStatus.ACTIVE)
        local.set(LEGACY_FOCUSED_PROJECTS, json.dumps([fp.to_dict()]).encode())

        manager = FocusManager(SnapshotStore(shared, local))
        manager.load()

        assert manager.focused_projects == [fp]
        assert shared.get(SHARED_FOCUSED_PROJECTS) is not None
        assert manager.slots[0].occupied_by == fp.project_id

    def test_shared_key_preferred_over_legacy(self):
        shared, local = MemoryKeyValueStore(), MemoryKeyValueStore()
        current = FocusedProject.create(uuid.uuid4())
        legacy = FocusedProject.create(uuid.uuid4())
        snapshots = SnapshotStore(shared, local)
        snapshots.save_focused_projects([current])
        local.set(LEGACY_FOCUSED_PROJECTS, json.dumps([legacy.to_dict()]).encode())

        manager = FocusManager(snapshots)
        manager.load()
        assert manager.focused_projects == [current]

    def test_duplicates_collapse_on_load(self):
        snapshots = SnapshotStore(MemoryKeyValueStore())
        pid = uuid.uuid4()
        inactive = FocusedProject(project_id=pid, last_worked_on=utcnow())
        active = FocusedProject(project_id=pid, status=ProjectStatus.ACTIVE)
        snapshots.save_focused_projects([inactive, active])

        manager = FocusManager(snapshots)
        manager.load()
        assert manager.focused_projects == [active]

    def test_persist_requests_sync_with_generation(self, root):
        sync = Mock()
        manager = _make_manager(root, sync=sync)
        sync.subscribe.assert_called_once_with(manager.apply_sync_snapshot)
        manager.activate_project(_pid(manager, "Alpha"))
        sync.request_sync.assert_called_with(token=manager.generation)
        assert manager.generation == 2


class TestApplySyncSnapshot:
    def test_stale_result_ignored_and_snapshot_rewritten(self, manager):
        snapshots = manager.snapshots
        stale_token = manager.generation
        manager.activate_project(_pid(manager, "Alpha"))
        # A pass that started before the activation wrote its own result
        snapshots.save_focused_projects([])

        applied = manager.apply_sync_snapshot(SyncSnapshot(), token=stale_token)

        assert not applied
        assert len(manager.focused_projects) == 4
        assert len(snapshots.load_focused_projects()) == 4

    def test_current_result_applied(self, manager):
        alpha, beta = _pid(manager, "Alpha"), _pid(manager, "Beta")
        manager.activate_project(alpha)

        remote = [FocusedProject.from_dict(f.to_dict()) for f in manager.focused_projects]
        for fp in remote:
            if fp.project_id == alpha:
                fp.deactivate()
            elif fp.project_id == beta:
                fp.activate()
        snapshot = SyncSnapshot(projects=list(manager.projects), focused_projects=remote, tasks=[])

        assert manager.apply_sync_snapshot(snapshot, token=manager.generation)
        assert [f.project_id for f in manager.active_projects] == [beta]
        assert manager.slots[0].occupied_by == beta
        assert manager.tasks == []

    def test_untokened_result_applied(self, manager):
        assert manager.apply_sync_snapshot(SyncSnapshot(projects=list(manager.projects)))
        assert manager.focused_projects == []

    def test_over_limit_after_remote_activations(self, root):
        manager = _make_manager(root, max_active=2)
        remote = [FocusedProject.from_dict(f.to_dict()) for f in manager.focused_projects]
        for fp in remote[:3]:
            fp.activate()
        manager.apply_sync_snapshot(SyncSnapshot(list(manager.projects), remote, []), token=manager.generation)
        assert manager.is_over_active_limit
        assert sum(1 for s in manager.slots if not s.is_empty) == 2


class TestForceSync:
    def test_without_sync(self, manager):
        assert manager.force_sync() == "Unknown"

    def test_round_trip_through_record_store(self, root):
        snapshots = SnapshotStore(MemoryKeyValueStore())
        store = SqliteRecordStore()
        sync = SyncService(store, snapshots, propagation_delay=0, verify_delay=0)
        manager = _make_manager(root, snapshots=snapshots, sync=sync)
        alpha = _pid(manager, "Alpha")
        manager.activate_project(alpha)

        assert manager.force_sync() == "Synced"
        assert manager.get_focused(alpha).is_active
        assert len(manager.tasks) == 2
        assert store.count("Project") == 4
        assert store.count("FocusedProject") == 4
        assert store.count("FocusTask") == 2


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

class TestScenario:
    def test_activation_and_replacement_flow(self, tmp_path, caplog):
        root = tmp_path / "projects"
        root.mkdir()
        manager = FocusManager(SnapshotStore(MemoryKeyValueStore()), max_active=5, min_active=3)
        manager.load()
        manager.sync_with_projects(scan_projects(root))
        assert manager.projects == []

        _write_project(root, "A", ["- [ ] a1", "- [ ] a2"])
        _write_project(root, "B", ["- [ ] b1"])
        _write_project(root, "C", ["- [ ] c1"])
        manager.sync_with_projects(scan_projects(root))
        a, b, c = (_pid(manager, n) for n in "ABC")

        assert manager.activate_project(a)
        assert manager.activate_project(b)
        assert manager.is_under_active_minimum
        assert manager.activate_project(c)
        assert not manager.is_under_active_minimum

        _write_project(root, "D", ["- [ ] d1"])
        manager.sync_with_projects(scan_projects(root))
        d = _pid(manager, "D")

        with caplog.at_level(logging.INFO, logger="focusboard.focus.manager"):
            _complete_all(manager, a)
            assert [f.project_id for f in manager.projects_with_no_active_tasks] == [a]
            # Later edits elsewhere must not raise a second prompt
            _complete_all(manager, b)

        assert manager.project_needing_replacement.project_id == a
        assert [f.project_id for f in manager.inactive_projects] == [d]
        prompts = [r for r in caplog.records if "suggesting a replacement" in r.getMessage()]
        assert len(prompts) == 1
