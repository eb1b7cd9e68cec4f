"""
Tests for tools/focus_tools.py.

Uses a real FocusManager backed by a temporary projects root.
Exercises the MCP tool handler functions directly (bypasses transport).
"""

import json
import sys
import uuid
from functools import partial
from pathlib import Path
from unittest.mock import Mock

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from focusboard.cache.kv_store import MemoryKeyValueStore
from focusboard.cache.snapshot import SnapshotStore
from focusboard.focus.manager import FocusManager
from focusboard.parsers.project_scanner import scan_projects
from focusboard.store.record_store import RecordStoreError
from focusboard.store.sqlite_store import SqliteRecordStore
from focusboard.sync.service import SyncService
from focusboard.tools import register_focus_tools


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    for name, steps in (
        ("Alpha", ["- [ ] Write intro", "- [ ] Fix login bug"]),
        ("Beta", ["- [ ] Draft outline"]),
    ):
        folder = root / name
        folder.mkdir(parents=True)
        (folder / f"{name}.md").write_text(
            f"# {name}\n\n## Next Steps\n" + "\n".join(steps) + "\n",
            encoding="utf-8",
        )
    return root


class _FakeMCP:
    """Minimal fake to capture tool registrations."""

    def __init__(self):
        self._tools = {}

    def tool(self, *args, **kwargs):
        """Decorator that records functions by name."""
        def decorator(fn):
            self._tools[fn.__name__] = fn
            return fn
        return decorator

    def get(self, name: str):
        return self._tools[name]


@pytest.fixture
def setup(tmp_path):
    root = _make_root(tmp_path)
    snapshots = SnapshotStore(MemoryKeyValueStore())
    store = SqliteRecordStore()
    sync = SyncService(store, snapshots, propagation_delay=0, verify_delay=0)
    manager = FocusManager(snapshots, sync=sync)
    manager.load()
    rescan = partial(scan_projects, root)
    manager.sync_with_projects(rescan())

    mcp = _FakeMCP()
    register_focus_tools(mcp, manager, sync, rescan=rescan)
    ids = {p.name: str(p.id) for p in manager.projects}
    return mcp, manager, store, root, ids


def _call(mcp, name, **kwargs):
    return json.loads(mcp.get(name)(**kwargs))


class TestRegistration:
    def test_all_tools_registered(self, setup):
        mcp, *_ = setup
        assert set(mcp._tools) == {
            "focus_board", "project_list", "project_activate", "project_deactivate",
            "project_worked_on", "task_list", "task_add", "task_update",
            "replacement_get", "replacement_replace", "replacement_keep",
            "slot_list", "slot_update", "sync_status", "sync_now",
            "sync_force_update_active", "projects_rescan",
        }


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

class TestProjectTools:
    def test_activate_and_board(self, setup):
        mcp, _, _, _, ids = setup
        result = _call(mcp, "project_activate", project_id=ids["Alpha"])
        assert result["activated"] is True
        board = _call(mcp, "focus_board")
        assert [p["name"] for p in board["active"]] == ["Alpha"]
        assert len(board["todo"]) == 2
        assert [c["status"] for c in board["columns"]] == ["To Do", "In Progress", "Completed"]
        assert board["columns"][2]["color"] == "green"

    def test_activate_rejected(self, setup):
        mcp, _, _, _, ids = setup
        _call(mcp, "project_activate", project_id=ids["Alpha"])
        result = _call(mcp, "project_activate", project_id=ids["Alpha"])
        assert result["activated"] is False
        assert "reason" in result

    def test_errors_are_json(self, setup):
        mcp, *_ = setup
        assert "error" in _call(mcp, "project_activate", project_id="nope")
        assert "error" in _call(mcp, "project_activate", project_id=str(uuid.uuid4()))
        assert "error" in _call(mcp, "project_list", status="someday")
        assert "error" in _call(mcp, "project_worked_on", project_id=str(uuid.uuid4()))

    def test_deactivate(self, setup):
        mcp, manager, _, _, ids = setup
        _call(mcp, "project_activate", project_id=ids["Beta"])
        result = _call(mcp, "project_deactivate", project_id=ids["Beta"])
        assert result["deactivated"] is True
        assert manager.active_projects == []

    def test_project_list(self, setup):
        mcp, _, _, _, ids = setup
        _call(mcp, "project_activate", project_id=ids["Beta"])
        assert [p["name"] for p in _call(mcp, "project_list", status="inactive")] == ["Alpha"]


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class TestTaskTools:
    def test_add_writes_checklist(self, setup):
        mcp, _, _, root, ids = setup
        _call(mcp, "project_activate", project_id=ids["Alpha"])
        task = _call(mcp, "task_add", project_id=ids["Alpha"], text="Design logo", due="tomorrow")
        assert task["text"] == "Design logo"
        assert task["due_date"] is not None
        assert "- [ ] Design logo\n- [ ] Write intro" in (root / "Alpha" / "Alpha.md").read_text()

    def test_add_bad_due(self, setup):
        mcp, _, _, _, ids = setup
        result = _call(mcp, "task_add", project_id=ids["Alpha"], text="x", due="whenever")
        assert "error" in result

    def test_update_and_list(self, setup):
        mcp, _, _, root, ids = setup
        _call(mcp, "project_activate", project_id=ids["Alpha"])
        task_id = _call(mcp, "task_list", status="todo")[0]["id"]

        result = _call(mcp, "task_update", task_id=task_id, status="completed")
        assert result["status"] == "Completed"
        assert "- [x] Write intro (" in (root / "Alpha" / "Alpha.md").read_text()
        assert [t["id"] for t in _call(mcp, "task_list", status="done")] == [task_id]
        assert len(_call(mcp, "task_list", project_id=ids["Alpha"])) == 2

    def test_update_unknown(self, setup):
        mcp, *_ = setup
        assert "error" in _call(mcp, "task_update", task_id=str(uuid.uuid4()), status="done")


# ---------------------------------------------------------------------------
# Replacement and slots
# ---------------------------------------------------------------------------

class TestReplacementTools:
    def test_flow(self, setup):
        mcp, manager, _, _, ids = setup
        _call(mcp, "project_activate", project_id=ids["Beta"])
        assert _call(mcp, "replacement_get") == {"project": None, "candidates": []}

        task_id = _call(mcp, "task_list", project_id=ids["Beta"])[0]["id"]
        _call(mcp, "task_update", task_id=task_id, status="done")

        prompt = _call(mcp, "replacement_get")
        assert prompt["project"]["name"] == "Beta"
        assert [c["name"] for c in prompt["candidates"]] == ["Alpha"]

        result = _call(mcp, "replacement_replace", old_project_id=ids["Beta"], new_project_id=ids["Alpha"])
        assert result["activated"] is True
        assert [f.project_id for f in manager.active_projects] == [uuid.UUID(ids["Alpha"])]

    def test_keep_with_remove(self, setup):
        mcp, manager, _, _, ids = setup
        _call(mcp, "project_activate", project_id=ids["Beta"])
        result = _call(mcp, "replacement_keep", project_id=ids["Beta"], remove=True)
        assert result["status"] == "Inactive"


class TestSlotTools:
    def test_list(self, setup):
        mcp, *_ = setup
        slots = _call(mcp, "slot_list")
        assert [s["index"] for s in slots] == [0, 1, 2, 3, 4]

    @pytest.mark.parametrize("raw", ["#music #writing", "music, writing"])
    def test_update_accepts_both_formats(self, setup, raw):
        mcp, manager, *_ = setup
        slot_id = str(manager.slots[1].id)
        result = _call(mcp, "slot_update", slot_id=slot_id, required_tags=raw)
        assert result["required_tags"] == ["music", "writing"]
        assert result["requirements"] == "#music #writing"
        assert result["has_requirements"] is True

    def test_update_clears(self, setup):
        mcp, manager, *_ = setup
        slot_id = str(manager.slots[1].id)
        _call(mcp, "slot_update", slot_id=slot_id, required_tags="#music")
        cleared = _call(mcp, "slot_update", slot_id=slot_id)
        assert cleared["required_tags"] == []
        assert cleared["has_requirements"] is False


# ---------------------------------------------------------------------------
# Sync and scanning
# ---------------------------------------------------------------------------

class TestSyncTools:
    def test_sync_now(self, setup):
        mcp, _, store, _, ids = setup
        _call(mcp, "project_activate", project_id=ids["Alpha"])
        result = _call(mcp, "sync_now")
        assert result["status"] == "Synced"
        assert store.count("FocusedProject") == 2
        assert _call(mcp, "sync_status")["last_sync_date"] is not None

    def test_sync_now_failure_reported(self, setup):
        mcp, _, store, _, _ = setup
        store.fetch_all = Mock(side_effect=RecordStoreError("offline"))
        result = _call(mcp, "sync_now")
        assert result["status"].startswith("Error: ")

    def test_force_update_active(self, setup):
        mcp, _, _, _, ids = setup
        _call(mcp, "project_activate", project_id=ids["Alpha"])
        result = _call(mcp, "sync_force_update_active")
        assert result == {"verified": 1, "status": "Active projects updated (1 verified)"}

    def test_rescan(self, setup):
        mcp, _, _, root, _ = setup
        (root / "Gamma").mkdir()
        result = _call(mcp, "projects_rescan")
        assert result["projects"] == 3
        assert result["active"] == 0

    def test_rescan_unconfigured(self):
        mcp = _FakeMCP()
        manager = FocusManager(SnapshotStore(MemoryKeyValueStore()))
        manager.load()
        register_focus_tools(mcp, manager, None)
        assert "error" in _call(mcp, "projects_rescan")
        assert _call(mcp, "sync_status")["status"] == "Unknown"
