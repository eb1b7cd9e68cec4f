"""
Focus board MCP tools.

Core logic lives in the handle_* functions of api/focus_handlers.py
(return dicts). The wrappers here serialize to JSON strings.
"""

import json
import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from focusboard.api.focus_handlers import (
    handle_activate,
    handle_deactivate,
    handle_focus_board,
    handle_force_sync,
    handle_force_update_active,
    handle_keep,
    handle_project_list,
    handle_replace,
    handle_replacement_get,
    handle_scan,
    handle_slot_update,
    handle_slots,
    handle_sync_status,
    handle_task_add,
    handle_task_list,
    handle_task_update,
    handle_worked_on,
)

log = logging.getLogger(__name__)


def register_focus_tools(mcp: FastMCP, manager, sync, rescan=None) -> None:
    """Register all focus board MCP tools onto the FastMCP instance."""

    @mcp.tool()
    def focus_board() -> str:
        """
        Show the focus board: Active projects and their tasks by column.

        Returns:
            JSON object with active projects, todo / in_progress / completed
            task columns, capacity flags and any pending replacement prompt
        """
        return json.dumps(handle_focus_board(manager), indent=2)

    @mcp.tool()
    def project_list(status: Optional[str] = None) -> str:
        """
        List tracked projects with their focus state.

        Args:
            status: "active", "inactive", or omit for all

        Returns:
            JSON array of project objects (sorted by name)
        """
        try:
            return json.dumps(handle_project_list(manager, status=status), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def project_activate(project_id: str, slot_id: Optional[str] = None) -> str:
        """
        Promote a project to Active.

        Fails when the Active cap is reached or no empty slot accepts the
        project's tags.

        Args:
            project_id: Project UUID
            slot_id: Specific slot UUID to place it in (optional)

        Returns:
            JSON project object with "activated" flag, or error message
        """
        try:
            return json.dumps(handle_activate(manager, project_id=project_id, slot_id=slot_id), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def project_deactivate(project_id: str) -> str:
        """
        Return an Active project to Inactive, freeing its slot and removing
        its tasks from the board.

        Args:
            project_id: Project UUID
        """
        try:
            return json.dumps(handle_deactivate(manager, project_id=project_id), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def project_worked_on(project_id: str) -> str:
        """
        Record that a project was just worked on (resets staleness).

        Args:
            project_id: Project UUID
        """
        try:
            return json.dumps(handle_worked_on(manager, project_id=project_id), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_list(status: Optional[str] = None, project_id: Optional[str] = None) -> str:
        """
        List focus board tasks.

        Args:
            status: "todo", "in-progress" or "completed" (omit for all)
            project_id: Restrict to one project's tasks

        Returns:
            JSON array of task objects
        """
        try:
            return json.dumps(handle_task_list(manager, status=status, project_id=project_id), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_add(project_id: str, text: str, due: Optional[str] = None) -> str:
        """
        Add a task to a project. The task is also prepended to the
        project's Next Steps checklist.

        Args:
            project_id: Project UUID
            text: Task text
            due: Due date, ISO (2026-03-01) or natural language ("friday", "in 3 days")

        Returns:
            JSON task object, or error message
        """
        try:
            return json.dumps(handle_task_add(manager, project_id=project_id, text=text, due=due), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_update(task_id: str, status: Optional[str] = None, text: Optional[str] = None) -> str:
        """
        Move a task between columns and/or rename it.

        Completing a task checks it off in the project's checklist with
        today's date; un-completing unchecks it.

        Args:
            task_id: Task UUID
            status: "todo", "in-progress" or "completed"
            text: New task text

        Returns:
            JSON task object, or error message
        """
        try:
            return json.dumps(
                handle_task_update(manager, task_id=task_id, status=status, text=text), indent=2
            )
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def replacement_get() -> str:
        """
        Show the Active project (if any) that has run out of open tasks,
        together with the Inactive projects that could replace it.
        """
        return json.dumps(handle_replacement_get(manager), indent=2)

    @mcp.tool()
    def replacement_replace(old_project_id: str, new_project_id: str) -> str:
        """
        Swap an Active project for an Inactive one.

        Args:
            old_project_id: Active project UUID to deactivate
            new_project_id: Inactive project UUID to activate
        """
        try:
            return json.dumps(
                handle_replace(manager, old_project_id=old_project_id, new_project_id=new_project_id),
                indent=2,
            )
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def replacement_keep(project_id: str, remove: bool = False) -> str:
        """
        Dismiss the replacement prompt.

        Args:
            project_id: Project UUID the prompt is about
            remove: If True, deactivate the project without a replacement
        """
        try:
            return json.dumps(handle_keep(manager, project_id=project_id, remove=remove), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def slot_list() -> str:
        """List Active capacity slots with their tag requirements and occupants."""
        return json.dumps(handle_slots(manager), indent=2)

    @mcp.tool()
    def slot_update(slot_id: str, required_tags: str = "") -> str:
        """
        Set the tags a slot requires. A project qualifies when it carries
        any one of them; empty means any project.

        Args:
            slot_id: Slot UUID
            required_tags: Tags, e.g. "#music #writing" or "music,writing"
        """
        try:
            return json.dumps(handle_slot_update(manager, slot_id=slot_id, required_tags=required_tags), indent=2)
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def sync_status() -> str:
        """Report the sync status, last sync time and whether a pass is running."""
        return json.dumps(handle_sync_status(sync), indent=2)

    @mcp.tool()
    def sync_now() -> str:
        """Save local state and run a full sync pass immediately."""
        return json.dumps(handle_force_sync(manager), indent=2)

    @mcp.tool()
    def sync_force_update_active() -> str:
        """
        Overwrite the remote focus records of all Active projects with the
        local ones, removing duplicates, then verify them.
        """
        return json.dumps(handle_force_update_active(sync), indent=2)

    @mcp.tool()
    def projects_rescan() -> str:
        """Re-scan the projects root and refresh focus state and tasks."""
        return json.dumps(handle_scan(manager, rescan), indent=2)
