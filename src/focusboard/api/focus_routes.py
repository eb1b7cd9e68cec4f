"""REST API routes for the focus board."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

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


class ActivateBody(BaseModel):
    slot_id: Optional[str] = None


class TaskAddBody(BaseModel):
    project_id: str
    text: str
    due: Optional[str] = None


class TaskUpdateBody(BaseModel):
    status: Optional[str] = None
    text: Optional[str] = None


class ReplaceBody(BaseModel):
    old_project_id: str
    new_project_id: str


class KeepBody(BaseModel):
    project_id: str
    remove: bool = False


class SlotUpdateBody(BaseModel):
    required_tags: List[str] = []


def _checked(result):
    if isinstance(result, dict) and "error" in result:
        raise HTTPException(status_code=404, detail=result["error"])
    return result


def register_focus_routes(app_router: APIRouter, manager, sync, rescan=None) -> None:
    """Attach focus board REST routes that use the shared manager."""

    @app_router.get("/focus/board")
    def get_board():
        return handle_focus_board(manager)

    @app_router.get("/projects")
    def list_projects(status: Optional[str] = Query(None)):
        try:
            return handle_project_list(manager, status=status)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.post("/projects/{project_id}/activate")
    def activate_project(project_id: str, body: Optional[ActivateBody] = None):
        try:
            result = handle_activate(manager, project_id=project_id, slot_id=body.slot_id if body else None)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        _checked(result)
        if not result.get("activated"):
            raise HTTPException(status_code=409, detail=result["reason"])
        return result

    @app_router.post("/projects/{project_id}/deactivate")
    def deactivate_project(project_id: str):
        try:
            return _checked(handle_deactivate(manager, project_id=project_id))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.post("/projects/{project_id}/worked-on")
    def worked_on(project_id: str):
        try:
            return _checked(handle_worked_on(manager, project_id=project_id))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.get("/tasks")
    def list_tasks(status: Optional[str] = Query(None), project_id: Optional[str] = Query(None)):
        try:
            return handle_task_list(manager, status=status, project_id=project_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.post("/tasks", status_code=201)
    def add_task(body: TaskAddBody):
        try:
            return _checked(handle_task_add(manager, **body.model_dump()))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.patch("/tasks/{task_id}")
    def update_task(task_id: str, body: TaskUpdateBody):
        try:
            return _checked(handle_task_update(manager, task_id=task_id, **body.model_dump()))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.get("/replacement")
    def get_replacement():
        return handle_replacement_get(manager)

    @app_router.post("/replacement/replace")
    def replace_project(body: ReplaceBody):
        try:
            return _checked(handle_replace(manager, **body.model_dump()))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.post("/replacement/keep")
    def keep_project(body: KeepBody):
        try:
            return _checked(handle_keep(manager, **body.model_dump()))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.get("/slots")
    def list_slots():
        return handle_slots(manager)

    @app_router.patch("/slots/{slot_id}")
    def update_slot(slot_id: str, body: SlotUpdateBody):
        try:
            return _checked(handle_slot_update(manager, slot_id=slot_id, required_tags=body.required_tags))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.get("/sync/status")
    def get_sync_status():
        return handle_sync_status(sync)

    @app_router.post("/sync")
    def force_sync():
        return handle_force_sync(manager)

    @app_router.post("/sync/force-update-active")
    def force_update_active():
        result = handle_force_update_active(sync)
        if "error" in result:
            raise HTTPException(status_code=503, detail=result["error"])
        return result

    @app_router.post("/scan")
    def scan_projects():
        result = handle_scan(manager, rescan)
        if "error" in result:
            raise HTTPException(status_code=503, detail=result["error"])
        return result
