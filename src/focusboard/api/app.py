"""FastAPI application factory for the focusboard REST API."""

from fastapi import APIRouter, FastAPI

from focusboard.api.focus_routes import register_focus_routes
from focusboard.api.record_routes import register_record_routes


def create_app(manager, sync, records=None, rescan=None) -> FastAPI:
    """
    Build and return a FastAPI app wired to the given FocusManager.

    When ``records`` (a SqliteRecordStore) is given, the app also serves it
    as a record service under /api/records.
    """
    app = FastAPI(title="focusboard", docs_url="/api/docs", openapi_url="/api/openapi.json")

    api = APIRouter(prefix="/api")
    register_focus_routes(api, manager, sync, rescan=rescan)
    if records is not None:
        register_record_routes(api, records)
    app.include_router(api)

    return app
