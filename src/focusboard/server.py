"""
focusboard MCP server entry point.

Startup sequence:
1. Read PROJECTS_ROOT and the rest of the configuration from environment
2. Open the local snapshot store and the record store
3. Build the SyncService and load the FocusManager from the snapshot
4. Scan the projects root and reconcile focus state with it
5. Start the sync worker and request an initial pass
6. Start the ProjectWatcher daemon thread
7. Start REST API server in background thread (if API_ENABLED)
8. Run MCP server (stdio transport)
"""

import logging
import os
import sys
import threading
from functools import partial
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from focusboard.cache.kv_store import SqliteKeyValueStore
from focusboard.cache.snapshot import SnapshotStore
from focusboard.focus.manager import FocusManager
from focusboard.parsers.project_scanner import scan_projects
from focusboard.store.http_store import HttpRecordStore
from focusboard.store.sqlite_store import SqliteRecordStore
from focusboard.sync.service import SyncService
from focusboard.tools import register_focus_tools
from focusboard.watcher.project_watcher import ProjectWatcher

log = logging.getLogger(__name__)


def _parse_ignored_dirs(raw: str) -> set[str]:
    """Parse a comma-separated list of folder names to ignore."""
    return {part.strip() for part in raw.split(",") if part.strip()}


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def _start_api_server(manager, sync, records, rescan, port: int) -> None:
    """Run the FastAPI/uvicorn server in a daemon thread."""
    import uvicorn

    from focusboard.api.app import create_app

    app = create_app(manager, sync, records=records, rescan=rescan)
    log.info("Starting REST API on port %d", port)
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="warning")


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    projects_root_env = os.environ.get("PROJECTS_ROOT", "")
    if not projects_root_env:
        log.error("PROJECTS_ROOT environment variable is not set")
        sys.exit(1)

    projects_root = Path(projects_root_env).expanduser()
    if not projects_root.is_dir():
        log.error("PROJECTS_ROOT does not exist or is not a directory: %s", projects_root)
        sys.exit(1)

    ignored = _parse_ignored_dirs(os.environ.get("IGNORED_DIRS", ".git,node_modules,.trash"))
    state_dir = Path(os.environ.get("STATE_DIR", "~/.cache/focusboard")).expanduser()
    state_dir.mkdir(parents=True, exist_ok=True)

    log.info("Projects root: %s", projects_root)
    log.info("Ignored dirs: %s", ignored)
    log.info("State dir: %s", state_dir)

    # Local snapshot: shared keys and legacy keys in separate files
    snapshots = SnapshotStore(
        shared=SqliteKeyValueStore(state_dir / "shared.db"),
        local=SqliteKeyValueStore(state_dir / "local.db"),
    )

    # Record store: remote service if configured, else a local database
    local_records = None
    store_url = os.environ.get("RECORD_STORE_URL", "")
    if store_url:
        store = HttpRecordStore(store_url, token=os.environ.get("RECORD_STORE_TOKEN") or None)
        log.info("Record store: %s", store_url)
    else:
        local_records = SqliteRecordStore(state_dir / "records.db")
        store = local_records
        log.info("Record store: local (%s)", state_dir / "records.db")

    sync = SyncService(
        store,
        snapshots,
        propagation_delay=float(os.environ.get("SYNC_PROPAGATION_DELAY", "1.0")),
    )
    sync.check_account_status()

    manager = FocusManager(
        snapshots,
        sync=sync,
        max_active=int(os.environ.get("MAX_ACTIVE", "5")),
        min_active=int(os.environ.get("MIN_ACTIVE", "3")),
    )
    manager.load()

    rescan = partial(scan_projects, projects_root, ignored)
    log.info("Scanning projects...")
    manager.sync_with_projects(rescan())
    log.info("Project scan complete")

    # Background worker that runs the sync passes requested by the manager
    sync.start_worker()

    watcher = ProjectWatcher(
        projects_root,
        ignored,
        manager.sync_with_projects,
        poll_interval=float(os.environ.get("POLL_INTERVAL", "5.0")),
    )
    watcher.start()

    if _env_flag("API_ENABLED", "true"):
        api_port = int(os.environ.get("API_PORT", "9410"))
        records = local_records if _env_flag("RECORD_SERVICE_ENABLED", "false") else None
        api_thread = threading.Thread(
            target=_start_api_server,
            args=(manager, sync, records, rescan, api_port),
            daemon=True,
        )
        api_thread.start()

    mcp = FastMCP("focusboard")
    register_focus_tools(mcp, manager, sync, rescan=rescan)

    log.info("Starting focusboard server")
    try:
        mcp.run(transport="stdio")
    finally:
        watcher.stop()
        sync.stop_worker()


if __name__ == "__main__":
    main()
