"""
Projects root watcher, polling based.

Filesystem events are not forwarded reliably from network shares and
container mounts, so the watcher compares snapshots instead:

1. Lists the project folders under PROJECTS_ROOT every poll interval
2. Records the mtime of each project's overview file
3. Re-scans and calls back with the fresh project list when a folder
   appeared or disappeared or an overview changed
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from focusboard.models.project import Project
from focusboard.parsers.project_scanner import is_project_dir, scan_projects

log = logging.getLogger(__name__)

_DEFAULT_POLL_INTERVAL = 5.0


class ProjectWatcher:
    """
    Polling watcher over the projects root.

    Usage:
        watcher = ProjectWatcher(root, ignored, manager.sync_with_projects)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        projects_root: Path,
        ignored: Iterable[str],
        on_change: Callable[[List[Project]], None],
        poll_interval: float = _DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._root = Path(projects_root)
        self._ignored = set(ignored)
        self._on_change = on_change
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Project folder name -> overview mtime (0.0 when there is no overview)
        self._known: Dict[str, float] = {}

    def start(self) -> None:
        """Start the polling thread (daemon)."""
        log.info("Starting project watcher (polling every %.1fs)", self._poll_interval)
        self._known = self._snapshot()
        self._thread = threading.Thread(target=self._poll_loop, daemon=True, name="project-watcher")
        self._thread.start()

    def stop(self) -> None:
        """Signal the poll thread to stop and wait for it."""
        log.info("Stopping project watcher")
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self._poll_interval + 2)

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            self._stop_event.wait(self._poll_interval)
            if self._stop_event.is_set():
                break
            try:
                self.check_for_changes()
            except Exception:
                log.exception("Error during poll cycle")

    def check_for_changes(self) -> bool:
        """Single poll cycle; returns True when the callback was invoked."""
        current = self._snapshot()
        if current == self._known:
            return False

        added = current.keys() - self._known.keys()
        removed = self._known.keys() - current.keys()
        modified = [n for n in current.keys() & self._known.keys() if current[n] != self._known[n]]
        log.debug("Projects changed: +%s -%s ~%s", sorted(added), sorted(removed), sorted(modified))

        self._known = current
        self._on_change(scan_projects(self._root, self._ignored))
        return True

    def _snapshot(self) -> Dict[str, float]:
        snapshot: Dict[str, float] = {}
        try:
            children = list(self._root.iterdir())
        except OSError:
            log.warning("Cannot list projects root %s", self._root)
            return snapshot
        for child in children:
            if not is_project_dir(child, self._ignored):
                continue
            overview = child / f"{child.name}.md"
            try:
                snapshot[child.name] = overview.stat().st_mtime
            except OSError:
                snapshot[child.name] = 0.0
        return snapshot
