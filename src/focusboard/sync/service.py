"""
Sync service: runs full passes over the three record kinds.

Passes are single-flight. A pass requested while another is running is
skipped (sync_all returns None); the background worker coalesces queued
requests so a burst of local edits costs one pass.

Listeners are told about every completed pass with the merged collections
and the token the pass was requested with, so the caller can ignore
results made stale by a newer local edit.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from focusboard.cache.snapshot import SnapshotStore
from focusboard.models.focus import FocusedProject
from focusboard.models.project import Project
from focusboard.models.task import FocusTask
from focusboard.store.record_store import AccountStatus, RecordStoreClient, RecordStoreError
from focusboard.sync.base import SyncError
from focusboard.sync.focused_projects import FocusedProjectSyncManager
from focusboard.sync.projects import ProjectSyncManager
from focusboard.sync.tasks import FocusTaskSyncManager
from focusboard.utils.dates import utcnow

log = logging.getLogger(__name__)

STATUS_UNKNOWN = "Unknown"
STATUS_SYNCING = "Syncing..."
STATUS_SYNCED = "Synced"

_STOP = object()


@dataclass
class SyncSnapshot:
    """Merged collections produced by one completed pass."""

    projects: List[Project] = field(default_factory=list)
    focused_projects: List[FocusedProject] = field(default_factory=list)
    tasks: List[FocusTask] = field(default_factory=list)


@dataclass(frozen=True)
class _SyncRequest:
    token: Optional[int] = None


SyncListener = Callable[[SyncSnapshot, Optional[int]], None]


class SyncService:
    """
    Owns the per-kind managers and the sync status surface.

    Usage:
        service = SyncService(store, snapshots)
        service.subscribe(manager.apply_sync_snapshot)
        service.start_worker()
        service.request_sync(token=3)
        ...
        service.stop_worker()
    """

    def __init__(
        self,
        store: RecordStoreClient,
        snapshots: SnapshotStore,
        propagation_delay: float = 1.0,
        verify_delay: float = 5.0,
    ) -> None:
        self.store = store
        self.snapshots = snapshots
        self.projects = ProjectSyncManager(store, snapshots)
        self.focused_projects = FocusedProjectSyncManager(
            store, snapshots, propagation_delay=propagation_delay, verify_delay=verify_delay
        )
        self.tasks = FocusTaskSyncManager(store, snapshots)

        self.status: str = STATUS_UNKNOWN
        self.last_sync_date = snapshots.load_last_sync()
        self.is_syncing = False

        self._pass_lock = threading.Lock()
        self._listeners: List[SyncListener] = []
        self._queue: "queue.Queue" = queue.Queue()
        self._worker_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def check_account_status(self) -> str:
        try:
            account = self.store.account_status()
        except RecordStoreError as e:
            self.status = f"Error: {e}"
            return self.status
        self.status = account.display
        return self.status

    def status_dict(self) -> dict:
        return {
            "status": self.status,
            "last_sync_date": self.last_sync_date.isoformat() if self.last_sync_date else None,
            "is_syncing": self.is_syncing,
        }

    def subscribe(self, listener: SyncListener) -> None:
        self._listeners.append(listener)

    def _notify(self, snapshot: SyncSnapshot, token: Optional[int]) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot, token)
            except Exception:
                log.exception("Sync listener %r failed", listener)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def sync_all(self, token: Optional[int] = None) -> Optional[SyncSnapshot]:
        """
        Run one full pass: projects, then focused projects, then tasks.

        Returns None without doing anything if a pass is already running.

        Raises:
            SyncError: the record store is unavailable or a step failed;
                ``status`` holds the reason
        """
        if not self._pass_lock.acquire(blocking=False):
            log.info("Sync already in progress, skipping request")
            return None
        try:
            self.is_syncing = True
            try:
                account = self.store.account_status()
            except RecordStoreError as e:
                self.status = f"Error: {e}"
                raise SyncError(str(e)) from e
            if account != AccountStatus.AVAILABLE:
                self.status = account.display
                raise SyncError(f"Record store unavailable: {account.display}")

            self.status = STATUS_SYNCING
            try:
                snapshot = SyncSnapshot(
                    projects=self.projects.sync(),
                    focused_projects=self.focused_projects.sync(),
                    tasks=self.tasks.sync(),
                )
            except SyncError as e:
                self.status = f"Error: {e}"
                log.warning("Sync failed: %s", e)
                raise
            except Exception as e:
                self.status = f"Error: {e}"
                log.exception("Sync pass crashed")
                raise

            self.last_sync_date = utcnow()
            self.snapshots.save_last_sync(self.last_sync_date)
            self.status = STATUS_SYNCED
        finally:
            self.is_syncing = False
            self._pass_lock.release()

        self._notify(snapshot, token)
        return snapshot

    def force_update_active_projects(self) -> int:
        """
        Force the local Active focus records onto the remote store.

        Returns the number of records verified after the overwrite.
        """
        active = [f for f in self.focused_projects.load_local() if f.is_active]
        with self._pass_lock:
            self.is_syncing = True
            self.status = STATUS_SYNCING
            try:
                verified = self.focused_projects.force_update(active, verify=True) or 0
            except SyncError as e:
                self.status = f"Error: {e}"
                log.warning("Force update failed: %s", e)
                raise
            except Exception as e:
                self.status = f"Error: {e}"
                log.exception("Force update crashed")
                raise
            finally:
                self.is_syncing = False
        self.status = f"Active projects updated ({verified} verified)"
        return verified

    # ------------------------------------------------------------------
    # Background worker
    # ------------------------------------------------------------------

    def start_worker(self) -> None:
        """Start the background sync worker thread (daemon)."""
        self._worker_thread = threading.Thread(
            target=self._worker_loop, daemon=True, name="focus-sync-worker"
        )
        self._worker_thread.start()

    def stop_worker(self) -> None:
        """Signal the worker thread to stop and wait for it."""
        self._queue.put(_STOP)
        if self._worker_thread:
            self._worker_thread.join(timeout=30)

    def request_sync(self, token: Optional[int] = None) -> None:
        """Schedule a pass on the worker (non-blocking)."""
        self._queue.put(_SyncRequest(token))

    def _worker_loop(self) -> None:
        """Drain the request queue, running one pass per burst of requests."""
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            stopping = False
            while True:
                try:
                    pending = self._queue.get_nowait()
                except queue.Empty:
                    break
                if pending is _STOP:
                    stopping = True
                    break
                item = pending
            try:
                self.sync_all(token=item.token)
            except SyncError as e:
                log.warning("Background sync failed: %s", e)
            except Exception:
                log.exception("Background sync crashed")
            if stopping:
                break
