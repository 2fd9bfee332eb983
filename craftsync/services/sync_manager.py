import logging
import threading
from typing import Optional

from craftsync.config import SyncSettings
from craftsync.data.local_store import LocalStore
from craftsync.errors import RemoteUnavailableError
from craftsync.models.base import utc_now_iso
from craftsync.services.auth_service import AuthProvider
from craftsync.services.connectivity import ConnectivityProvider, NetworkType, StaticConnectivity
from craftsync.services.pull_engine import PullEngine
from craftsync.services.push_engine import PushEngine
from craftsync.services.reconciler import OrphanReconciler
from craftsync.services.remote_store import RemoteStore
from craftsync.services.results import SkipReason, SyncError, SyncResult, SyncStatus

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Runs sync cycles for one authenticated session.

    A cycle is claim -> push -> pull/merge -> reconcile -> persist last_sync.
    At most one cycle runs at a time; triggers arriving meanwhile are no-ops.
    Build one engine per session and close() it on sign-out or tier change;
    the engine owns the remote store it is given.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: Optional[RemoteStore],
        auth: AuthProvider,
        connectivity: Optional[ConnectivityProvider] = None,
        settings: Optional[SyncSettings] = None,
        sync_on_change: bool = True,
    ):
        self.store = store
        self.remote = remote
        self.auth = auth
        self.connectivity = connectivity or StaticConnectivity()
        self.settings = settings or SyncSettings.from_env()

        if remote is not None:
            repositories = store.repositories
            self.push_engine = PushEngine(repositories, remote)
            self.pull_engine = PullEngine(repositories, remote, store.metadata)
            self.reconciler = OrphanReconciler(repositories, remote, self.settings.reconcile_sample_size)

        # Non-blocking acquire doubles as the in-flight flag
        self._cycle_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._debounce_timer: Optional[threading.Timer] = None
        self._closed = False

        self._sync_on_change = sync_on_change
        if sync_on_change:
            for repo in store.repositories.values():
                repo.add_listener(self._on_local_change)

    @property
    def is_syncing(self) -> bool:
        return self._cycle_lock.locked()

    # --- HOST SURFACE ---

    def sync(self) -> SyncResult:
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Sync already in progress, ignoring trigger")
            return SyncResult(skipped=SkipReason.IN_FLIGHT)
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def debounced_sync(self):
        """Restarts the quiet-period timer; sync runs once it elapses without new calls."""
        with self._timer_lock:
            if self._closed:
                return
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            timer = threading.Timer(self.settings.debounce_seconds, self._on_quiet_period)
            timer.daemon = True
            self._debounce_timer = timer
            timer.start()

    def get_sync_status(self) -> SyncStatus:
        ready = self.store.is_ready
        return SyncStatus(
            last_sync_at=self.store.metadata.get_last_sync() if ready else None,
            pending_count=self.store.count_pending() if ready else 0,
            is_online=self.connectivity.is_online(),
            is_syncing=self.is_syncing,
        )

    def close(self):
        """Cancels any pending trigger, waits for a running cycle and releases the remote."""
        with self._timer_lock:
            self._closed = True
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None

        if self._sync_on_change:
            for repo in self.store.repositories.values():
                repo.remove_listener(self._on_local_change)

        with self._cycle_lock:
            if self.remote is not None:
                self.remote.close()

    # --- INTERNALS ---

    def _on_local_change(self, resource: str, record_id: str):
        self.debounced_sync()

    def _on_quiet_period(self):
        with self._timer_lock:
            if self._debounce_timer is threading.current_thread():
                self._debounce_timer = None
        self.sync()

    def _skip_reason(self) -> Optional[str]:
        if self._closed:
            return SkipReason.CLOSED
        if self.remote is None:
            return SkipReason.NOT_CONFIGURED
        if not self.store.is_ready:
            return SkipReason.SCHEMA_NOT_READY
        if not self.auth.owner_id or not self.auth.can_sync:
            return SkipReason.NOT_ELIGIBLE
        if not self.connectivity.is_online():
            return SkipReason.OFFLINE
        if self.settings.wifi_only and self.connectivity.network_type() != NetworkType.WIFI:
            return SkipReason.METERED_NETWORK
        return None

    def _run_cycle(self) -> SyncResult:
        result = SyncResult(started_at=utc_now_iso())

        reason = self._skip_reason()
        if reason:
            logger.info(f"Sync skipped: {reason}")
            result.skipped = reason
            result.finished_at = utc_now_iso()
            return result

        owner_id = self.auth.owner_id
        stage = "claim"
        try:
            result.claimed = self.store.claim_orphans(owner_id)

            # Push must finish before pull so no pre-push remote state is merged back
            stage = "push"
            push = self.push_engine.push(owner_id)
            result.pushed = push.pushed_count
            result.errors.extend(push.errors)

            stage = "pull"
            pull = self.pull_engine.pull(owner_id, full=not self.settings.incremental_pull)
            result.pulled = pull.pulled_count
            result.errors.extend(pull.errors)

            stage = "reconcile"
            reconcile = self.reconciler.reconcile(owner_id)
            result.removed = reconcile.removed_count
            result.errors.extend(reconcile.errors)

            stage = "persist"
            self.store.metadata.set_last_sync(utc_now_iso())
            result.completed = True

        except RemoteUnavailableError as e:
            logger.warning(f"Sync abandoned during {stage}, remote unreachable: {e}")
            result.errors.append(SyncError(stage, str(e)))
        except Exception as e:
            logger.exception(f"Sync Error during {stage}: {e}")
            result.errors.append(SyncError(stage, str(e)))

        result.finished_at = utc_now_iso()
        logger.info(
            f"Sync {result.status}: claimed={result.claimed} pushed={result.pushed} pulled={result.pulled} "
            f"removed={result.removed} errors={len(result.errors)}"
        )
        return result
