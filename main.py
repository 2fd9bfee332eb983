import logging
import sys

from craftsync.config import SyncSettings
from craftsync.data.local_store import LocalStore
from craftsync.errors import MigrationError
from craftsync.logging_config import setup_logging
from craftsync.services.auth_service import AuthSession
from craftsync.services.connectivity import HttpConnectivityProbe, StaticConnectivity
from craftsync.services.remote_store import HttpRemoteStore
from craftsync.services.sync_manager import SyncEngine

logger = logging.getLogger("craftsync")


def main() -> int:
    """Runs one sync cycle for the owner configured in the environment."""
    settings = SyncSettings.from_env()
    setup_logging(settings.log_level, settings.log_file)

    auth = AuthSession(owner_id=settings.owner_id, can_sync=settings.owner_id is not None)

    try:
        store = LocalStore(settings.db_path, auth=auth).open()
    except MigrationError as e:
        logger.error(f"Setup error: {e}")
        return 2

    remote = HttpRemoteStore.from_settings(settings)
    connectivity = HttpConnectivityProbe(remote) if remote else StaticConnectivity(online=False)
    engine = SyncEngine(store, remote, auth, connectivity, settings, sync_on_change=False)

    try:
        result = engine.sync()
        status = engine.get_sync_status()
        logger.info(f"Report: {result.as_report()}")
        logger.info(
            f"Last sync: {status.last_sync_at or 'never'}, pending: {status.pending_count}, "
            f"online: {status.is_online}"
        )
    finally:
        engine.close()
        store.close()

    return 1 if result.status == "error" else 0


if __name__ == "__main__":
    sys.exit(main())
