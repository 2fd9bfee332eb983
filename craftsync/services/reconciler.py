import logging
from typing import Dict

from craftsync.data.sync_repository import SyncRepository
from craftsync.errors import RemoteStoreError
from craftsync.services.remote_store import RemoteStore
from craftsync.services.results import ReconcileResult, SyncError

logger = logging.getLogger(__name__)


class OrphanReconciler:
    """
    Tombstones local records of the owner that no longer exist remotely.

    Only records already confirmed remotely (not dirty, not deleted) are
    candidates. When the remote has nothing at all for the owner, a sample of
    candidate ids is probed across every owner first: if none of them was
    ever seen remotely the user has simply never synced, and nothing is
    pruned. The probe is a heuristic, not a proof.
    """

    def __init__(self, repositories: Dict[str, SyncRepository], remote: RemoteStore, sample_size: int = 10):
        self.repositories = repositories
        self.remote = remote
        self.sample_size = max(1, sample_size)

    def reconcile(self, owner_id: str) -> ReconcileResult:
        result = ReconcileResult()

        for resource, repo in self.repositories.items():
            candidates = repo.get_active_synced_ids(owner_id)
            if not candidates:
                continue

            try:
                remote_ids = self.remote.fetch_ids(resource, owner_id)
                if not remote_ids and not self._has_synced_before(resource, candidates):
                    logger.info(
                        f"Remote has no {resource} for owner {owner_id} and none of the local ids was ever synced, "
                        f"skipping reconciliation"
                    )
                    result.skipped.append(resource)
                    continue
            except RemoteStoreError as e:
                logger.warning(f"Reconcile of {resource} failed: {e}")
                result.errors.append(SyncError("reconcile", str(e), resource))
                continue

            orphans = candidates - remote_ids
            removed = repo.mark_orphaned(orphans) if orphans else 0
            if removed:
                logger.info(f"Tombstoned {removed} orphaned {resource}")
            result.by_resource[resource] = removed
            result.removed_count += removed

        return result

    def _has_synced_before(self, resource: str, candidates) -> bool:
        sample = sorted(candidates)[: self.sample_size]
        return bool(self.remote.find_existing_ids(resource, sample))
