import logging
from typing import Dict

from craftsync.data.sync_repository import SyncRepository
from craftsync.errors import RemoteStoreError
from craftsync.services.remote_store import RemoteStore
from craftsync.services.results import PushResult, SyncError

logger = logging.getLogger(__name__)


class PushEngine:
    """Uploads dirty local records of one owner, one upsert per record."""

    def __init__(self, repositories: Dict[str, SyncRepository], remote: RemoteStore):
        # Iteration order is the push order (parents before children)
        self.repositories = repositories
        self.remote = remote

    def push(self, owner_id: str) -> PushResult:
        result = PushResult()

        for resource, repo in self.repositories.items():
            dirty = repo.get_dirty_records(owner_id)
            if not dirty:
                continue
            logger.info(f"Pushing {len(dirty)} {resource}")

            pushed = 0
            for record in dirty:
                # get_dirty_records is already owner-scoped; this guards the invariant
                if record.owner_id != owner_id:
                    continue
                try:
                    self.remote.upsert(resource, owner_id, record.to_remote())
                except (RemoteStoreError, ValueError) as e:
                    # The record stays dirty and is retried next cycle
                    logger.warning(f"Push failed for {resource} {record.id}: {e}")
                    result.errors.append(SyncError("push", str(e), resource, record.id))
                    continue

                if not repo.mark_as_synced(record.id, record.updated_at):
                    logger.debug(f"{resource} {record.id} changed during upload, keeping it dirty")
                pushed += 1

            result.by_resource[resource] = pushed
            result.pushed_count += pushed

        return result
