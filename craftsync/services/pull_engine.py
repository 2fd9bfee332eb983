"""
Pull stage: downloads remote rows for the owner and merges them into the
local store with whole-record last-write-wins on ``updated_at``.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

from craftsync.data.kv_store import KVStore
from craftsync.data.sync_repository import SyncRepository
from craftsync.errors import RemoteStoreError
from craftsync.models.base import SyncModel, parse_timestamp
from craftsync.services.remote_store import RemoteStore
from craftsync.services.results import PullResult, SyncError

logger = logging.getLogger(__name__)


class MergeAction(str, Enum):
    INSERT = "insert"
    OVERWRITE = "overwrite"
    KEEP_LOCAL = "keep_local"
    RESTORE = "restore"


class MergeResolver:
    """
    Whole-record last-write-wins. Ties keep the local copy, except a clean
    tombstone left by orphan reconciliation, which a live remote row restores.
    """

    def resolve(
        self, local: Optional[SyncModel], remote_updated_at: str, remote_deleted: bool = False
    ) -> MergeAction:
        if local is None:
            return MergeAction.INSERT
        remote_instant = parse_timestamp(remote_updated_at)
        local_instant = parse_timestamp(local.updated_at)
        if remote_instant > local_instant:
            return MergeAction.OVERWRITE
        if remote_instant == local_instant and local.is_deleted and not local.pending_sync and not remote_deleted:
            return MergeAction.RESTORE
        return MergeAction.KEEP_LOCAL


class PullEngine:
    def __init__(
        self,
        repositories: Dict[str, SyncRepository],
        remote: RemoteStore,
        metadata: KVStore,
        resolver: Optional[MergeResolver] = None,
    ):
        self.repositories = repositories
        self.remote = remote
        self.metadata = metadata
        self.resolver = resolver or MergeResolver()

    def pull(self, owner_id: str, since: Optional[str] = None, full: bool = False) -> PullResult:
        """
        Fetches and merges remote changes.

        full=True downloads every row of the owner. Otherwise `since` is used,
        or the cursor stored by the previous pull of each resource; with
        neither, the pull is full. Cursors always come from the server.
        """
        result = PullResult()

        for resource, repo in self.repositories.items():
            cursor = None if full else (since or self.metadata.get_pull_cursor(resource))
            try:
                batch = self.remote.fetch_changes(resource, owner_id, cursor)
            except RemoteStoreError as e:
                logger.warning(f"Pull of {resource} failed: {e}")
                result.errors.append(SyncError("pull", str(e), resource))
                continue

            merged = 0
            next_cursor = batch.cursor
            skipped = False
            for payload in batch.rows:
                errors_before = len(result.errors)
                if self._merge_row(resource, repo, owner_id, payload, result):
                    merged += 1
                if len(result.errors) > errors_before and not skipped:
                    skipped = True
                    # Rows are ordered by server stamp: the next pull restarts at the first skipped one
                    next_cursor = payload.get("server_updated_at") or cursor

            if next_cursor:
                self.metadata.set_pull_cursor(resource, next_cursor)

            logger.info(f"Pulled {len(batch.rows)} {resource}, merged {merged}")
            result.by_resource[resource] = merged
            result.pulled_count += merged

        return result

    def _merge_row(
        self,
        resource: str,
        repo: SyncRepository,
        owner_id: str,
        payload: Dict[str, Any],
        result: PullResult,
    ) -> bool:
        record_id = payload.get("id")
        if payload.get("owner_id") != owner_id:
            result.errors.append(SyncError("pull", "row belongs to another owner", resource, record_id))
            return False

        try:
            row = repo.model_type.from_remote(payload)
        except ValueError as e:
            logger.warning(f"Skipping undecodable {resource} {record_id}: {e}")
            result.errors.append(SyncError("pull", str(e), resource, record_id))
            return False

        local = repo.get_by_id(row["id"], include_deleted=True)
        if local is not None and local.owner_id not in (None, owner_id):
            result.errors.append(SyncError("pull", "local row belongs to another owner", resource, record_id))
            return False

        action = self.resolver.resolve(local, row["updated_at"], row.get("deleted_at") is not None)
        if action is MergeAction.KEEP_LOCAL:
            return False

        # Guarded upsert: a local edit landing after the read above still wins
        applied = repo.upsert_from_remote(row)
        if applied:
            logger.debug(f"{resource} {row['id']}: {action.value}")
        return applied
