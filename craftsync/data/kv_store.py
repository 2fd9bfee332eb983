from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from craftsync.data.migrations import MigrationManager
from craftsync.errors import SchemaNotReadyError
from craftsync.models.base import utc_now_iso

LAST_SYNC_KEY = "last_sync"
PULL_CURSOR_PREFIX = "pull_cursor:"


class KVStore:
    """Simple key/value metadata kept in the sync_metadata table."""

    def __init__(self, engine: Engine, schema_gate: MigrationManager):
        self.engine = engine
        self.schema_gate = schema_gate

    def _require_schema(self):
        if not self.schema_gate.is_ready:
            raise SchemaNotReadyError("sync_metadata used before migrations completed")

    def get(self, key: str) -> Optional[str]:
        self._require_schema()
        with self.engine.connect() as conn:
            return conn.execute(
                text("SELECT value FROM sync_metadata WHERE key = :key"), {"key": key}
            ).scalar()

    def set(self, key: str, value: Optional[str]):
        self._require_schema()
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT OR REPLACE INTO sync_metadata (key, value, updated_at) "
                    "VALUES (:key, :value, :updated_at)"
                ),
                {"key": key, "value": value, "updated_at": utc_now_iso()},
            )

    def get_last_sync(self) -> Optional[str]:
        """ISO-8601 timestamp of the last completed cycle, None if it never synced."""
        return self.get(LAST_SYNC_KEY)

    def set_last_sync(self, timestamp: str):
        self.set(LAST_SYNC_KEY, timestamp)

    def get_pull_cursor(self, resource: str) -> Optional[str]:
        return self.get(PULL_CURSOR_PREFIX + resource)

    def set_pull_cursor(self, resource: str, cursor: str):
        self.set(PULL_CURSOR_PREFIX + resource, cursor)
