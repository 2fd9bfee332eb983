import logging
from typing import Dict, Optional

from sqlalchemy.engine import Engine

from craftsync.data.db_context import create_db_engine, get_db_path
from craftsync.data.inventory_repository import InventoryRepository
from craftsync.data.kv_store import KVStore
from craftsync.data.migrations import MigrationManager
from craftsync.data.project_repository import ProjectRepository
from craftsync.data.sync_repository import SyncRepository

logger = logging.getLogger(__name__)


class LocalStore:
    """
    The on-device database: one engine shared by the migration manager,
    the metadata store and one repository per record kind.
    Call open() before anything else; it migrates the schema.
    """

    def __init__(self, db_path: Optional[str] = None, auth=None, engine: Optional[Engine] = None):
        self.db_path = get_db_path(db_path)
        self.engine = engine or create_db_engine(self.db_path)
        self.migrations = MigrationManager(self.engine)
        self.metadata = KVStore(self.engine, self.migrations)
        self.inventory = InventoryRepository(self.engine, self.migrations, auth)
        self.projects = ProjectRepository(self.engine, self.migrations, auth)

    @property
    def repositories(self) -> Dict[str, SyncRepository]:
        # Order matters: projects reference inventory ids, so items go first
        return {
            "inventory_items": self.inventory,
            "projects": self.projects,
        }

    @property
    def is_ready(self) -> bool:
        return self.migrations.is_ready

    def open(self) -> "LocalStore":
        """Migrates the schema. MigrationError propagates and must stop startup."""
        version = self.migrations.migrate()
        logger.info(f"Local store {self.db_path} ready at schema v{version}")
        return self

    def claim_orphans(self, owner_id: str) -> int:
        return sum(repo.claim_orphans(owner_id) for repo in self.repositories.values())

    def count_pending(self) -> int:
        return sum(repo.count_pending() for repo in self.repositories.values())

    def close(self):
        self.engine.dispose()
