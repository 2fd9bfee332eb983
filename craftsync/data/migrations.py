"""
Ordered, additive schema migrations for the local SQLite store.

The applied version lives in ``PRAGMA user_version``. Every step inspects the
existing schema before changing it, so running a step twice is a no-op and a
database touched by an interrupted upgrade can be migrated again safely.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Set

from sqlalchemy.engine import Connection, Engine

from craftsync.errors import MigrationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationStep:
    version: int
    description: str
    apply: Callable[[Connection], None]


def table_columns(conn: Connection, table: str) -> Set[str]:
    return {row[1] for row in conn.exec_driver_sql(f"PRAGMA table_info({table})")}


def add_column(conn: Connection, table: str, column: str, ddl: str):
    if column in table_columns(conn, table):
        logger.debug(f"Column {table}.{column} already exists, skipping")
        return
    conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")


def create_index(conn: Connection, name: str, table: str, columns: str):
    conn.exec_driver_sql(f"CREATE INDEX IF NOT EXISTS {name} ON {table}({columns})")


# --- STEPS ---

def _v1_initial_schema(conn: Connection):
    conn.exec_driver_sql("""
        CREATE TABLE IF NOT EXISTS projects (
            id TEXT PRIMARY KEY NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'to-do',
            project_type TEXT NOT NULL DEFAULT '',
            images TEXT,
            default_image_index INTEGER NOT NULL DEFAULT 0,
            pattern_pdf TEXT NOT NULL DEFAULT '',
            pattern_url TEXT NOT NULL DEFAULT '',
            pattern_images TEXT,
            inspiration_url TEXT NOT NULL DEFAULT '',
            notes TEXT NOT NULL DEFAULT '',
            yarn_used TEXT,
            yarn_used_ids TEXT,
            hook_used_ids TEXT,
            yarn_materials TEXT,
            work_progress TEXT,
            inspiration_sources TEXT,
            start_date TEXT,
            completed_date TEXT,
            currently_working_on INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            synced_at TEXT,
            pending_sync INTEGER NOT NULL DEFAULT 1
        )
    """)
    conn.exec_driver_sql("""
        CREATE TABLE IF NOT EXISTS inventory_items (
            id TEXT PRIMARY KEY NOT NULL,
            category TEXT NOT NULL,
            name TEXT NOT NULL DEFAULT '',
            description TEXT NOT NULL DEFAULT '',
            quantity REAL NOT NULL DEFAULT 1,
            unit TEXT NOT NULL DEFAULT 'piece',
            images TEXT,
            tags TEXT,
            used_in_projects TEXT,
            location TEXT,
            barcode TEXT,
            notes TEXT,
            yarn_details TEXT,
            hook_details TEXT,
            other_details TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            synced_at TEXT,
            pending_sync INTEGER NOT NULL DEFAULT 1
        )
    """)
    conn.exec_driver_sql("""
        CREATE TABLE IF NOT EXISTS sync_metadata (
            key TEXT PRIMARY KEY NOT NULL,
            value TEXT,
            updated_at TEXT NOT NULL
        )
    """)
    create_index(conn, "idx_projects_pending_sync", "projects", "pending_sync")
    create_index(conn, "idx_projects_updated_at", "projects", "updated_at")
    create_index(conn, "idx_projects_status", "projects", "status")
    create_index(conn, "idx_inventory_pending_sync", "inventory_items", "pending_sync")
    create_index(conn, "idx_inventory_updated_at", "inventory_items", "updated_at")
    create_index(conn, "idx_inventory_category", "inventory_items", "category")


def _v2_owner_scoping(conn: Connection):
    add_column(conn, "projects", "owner_id", "TEXT")
    add_column(conn, "inventory_items", "owner_id", "TEXT")
    create_index(conn, "idx_projects_owner", "projects", "owner_id")
    create_index(conn, "idx_projects_owner_pending", "projects", "owner_id, pending_sync")
    create_index(conn, "idx_inventory_owner", "inventory_items", "owner_id")
    create_index(conn, "idx_inventory_owner_pending", "inventory_items", "owner_id, pending_sync")


def _v3_soft_delete(conn: Connection):
    add_column(conn, "projects", "deleted_at", "TEXT")
    add_column(conn, "inventory_items", "deleted_at", "TEXT")
    create_index(conn, "idx_projects_deleted", "projects", "deleted_at")
    create_index(conn, "idx_inventory_deleted", "inventory_items", "deleted_at")


MIGRATIONS = (
    MigrationStep(1, "initial schema", _v1_initial_schema),
    MigrationStep(2, "owner scoping", _v2_owner_scoping),
    MigrationStep(3, "soft delete tombstones", _v3_soft_delete),
)


class MigrationManager:
    """Brings the local schema up to date and gates access until it is."""

    def __init__(self, engine: Engine, steps: Iterable[MigrationStep] = MIGRATIONS):
        self.engine = engine
        self.steps = sorted(steps, key=lambda step: step.version)
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def latest_version(self) -> int:
        return self.steps[-1].version if self.steps else 0

    def current_version(self) -> int:
        with self.engine.connect() as conn:
            return conn.exec_driver_sql("PRAGMA user_version").scalar() or 0

    def migrate(self) -> int:
        """Applies pending steps in order. Any failure raises MigrationError."""
        version = self.current_version()
        if version > self.latest_version:
            raise MigrationError(version, f"database is newer than this build (v{self.latest_version})")

        pending = [step for step in self.steps if step.version > version]
        if not pending:
            logger.debug(f"Schema up to date at v{version}")

        for step in pending:
            logger.info(f"Applying migration v{step.version}: {step.description}")
            try:
                with self.engine.begin() as conn:
                    step.apply(conn)
                    conn.exec_driver_sql(f"PRAGMA user_version = {int(step.version)}")
            except Exception as e:
                logger.error(f"Migration v{step.version} failed: {e}")
                raise MigrationError(step.version, str(e)) from e
            version = step.version

        self._ready = True
        return version
