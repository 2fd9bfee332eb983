import logging
import uuid
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Set, Type, TypeVar

from sqlalchemy import and_, func, or_, select as sa_select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from craftsync.data.migrations import MigrationManager
from craftsync.errors import SchemaNotReadyError
from craftsync.models.base import SYSTEM_FIELDS, SyncModel, next_timestamp, utc_now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=SyncModel)

# Called with (resource name, record id) after every local mutation
ChangeListener = Callable[[str, str], None]

# Keeps IN (...) lists below SQLite's bound parameter limit
ID_CHUNK_SIZE = 500


def _chunks(ids: List[str], size: int = ID_CHUNK_SIZE) -> Iterable[List[str]]:
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class SyncRepository(Generic[T]):
    """
    Base class for repositories of synchronizable records.
    Local mutations stamp updated_at and pending_sync; the engine side gets
    id-keyed primitives (dirty selection, guarded mark-as-synced, conditional
    upsert and orphan tombstoning). Every write is one whole-row statement.
    """
    def __init__(self, model_type: Type[T], engine: Engine, schema_gate: MigrationManager, auth=None):
        self.model_type = model_type
        self.table_name = model_type.__tablename__
        self.table = model_type.__table__
        self.engine = engine
        self.schema_gate = schema_gate
        # Anything with an `owner_id` attribute; None means guest mode
        self.auth = auth
        self._listeners: List[ChangeListener] = []

    def _require_schema(self):
        if not self.schema_gate.is_ready:
            raise SchemaNotReadyError(f"{self.table_name} used before migrations completed")

    # --- CHANGE LISTENERS ---

    def add_listener(self, listener: ChangeListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, record_id: str):
        for listener in list(self._listeners):
            listener(self.table_name, record_id)

    # --- MUTATION API ---

    def _user_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = self.model_type.encode_fields(fields)
        managed = sorted(name for name in data if name in SYSTEM_FIELDS)
        if managed:
            raise ValueError(f"Field(s) managed by sync cannot be set directly: {', '.join(managed)}")
        return data

    def create(self, fields: Dict[str, Any]) -> str:
        """Inserts a new dirty record owned by the current user, or by nobody in guest mode."""
        self._require_schema()
        data = self._user_fields(fields)
        now = utc_now_iso()
        data.update(
            id=str(uuid.uuid4()),
            owner_id=self.auth.owner_id if self.auth is not None else None,
            created_at=now,
            updated_at=now,
            deleted_at=None,
            pending_sync=True,
            synced_at=None,
        )
        record = self.model_type.model_validate(data)

        with self.engine.begin() as conn:
            conn.execute(self.table.insert().values(**record.to_row()))

        logger.debug(f"Created {self.table_name} {record.id} (owner={record.owner_id})")
        self._notify(record.id)
        return record.id

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[T]:
        """Merges `fields` into the record. Returns None for unknown or deleted ids."""
        self._require_schema()
        changes = self._user_fields(fields)
        current = self.get_by_id(record_id)
        if current is None:
            return None

        data = current.to_row()
        data.update(changes)
        data["updated_at"] = next_timestamp(current.updated_at)
        data["pending_sync"] = True
        record = self.model_type.model_validate(data)

        row = record.to_row()
        del row["id"]
        with self.engine.begin() as conn:
            conn.execute(update(self.table).where(self.table.c.id == record_id).values(**row))

        self._notify(record_id)
        return record

    def delete(self, record_id: str) -> bool:
        """Soft delete: sets the tombstone, the row itself stays until compaction."""
        self._require_schema()
        current = self.get_by_id(record_id, include_deleted=True)
        if current is None:
            return False
        if current.deleted_at is not None:
            return True

        stamp = next_timestamp(current.updated_at)
        with self.engine.begin() as conn:
            conn.execute(
                update(self.table)
                .where(self.table.c.id == record_id)
                .values(deleted_at=stamp, updated_at=stamp, pending_sync=True)
            )

        self._notify(record_id)
        return True

    def claim_orphans(self, owner_id: str) -> int:
        """Assigns every ownerless record to `owner_id` and marks it for push."""
        self._require_schema()
        with self.engine.begin() as conn:
            result = conn.execute(
                update(self.table)
                .where(self.table.c.owner_id.is_(None))
                .values(owner_id=owner_id, pending_sync=True)
            )
        if result.rowcount:
            logger.info(f"Claimed {result.rowcount} guest {self.table_name} for owner {owner_id}")
        return result.rowcount

    # --- QUERIES ---

    def get_by_id(self, record_id: str, include_deleted: bool = False) -> Optional[T]:
        self._require_schema()
        with Session(self.engine) as session:
            record = session.get(self.model_type, record_id)
        if record is None or (record.deleted_at is not None and not include_deleted):
            return None
        return record

    def list_all(self, owner_id: Optional[str] = None, include_deleted: bool = False) -> List[T]:
        self._require_schema()
        statement = select(self.model_type)
        if owner_id is not None:
            statement = statement.where(self.table.c.owner_id == owner_id)
        if not include_deleted:
            statement = statement.where(self.table.c.deleted_at.is_(None))
        statement = statement.order_by(self.table.c.created_at)
        with Session(self.engine) as session:
            return list(session.exec(statement).all())

    def count_pending(self, owner_id: Optional[str] = None) -> int:
        self._require_schema()
        statement = sa_select(func.count()).select_from(self.table).where(self.table.c.pending_sync == True)
        if owner_id is not None:
            statement = statement.where(self.table.c.owner_id == owner_id)
        with self.engine.connect() as conn:
            return conn.execute(statement).scalar() or 0

    # --- SYNC PRIMITIVES ---

    def get_dirty_records(self, owner_id: str) -> List[T]:
        """Records of `owner_id` waiting to be pushed (pending_sync=1)."""
        self._require_schema()
        statement = (
            select(self.model_type)
            .where(self.table.c.pending_sync == True)
            .where(self.table.c.owner_id == owner_id)
            .order_by(self.table.c.updated_at)
        )
        with Session(self.engine) as session:
            return list(session.exec(statement).all())

    def mark_as_synced(self, record_id: str, pushed_updated_at: str) -> bool:
        """
        Clears pending_sync for the pushed version only. An edit made while the
        upload was in flight has a newer updated_at and stays dirty.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                update(self.table)
                .where(self.table.c.id == record_id)
                .where(self.table.c.updated_at == pushed_updated_at)
                .values(pending_sync=False, synced_at=utc_now_iso())
            )
        return result.rowcount > 0

    def upsert_from_remote(self, row: Dict[str, Any]) -> bool:
        """
        Inserts or overwrites a whole row received from the remote, without
        marking it dirty. An existing row is only replaced when the remote
        updated_at is strictly newer, so a concurrent local edit keeps winning.
        A clean tombstone left by orphan reconciliation is also replaced by a
        live remote row carrying the same updated_at.
        """
        statement = sqlite_insert(self.table).values(**row)
        excluded = statement.excluded
        restores_orphan = and_(
            excluded.updated_at == self.table.c.updated_at,
            excluded.deleted_at.is_(None),
            self.table.c.deleted_at.isnot(None),
            self.table.c.pending_sync == False,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[self.table.c.id],
            set_={name: excluded[name] for name in row if name != "id"},
            where=or_(excluded.updated_at > self.table.c.updated_at, restores_orphan),
        )
        with self.engine.begin() as conn:
            result = conn.execute(statement)
        return result.rowcount > 0

    def get_active_synced_ids(self, owner_id: str) -> Set[str]:
        """Ids that were confirmed remotely and are neither tombstoned nor dirty."""
        statement = (
            sa_select(self.table.c.id)
            .where(self.table.c.owner_id == owner_id)
            .where(self.table.c.deleted_at.is_(None))
            .where(self.table.c.pending_sync == False)
        )
        with self.engine.connect() as conn:
            return set(conn.execute(statement).scalars().all())

    def mark_orphaned(self, record_ids: Iterable[str]) -> int:
        """Tombstones records missing remotely. Dirty rows are left alone."""
        ids = sorted(set(record_ids))
        if not ids:
            return 0
        now = utc_now_iso()
        removed = 0
        with self.engine.begin() as conn:
            for chunk in _chunks(ids):
                result = conn.execute(
                    update(self.table)
                    .where(self.table.c.id.in_(chunk))
                    .where(self.table.c.deleted_at.is_(None))
                    .where(self.table.c.pending_sync == False)
                    .values(deleted_at=now, synced_at=now)
                )
                removed += result.rowcount
        return removed
