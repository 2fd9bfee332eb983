from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, or_, select

from craftsync.data.migrations import MigrationManager
from craftsync.data.sync_repository import SyncRepository
from craftsync.models.inventory_item import InventoryCategory, InventoryItem


class InventoryRepository(SyncRepository[InventoryItem]):
    def __init__(self, engine: Engine, schema_gate: MigrationManager, auth=None):
        super().__init__(InventoryItem, engine, schema_gate, auth)

    def search(self, query_text: str = "") -> List[InventoryItem]:
        """Search by name, description, location or tags"""
        self._require_schema()
        statement = select(InventoryItem).where(InventoryItem.deleted_at == None)

        if query_text:
            search_pattern = f"%{query_text}%"
            statement = statement.where(
                or_(
                    InventoryItem.name.like(search_pattern),
                    InventoryItem.description.like(search_pattern),
                    InventoryItem.location.like(search_pattern),
                    InventoryItem.tags.like(search_pattern),
                )
            )

        statement = statement.order_by(InventoryItem.name)
        with Session(self.engine) as session:
            return list(session.exec(statement).all())

    def list_by_category(self, category: InventoryCategory) -> List[InventoryItem]:
        self._require_schema()
        statement = (
            select(InventoryItem)
            .where(InventoryItem.deleted_at == None)
            .where(InventoryItem.category == InventoryCategory(category).value)
            .order_by(InventoryItem.name)
        )
        with Session(self.engine) as session:
            return list(session.exec(statement).all())

    def find_by_barcode(self, barcode: str) -> Optional[InventoryItem]:
        self._require_schema()
        statement = (
            select(InventoryItem)
            .where(InventoryItem.deleted_at == None)
            .where(InventoryItem.barcode == barcode)
        )
        with Session(self.engine) as session:
            return session.exec(statement).first()
