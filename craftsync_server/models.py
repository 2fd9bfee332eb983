from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Field, SQLModel

# Columns the server keeps outside of the JSON payload
CORE_FIELDS = ("id", "owner_id", "created_at", "updated_at", "deleted_at")
# Never stored remotely
CLIENT_ONLY_FIELDS = ("pending_sync", "synced_at", "server_updated_at")


class RemoteRecord(SQLModel):
    """
    Remote copy of a client record, scoped by owner.
    updated_at is the client's modification time (the conflict key);
    server_updated_at is stamped by the server on every write and is what
    incremental pulls filter on.
    """
    id: str = Field(primary_key=True)
    owner_id: str = Field(index=True)
    created_at: str
    updated_at: str
    deleted_at: Optional[str] = Field(default=None)
    server_updated_at: str = Field(index=True)
    payload: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)

    def to_wire(self) -> Dict[str, Any]:
        data = dict(self.payload or {})
        data.update(
            id=self.id,
            owner_id=self.owner_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            deleted_at=self.deleted_at,
            server_updated_at=self.server_updated_at,
        )
        return data


class CloudProject(RemoteRecord, table=True):
    __tablename__ = "cloud_projects"


class CloudInventoryItem(RemoteRecord, table=True):
    __tablename__ = "cloud_inventory_items"
