from craftsync.models.base import SyncModel
from craftsync.models.inventory_item import InventoryCategory, InventoryItem
from craftsync.models.project import Project, ProjectStatus

__all__ = [
    "SyncModel",
    "InventoryCategory",
    "InventoryItem",
    "Project",
    "ProjectStatus",
]
