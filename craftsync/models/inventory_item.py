from enum import Enum
from typing import ClassVar, Dict, Optional

from sqlalchemy import String
from sqlmodel import Field

from craftsync.models import codecs
from craftsync.models.base import SyncModel


class InventoryCategory(str, Enum):
    YARN = "yarn"
    HOOK = "hook"
    OTHER = "other"


class InventoryItem(SyncModel, table=True):
    __tablename__ = "inventory_items"

    category: InventoryCategory = Field(sa_type=String)
    name: str = Field(default="")
    description: str = Field(default="")
    quantity: float = Field(default=1, ge=0)
    unit: str = Field(default="piece")

    images: Optional[str] = Field(default=None)
    tags: Optional[str] = Field(default=None)
    used_in_projects: Optional[str] = Field(default=None)

    location: Optional[str] = Field(default=None)
    barcode: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    # Category specific details, only the one matching `category` is expected
    yarn_details: Optional[str] = Field(default=None)
    hook_details: Optional[str] = Field(default=None)
    other_details: Optional[str] = Field(default=None)

    composite_fields: ClassVar[Dict[str, codecs.JsonCodec]] = {
        "images": codecs.STRING_LIST,
        "tags": codecs.STRING_LIST,
        "used_in_projects": codecs.STRING_LIST,
        "yarn_details": codecs.YARN_DETAILS,
        "hook_details": codecs.HOOK_DETAILS,
        "other_details": codecs.OTHER_DETAILS,
    }
