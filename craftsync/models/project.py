from enum import Enum
from typing import ClassVar, Dict, Optional, Tuple

# SQLAlchemy String keeps the enum stored as plain text
from sqlalchemy import String
from sqlmodel import Field

from craftsync.models import codecs
from craftsync.models.base import SyncModel


class ProjectStatus(str, Enum):
    TODO = "to-do"
    IN_PROGRESS = "in-progress"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"
    FROGGED = "frogged"


class Project(SyncModel, table=True):
    __tablename__ = "projects"

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="")
    status: ProjectStatus = Field(default=ProjectStatus.TODO, sa_type=String)
    project_type: str = Field(default="")

    # Images and patterns
    images: Optional[str] = Field(default=None)
    default_image_index: int = Field(default=0, ge=0)
    pattern_pdf: str = Field(default="")
    pattern_url: str = Field(default="")
    pattern_images: Optional[str] = Field(default=None)
    inspiration_url: str = Field(default="")
    notes: str = Field(default="")

    # Materials: ids point at inventory_items
    yarn_used: Optional[str] = Field(default=None)
    yarn_used_ids: Optional[str] = Field(default=None)
    hook_used_ids: Optional[str] = Field(default=None)
    yarn_materials: Optional[str] = Field(default=None)

    # Journal
    work_progress: Optional[str] = Field(default=None)
    inspiration_sources: Optional[str] = Field(default=None)

    start_date: Optional[str] = Field(default=None)
    completed_date: Optional[str] = Field(default=None)
    currently_working_on: bool = Field(default=False)

    composite_fields: ClassVar[Dict[str, codecs.JsonCodec]] = {
        "images": codecs.STRING_LIST,
        "pattern_images": codecs.STRING_LIST,
        "yarn_used": codecs.STRING_LIST,
        "yarn_used_ids": codecs.STRING_LIST,
        "hook_used_ids": codecs.STRING_LIST,
        "yarn_materials": codecs.YARN_MATERIALS,
        "work_progress": codecs.WORK_PROGRESS,
        "inspiration_sources": codecs.INSPIRATION_SOURCES,
    }
    timestamp_fields: ClassVar[Tuple[str, ...]] = ("start_date", "completed_date")
