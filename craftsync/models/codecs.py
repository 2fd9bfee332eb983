"""
Composite structures stored as JSON text inside relational columns.

Every composite column has exactly one ``JsonCodec``. The codec is the only
place where the column is serialized or parsed, on disk and on the wire.
"""
from datetime import date, datetime
from typing import Any, Callable, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from craftsync.errors import CodecError

V = TypeVar("V")


class CompositeModel(BaseModel):
    # Unknown keys written by newer clients survive a round trip
    model_config = ConfigDict(extra="allow")


# --- PROJECT STRUCTURES ---

class ProjectYarn(CompositeModel):
    """Yarn from the inventory reserved for a project."""
    item_id: str
    quantity: float = 1
    name: Optional[str] = None


class WorkProgressEntry(CompositeModel):
    id: str
    date: datetime
    notes: str = ""
    images: List[str] = Field(default_factory=list)


class InspirationSource(CompositeModel):
    id: str
    url: Optional[str] = None
    title: Optional[str] = None
    notes: Optional[str] = None
    images: List[str] = Field(default_factory=list)


# --- INVENTORY STRUCTURES ---

class YarnDetails(CompositeModel):
    name: Optional[str] = None
    brand: Optional[str] = None
    color: Optional[str] = None
    color_code: Optional[str] = None
    fiber: Optional[str] = None
    weight_category: Optional[str] = None
    ball_weight: Optional[float] = None
    length: Optional[float] = None
    hook_size: Optional[str] = None
    storage: Optional[str] = None
    store: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_price: Optional[float] = None


class HookDetails(CompositeModel):
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None
    size: Optional[str] = None
    size_metric: Optional[float] = None
    length: Optional[float] = None
    material: Optional[str] = None
    handle_type: Optional[str] = None


class OtherDetails(CompositeModel):
    name: str
    type: Optional[str] = None
    brand: Optional[str] = None
    material: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    set_size: Optional[int] = None
    purchase_price: Optional[float] = None


class JsonCodec(Generic[V]):
    """Encode/decode pair for one composite structure."""

    def __init__(self, name: str, value_type: Any, empty: Callable[[], V]):
        self.name = name
        self._adapter = TypeAdapter(value_type)
        self._empty = empty

    def encode(self, value: Optional[V]) -> Optional[str]:
        """Python value (or plain JSON data) -> column text."""
        if value is None:
            return None
        try:
            validated = self._adapter.validate_python(value)
            return self._adapter.dump_json(validated, exclude_none=True).decode("utf-8")
        except ValidationError as e:
            raise CodecError(f"Cannot encode {self.name}: {e}") from e

    def decode(self, text: Optional[str]) -> V:
        """Column text -> Python value. Empty columns decode to the empty value."""
        if not text:
            return self._empty()
        try:
            return self._adapter.validate_json(text)
        except ValidationError as e:
            raise CodecError(f"Cannot decode {self.name}: {e}") from e

    def to_wire(self, text: Optional[str]) -> Any:
        """Column text -> JSON-compatible value for the remote payload."""
        value = self.decode(text)
        if value is None:
            return None
        return self._adapter.dump_python(value, mode="json", exclude_none=True)

    def from_wire(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, str):
            # Some remotes hand back the column text as-is
            return self.encode(self.decode(value))
        return self.encode(value)


STRING_LIST = JsonCodec("string list", List[str], list)
YARN_MATERIALS = JsonCodec("yarn materials", List[ProjectYarn], list)
WORK_PROGRESS = JsonCodec("work progress", List[WorkProgressEntry], list)
INSPIRATION_SOURCES = JsonCodec("inspiration sources", List[InspirationSource], list)
YARN_DETAILS = JsonCodec("yarn details", Optional[YarnDetails], lambda: None)
HOOK_DETAILS = JsonCodec("hook details", Optional[HookDetails], lambda: None)
OTHER_DETAILS = JsonCodec("other details", Optional[OtherDetails], lambda: None)
