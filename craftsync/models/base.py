import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple

from sqlmodel import Field, SQLModel

from craftsync.errors import CodecError
from craftsync.models.codecs import JsonCodec

# Canonical UTC text form, lexicographically ordered like the instants it encodes
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

LOCAL_ONLY_FIELDS = ("pending_sync", "synced_at")
SYSTEM_FIELDS = ("id", "owner_id", "created_at", "updated_at", "deleted_at") + LOCAL_ONLY_FIELDS


# Helpers for UTC timestamps
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: Any) -> Optional[str]:
    """Any accepted timestamp representation -> canonical text (None stays None)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return format_timestamp(value)
    return format_timestamp(parse_timestamp(str(value)))


def utc_now_iso() -> str:
    return format_timestamp(utc_now())


def next_timestamp(previous: Optional[str]) -> str:
    """Mutation stamp for a record: now, but never at or before ``previous``."""
    now = utc_now()
    if previous:
        floor = parse_timestamp(previous) + timedelta(microseconds=1)
        if now < floor:
            now = floor
    return format_timestamp(now)


class SyncModel(SQLModel):
    """
    Base class for every synchronizable record.
    Client-generated UUID, owner scoping, soft delete and local sync bookkeeping.
    """
    # UUID v4 generated on the device, never autoincrement
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)

    # Null while the record belongs to a guest session
    owner_id: Optional[str] = Field(default=None)

    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    # Tombstone for soft delete
    deleted_at: Optional[str] = Field(default=None)

    # Local-only: never sent to the remote
    pending_sync: bool = Field(default=True)
    synced_at: Optional[str] = Field(default=None)

    composite_fields: ClassVar[Dict[str, JsonCodec]] = {}
    timestamp_fields: ClassVar[Tuple[str, ...]] = ()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def composite(self, name: str) -> Any:
        """Decoded value of a composite column."""
        return type(self).composite_fields[name].decode(getattr(self, name))

    @classmethod
    def all_timestamp_fields(cls) -> Tuple[str, ...]:
        return ("created_at", "updated_at", "deleted_at") + cls.timestamp_fields

    @classmethod
    def encode_fields(cls, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Encodes decoded composite values and normalizes timestamps of user input."""
        unknown = [name for name in fields if name not in cls.model_fields]
        if unknown:
            raise ValueError(f"Unknown field(s) for {cls.__name__}: {', '.join(sorted(unknown))}")

        data = {}
        for name, value in fields.items():
            codec = cls.composite_fields.get(name)
            if codec is not None:
                # Column text is accepted only if it parses as the composite
                value = codec.encode(codec.decode(value) if isinstance(value, str) else value)
            elif name in cls.all_timestamp_fields():
                value = normalize_timestamp(value)
            data[name] = value
        return data

    def to_row(self) -> Dict[str, Any]:
        """Every column, as plain values ready for an insert/upsert statement."""
        row = {}
        for name in type(self).model_fields:
            value = getattr(self, name)
            if isinstance(value, Enum):
                value = value.value
            row[name] = value
        return row

    def to_remote(self) -> Dict[str, Any]:
        """Local row -> remote payload (no local-only fields, composites decoded)."""
        payload = {}
        for name in type(self).model_fields:
            if name in LOCAL_ONLY_FIELDS:
                continue
            value = getattr(self, name)
            codec = type(self).composite_fields.get(name)
            if codec is not None:
                value = codec.to_wire(value)
            elif name in type(self).all_timestamp_fields():
                value = normalize_timestamp(value)
            elif isinstance(value, Enum):
                value = value.value
            payload[name] = value
        return payload

    @classmethod
    def from_remote(cls, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Remote payload -> complete local row, marked as synced."""
        if not payload.get("id") or not payload.get("updated_at"):
            raise CodecError(f"Remote {cls.__name__} row without id or updated_at")

        data = {}
        for name in cls.model_fields:
            if name in LOCAL_ONLY_FIELDS or name not in payload:
                continue
            value = payload[name]
            codec = cls.composite_fields.get(name)
            try:
                if codec is not None:
                    value = codec.from_wire(value)
                elif name in cls.all_timestamp_fields():
                    value = normalize_timestamp(value)
            except ValueError as e:
                raise CodecError(f"Remote {cls.__name__} {payload['id']}: bad {name}: {e}") from e
            data[name] = value

        data["pending_sync"] = False
        data["synced_at"] = utc_now_iso()
        record = cls.model_validate(data)
        return record.to_row()
