from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class SkipReason:
    IN_FLIGHT = "in_flight"
    NOT_CONFIGURED = "not_configured"
    SCHEMA_NOT_READY = "schema_not_ready"
    NOT_ELIGIBLE = "not_eligible"
    OFFLINE = "offline"
    METERED_NETWORK = "metered_network"
    CLOSED = "closed"


@dataclass
class SyncError:
    stage: str
    message: str
    resource: Optional[str] = None
    record_id: Optional[str] = None

    def __str__(self) -> str:
        target = ":".join(part for part in (self.resource, self.record_id) if part)
        return f"[{self.stage}] {target} {self.message}" if target else f"[{self.stage}] {self.message}"


@dataclass
class PushResult:
    pushed_count: int = 0
    errors: List[SyncError] = field(default_factory=list)
    by_resource: Dict[str, int] = field(default_factory=dict)


@dataclass
class PullResult:
    pulled_count: int = 0
    errors: List[SyncError] = field(default_factory=list)
    by_resource: Dict[str, int] = field(default_factory=dict)


@dataclass
class ReconcileResult:
    removed_count: int = 0
    skipped: List[str] = field(default_factory=list)
    errors: List[SyncError] = field(default_factory=list)
    by_resource: Dict[str, int] = field(default_factory=dict)


@dataclass
class SyncResult:
    claimed: int = 0
    pushed: int = 0
    pulled: int = 0
    removed: int = 0
    errors: List[SyncError] = field(default_factory=list)
    skipped: Optional[str] = None
    # True once every stage ran and last_sync was persisted
    completed: bool = False
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.completed and not self.errors

    @property
    def status(self) -> str:
        if self.skipped in (SkipReason.OFFLINE, SkipReason.METERED_NETWORK):
            return "offline"
        if self.skipped:
            return "skipped"
        if self.completed:
            return "success" if not self.errors else "partial"
        return "error"

    def as_report(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "claimed": self.claimed,
            "pushed": self.pushed,
            "pulled": self.pulled,
            "removed": self.removed,
            "errors": [str(e) for e in self.errors],
            "skipped": self.skipped,
        }


@dataclass
class SyncStatus:
    last_sync_at: Optional[str]
    pending_count: int
    is_online: bool
    is_syncing: bool = False
