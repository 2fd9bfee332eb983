import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Loads variables from a .env file when present
load_dotenv()

DATABASE_NAME = "craftsync.db"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class SyncSettings:
    """Runtime settings for the local store and the sync engine."""

    db_path: str = DATABASE_NAME
    api_url: Optional[str] = None
    timeout_seconds: float = 10.0
    debounce_seconds: float = 3.0
    max_retries: int = 3
    retry_base_delay: float = 0.5
    incremental_pull: bool = False
    reconcile_sample_size: int = 10
    wifi_only: bool = False
    owner_id: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def remote_configured(self) -> bool:
        return bool(self.api_url)

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            db_path=os.getenv("CRAFTSYNC_DB_PATH") or DATABASE_NAME,
            api_url=os.getenv("CRAFTSYNC_API_URL") or None,
            timeout_seconds=_env_float("CRAFTSYNC_TIMEOUT_SECONDS", 10.0),
            debounce_seconds=_env_float("CRAFTSYNC_DEBOUNCE_SECONDS", 3.0),
            max_retries=_env_int("CRAFTSYNC_MAX_RETRIES", 3),
            retry_base_delay=_env_float("CRAFTSYNC_RETRY_BASE_DELAY", 0.5),
            incremental_pull=_env_bool("CRAFTSYNC_INCREMENTAL_PULL", False),
            reconcile_sample_size=_env_int("CRAFTSYNC_RECONCILE_SAMPLE_SIZE", 10),
            wifi_only=_env_bool("CRAFTSYNC_WIFI_ONLY", False),
            owner_id=os.getenv("CRAFTSYNC_OWNER_ID") or None,
            log_level=os.getenv("CRAFTSYNC_LOG_LEVEL", "INFO"),
            log_file=os.getenv("CRAFTSYNC_LOG_FILE") or None,
        )
