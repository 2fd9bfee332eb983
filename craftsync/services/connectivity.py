import logging
import threading
import time
from enum import Enum
from typing import Optional, Protocol

from craftsync.services.remote_store import RemoteStore

logger = logging.getLogger(__name__)


class NetworkType(str, Enum):
    WIFI = "wifi"
    CELLULAR = "cellular"
    NONE = "none"
    UNKNOWN = "unknown"


class ConnectivityProvider(Protocol):
    def is_online(self) -> bool: ...

    def network_type(self) -> NetworkType: ...


class StaticConnectivity:
    """Connectivity reported by the host (OS network callbacks) or fixed in tests."""

    def __init__(self, online: bool = True, network_type: NetworkType = NetworkType.WIFI):
        self._online = online
        self._network_type = network_type

    def set_state(self, online: bool, network_type: Optional[NetworkType] = None):
        self._online = online
        if network_type is not None:
            self._network_type = network_type

    def is_online(self) -> bool:
        return self._online

    def network_type(self) -> NetworkType:
        return self._network_type if self._online else NetworkType.NONE


class HttpConnectivityProbe:
    """Online means the remote answered a ping recently; the result is cached for `ttl` seconds."""

    def __init__(self, remote: RemoteStore, ttl: float = 30.0, network_type: NetworkType = NetworkType.UNKNOWN):
        self.remote = remote
        self.ttl = ttl
        self._network_type = network_type
        self._lock = threading.Lock()
        self._checked_at: Optional[float] = None
        self._online = False

    def is_online(self) -> bool:
        with self._lock:
            now = time.monotonic()
            if self._checked_at is not None and now - self._checked_at < self.ttl:
                return self._online
            self._online = self.remote.ping()
            self._checked_at = now
            if not self._online:
                logger.info("Remote store unreachable, treating device as offline")
            return self._online

    def network_type(self) -> NetworkType:
        return self._network_type if self.is_online() else NetworkType.NONE

    def invalidate(self):
        with self._lock:
            self._checked_at = None
