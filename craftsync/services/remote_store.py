import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import httpx

from craftsync.config import SyncSettings
from craftsync.errors import (
    RemoteAuthorizationError,
    RemoteNotConfiguredError,
    RemoteRejectedError,
    RemoteStoreError,
    RemoteUnavailableError,
)

logger = logging.getLogger(__name__)

# Stand-in for the access token: the remote scopes every query to this owner
OWNER_HEADER = "X-Owner-Id"


@dataclass
class RemoteBatch:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    # Highest server write stamp in `rows`, feeds the next incremental pull
    cursor: Optional[str] = None


class RemoteStore(ABC):
    """Owner-scoped access to the remote tables, one resource per record kind."""

    @abstractmethod
    def upsert(self, resource: str, owner_id: str, record: Dict[str, Any]) -> None:
        """Creates or replaces one record keyed by id."""

    @abstractmethod
    def fetch_changes(self, resource: str, owner_id: str, since: Optional[str] = None) -> RemoteBatch:
        """All rows of the owner, or those written at/after the `since` cursor."""

    @abstractmethod
    def fetch_ids(self, resource: str, owner_id: str) -> Set[str]:
        """Every id of the owner, tombstoned rows included."""

    @abstractmethod
    def find_existing_ids(self, resource: str, ids: Iterable[str]) -> Set[str]:
        """Subset of `ids` known remotely under any owner."""

    @abstractmethod
    def ping(self) -> bool:
        ...

    def close(self):
        pass


class HttpRemoteStore(RemoteStore):
    """RemoteStore over the craftsync_server HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        base_delay: float = 0.5,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if client is None and not base_url:
            raise RemoteNotConfiguredError("HttpRemoteStore needs a base_url or a client")
        self._owns_client = client is None
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> Optional["HttpRemoteStore"]:
        """None when no API URL is configured: sync then becomes a no-op."""
        if not settings.remote_configured:
            return None
        return cls(
            base_url=settings.api_url,
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
        )

    def _request(self, method: str, url: str, owner_id: Optional[str] = None, **kwargs) -> httpx.Response:
        """
        Performs one HTTP call with exponential backoff on transport errors and 5xx.
        401/403 and other 4xx are final and raised immediately.
        """
        headers = {OWNER_HEADER: owner_id} if owner_id else None
        error: RemoteStoreError = RemoteUnavailableError(f"{method} {url} was not attempted")

        for attempt in range(self.max_retries):
            try:
                response = self.client.request(method, url, headers=headers, **kwargs)
            except httpx.TransportError as e:
                error = RemoteUnavailableError(f"{method} {url} failed: {e}")
            else:
                if response.status_code in (401, 403):
                    raise RemoteAuthorizationError(
                        f"{method} {url} refused with HTTP {response.status_code}"
                    )
                if response.status_code < 500:
                    if response.is_error:
                        raise RemoteStoreError(
                            f"{method} {url} failed with HTTP {response.status_code}: {response.text}"
                        )
                    return response
                error = RemoteUnavailableError(f"{method} {url} returned HTTP {response.status_code}")

            if attempt < self.max_retries - 1:
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    f"Remote call failed (attempt {attempt + 1}/{self.max_retries}), "
                    f"retrying in {delay:.1f}s: {error}"
                )
                self._sleep(delay)

        raise error

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        """Response body as a JSON object. Anything else (a captive portal page) is a remote error."""
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteStoreError(
                f"{response.request.method} {response.request.url.path} returned a non-JSON body: {e}"
            ) from e
        if not isinstance(body, dict):
            raise RemoteStoreError(
                f"{response.request.method} {response.request.url.path} returned {type(body).__name__}, "
                f"expected an object"
            )
        return body

    def upsert(self, resource: str, owner_id: str, record: Dict[str, Any]) -> None:
        response = self._request("POST", f"/sync/push/{resource}", owner_id, json=[record])
        body = self._json(response)
        if record["id"] in body.get("processed_ids", []):
            return

        rejection = body.get("rejected", {}).get(record["id"]) or {}
        detail = rejection.get("detail", "record was not processed")
        if rejection.get("code") == "forbidden":
            raise RemoteAuthorizationError(f"{resource} {record['id']}: {detail}")
        raise RemoteRejectedError(f"{resource} {record['id']}: {detail}")

    def fetch_changes(self, resource: str, owner_id: str, since: Optional[str] = None) -> RemoteBatch:
        params = {"since": since} if since else None
        response = self._request("GET", f"/sync/pull/{resource}", owner_id, params=params)
        body = self._json(response)
        return RemoteBatch(rows=body.get("changes", []), cursor=body.get("cursor"))

    def fetch_ids(self, resource: str, owner_id: str) -> Set[str]:
        response = self._request("GET", f"/sync/ids/{resource}", owner_id)
        return set(self._json(response).get("ids", []))

    def find_existing_ids(self, resource: str, ids: Iterable[str]) -> Set[str]:
        id_list = list(ids)
        if not id_list:
            return set()
        response = self._request("POST", f"/sync/exists/{resource}", json=id_list)
        return set(self._json(response).get("ids", []))

    def ping(self) -> bool:
        try:
            response = self.client.get("/")
        except httpx.HTTPError as e:
            logger.debug(f"Ping failed: {e}")
            return False
        return response.is_success

    def close(self):
        if self._owns_client:
            self.client.close()
