from typing import Optional, Protocol


class AuthProvider(Protocol):
    """What the sync engine needs to know about the signed-in user."""

    @property
    def owner_id(self) -> Optional[str]: ...

    @property
    def can_sync(self) -> bool: ...


class AuthSession:
    """
    Holds the current owner for one app session.
    Sign-in and tier changes are pushed here by the host's auth layer;
    cloud sync is a paid-tier feature, hence the separate eligibility flag.
    """

    def __init__(self, owner_id: Optional[str] = None, can_sync: bool = False):
        self._owner_id = owner_id
        self._can_sync = can_sync

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def can_sync(self) -> bool:
        return self._owner_id is not None and self._can_sync

    @property
    def is_authenticated(self) -> bool:
        return self._owner_id is not None

    def sign_in(self, owner_id: str, can_sync: bool = True):
        self._owner_id = owner_id
        self._can_sync = can_sync

    def sign_out(self):
        self._owner_id = None
        self._can_sync = False

    def set_tier(self, can_sync: bool):
        self._can_sync = can_sync
