"""Shared fixtures: an opened local store, a session and an in-memory remote store."""

import pytest

from craftsync.config import SyncSettings
from craftsync.data.local_store import LocalStore
from craftsync.services.auth_service import AuthSession
from craftsync.services.connectivity import StaticConnectivity
from craftsync.services.sync_manager import SyncEngine
from tests.fakes import OWNER, FakeRemoteStore


@pytest.fixture
def auth():
    """A signed-in, sync-eligible session."""
    return AuthSession(owner_id=OWNER, can_sync=True)


@pytest.fixture
def guest_auth():
    return AuthSession()


@pytest.fixture
def store(tmp_path, auth):
    store = LocalStore(str(tmp_path / "local.db"), auth=auth).open()
    yield store
    store.close()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def connectivity():
    return StaticConnectivity(online=True)


@pytest.fixture
def settings(tmp_path):
    return SyncSettings(db_path=str(tmp_path / "local.db"), api_url="http://remote.test", debounce_seconds=0.05)


@pytest.fixture
def engine(store, remote, auth, connectivity, settings):
    engine = SyncEngine(store, remote, auth, connectivity, settings, sync_on_change=False)
    yield engine
    engine.close()

