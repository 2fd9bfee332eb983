"""Tests for the sync orchestrator."""

import threading
import time

import pytest

from craftsync.services.connectivity import NetworkType
from craftsync.services.results import SkipReason
from craftsync.services.sync_manager import SyncEngine
from tests.fakes import OWNER, remote_row


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestCycle:
    """Tests for a full sync() cycle against the in-memory remote."""

    def test_offline_edits_sync_once_back_online(self, store, remote, connectivity, engine):
        connectivity.set_state(online=False)
        first = store.projects.create({"title": "Offline one"})
        second = store.inventory.create({"category": "yarn", "name": "Offline yarn"})

        offline = engine.sync()
        assert offline.status == "offline"
        assert remote.calls == []

        connectivity.set_state(online=True)
        result = engine.sync()

        assert result.status == "success"
        assert result.pushed == 2
        assert result.removed == 0
        assert first in remote.tables["projects"]
        assert second in remote.tables["inventory_items"]
        assert store.count_pending() == 0
        assert store.metadata.get_last_sync() is not None

    def test_remote_changes_are_pulled(self, store, remote, engine):
        remote.put("projects", remote_row("from-tablet", OWNER, "2024-03-01T00:00:00Z", title="Tablet"))

        result = engine.sync()

        assert result.pulled == 1
        assert store.projects.get_by_id("from-tablet").title == "Tablet"

    def test_guest_records_are_claimed_before_push(self, store, remote, auth, engine):
        auth.sign_out()
        guest_id = store.projects.create({"title": "Made as guest"})
        auth.sign_in(OWNER)

        result = engine.sync()

        assert result.claimed == 1
        assert result.pushed == 1
        assert remote.tables["projects"][guest_id]["owner_id"] == OWNER

    def test_stage_failure_abandons_the_cycle(self, store, remote, engine, monkeypatch):
        store.projects.create({"title": "Pushed before the failure"})

        def broken_fetch(resource, owner_id, since=None):
            raise RuntimeError("decoder exploded")

        monkeypatch.setattr(remote, "fetch_changes", broken_fetch)

        result = engine.sync()

        assert result.status == "error"
        assert result.completed is False
        assert result.pushed == 1
        assert result.errors[-1].stage == "pull"
        assert store.metadata.get_last_sync() is None
        assert remote.calls_to("fetch_ids") == 0
        assert not engine.is_syncing

    def test_record_failures_make_a_partial_cycle(self, store, remote, engine):
        rejected = store.projects.create({"title": "Rejected"})
        store.projects.create({"title": "Accepted"})
        remote.reject_ids.add(rejected)

        result = engine.sync()

        assert result.status == "partial"
        assert result.completed is True
        assert result.pushed == 1
        assert store.metadata.get_last_sync() is not None
        assert store.projects.get_by_id(rejected).pending_sync is True

    def test_report_has_the_counts(self, store, engine):
        store.projects.create({"title": "Counted"})

        report = engine.sync().as_report()

        assert report["status"] == "success"
        assert report["pushed"] == 1
        assert report["errors"] == []


class TestGates:
    """sync() is a no-op whenever the session cannot sync."""

    def test_no_remote_configured(self, store, auth, connectivity, settings):
        engine = SyncEngine(store, None, auth, connectivity, settings, sync_on_change=False)
        try:
            result = engine.sync()
        finally:
            engine.close()

        assert result.skipped == SkipReason.NOT_CONFIGURED
        assert result.status == "skipped"

    @pytest.mark.parametrize("signed_in, can_sync", [(False, False), (True, False)])
    def test_ineligible_session(self, store, remote, auth, engine, signed_in, can_sync):
        if signed_in:
            auth.set_tier(can_sync)
        else:
            auth.sign_out()

        result = engine.sync()

        assert result.skipped == SkipReason.NOT_ELIGIBLE
        assert remote.calls == []

    def test_wifi_only_skips_metered_networks(self, remote, connectivity, settings, engine):
        settings.wifi_only = True
        connectivity.set_state(online=True, network_type=NetworkType.CELLULAR)

        result = engine.sync()

        assert result.skipped == SkipReason.METERED_NETWORK
        assert result.status == "offline"
        assert remote.calls == []

        connectivity.set_state(online=True, network_type=NetworkType.WIFI)
        assert engine.sync().status == "success"

    def test_closed_engine_does_nothing(self, remote, engine):
        engine.close()

        assert engine.sync().skipped == SkipReason.CLOSED
        assert remote.closed


class TestSingleFlight:
    """At most one cycle runs at a time."""

    def test_concurrent_trigger_is_a_noop(self, store, remote, engine):
        store.projects.create({"title": "Slow upload"})
        entered = threading.Event()
        release = threading.Event()

        def block(resource, record):
            entered.set()
            release.wait(timeout=5)

        remote.on_upsert = block
        results = []
        worker = threading.Thread(target=lambda: results.append(engine.sync()))
        worker.start()
        try:
            assert entered.wait(timeout=5)
            assert engine.is_syncing
            calls_before = len(remote.calls)

            second = engine.sync()

            assert second.skipped == SkipReason.IN_FLIGHT
            assert len(remote.calls) == calls_before
        finally:
            release.set()
            worker.join(timeout=5)

        assert results[0].status == "success"
        assert not engine.is_syncing
        assert engine.sync().skipped is None

    def test_guard_is_released_after_an_exception(self, store, engine, monkeypatch):
        def explode(owner_id):
            raise RuntimeError("claim failed")

        monkeypatch.setattr(store, "claim_orphans", explode)

        assert engine.sync().status == "error"
        assert not engine.is_syncing


class TestDebounce:
    """Tests for debounced_sync()."""

    def _count_syncs(self, engine, monkeypatch):
        calls = []
        monkeypatch.setattr(engine.settings, "debounce_seconds", 0.2)
        monkeypatch.setattr(engine, "sync", lambda: calls.append(time.monotonic()))
        return calls

    def test_burst_collapses_into_one_sync(self, engine, monkeypatch):
        calls = self._count_syncs(engine, monkeypatch)

        for _ in range(5):
            engine.debounced_sync()
            time.sleep(0.01)

        assert wait_until(lambda: len(calls) == 1)
        time.sleep(0.3)
        assert len(calls) == 1

    def test_local_mutations_schedule_a_sync(self, store, remote, auth, connectivity, settings, monkeypatch):
        engine = SyncEngine(store, remote, auth, connectivity, settings, sync_on_change=True)
        try:
            calls = self._count_syncs(engine, monkeypatch)

            project_id = store.projects.create({"title": "Triggers sync"})
            store.projects.update(project_id, {"notes": "and again"})

            assert wait_until(lambda: len(calls) == 1)
        finally:
            engine.close()

        store.projects.create({"title": "After close"})
        time.sleep(0.15)
        assert len(calls) == 1

    def test_close_cancels_a_pending_timer(self, engine, monkeypatch):
        calls = self._count_syncs(engine, monkeypatch)

        engine.debounced_sync()
        engine.close()
        time.sleep(0.3)

        assert calls == []


class TestStatus:
    """Tests for get_sync_status()."""

    def test_status_reflects_pending_work_and_last_sync(self, store, connectivity, engine):
        store.projects.create({"title": "Pending"})

        before = engine.get_sync_status()
        assert before.pending_count == 1
        assert before.last_sync_at is None
        assert before.is_online
        assert not before.is_syncing

        engine.sync()
        connectivity.set_state(online=False)

        after = engine.get_sync_status()
        assert after.pending_count == 0
        assert after.last_sync_at is not None
        assert not after.is_online
