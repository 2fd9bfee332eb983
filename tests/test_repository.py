"""Tests for the change tracking / mutation API of the repositories."""

import pytest

from craftsync.data.local_store import LocalStore
from craftsync.errors import CodecError
from craftsync.models import codecs
from craftsync.models.inventory_item import InventoryCategory
from craftsync.models.project import Project, ProjectStatus
from tests.fakes import OTHER_OWNER, OWNER, mark_synced


@pytest.fixture
def guest_store(tmp_path, guest_auth):
    store = LocalStore(str(tmp_path / "guest.db"), auth=guest_auth).open()
    yield store
    store.close()


class TestCreate:
    """Tests for create()."""

    def test_create_stamps_sync_fields(self, store):
        project_id = store.projects.create({"title": "Amigurumi fox", "status": ProjectStatus.TODO})

        project = store.projects.get_by_id(project_id)
        assert project.owner_id == OWNER
        assert project.pending_sync is True
        assert project.synced_at is None
        assert project.deleted_at is None
        assert project.created_at == project.updated_at

    def test_create_in_guest_mode_has_no_owner(self, guest_store):
        project_id = guest_store.projects.create({"title": "Offline scarf"})

        assert guest_store.projects.get_by_id(project_id).owner_id is None

    def test_ids_are_unique(self, store):
        ids = {store.projects.create({"title": f"Project {n}"}) for n in range(5)}
        assert len(ids) == 5

    def test_composite_values_are_encoded(self, store):
        item_id = store.inventory.create(
            {
                "category": InventoryCategory.YARN,
                "name": "Alize Angora Gold",
                "tags": ["wool", "winter"],
                "yarn_details": {"brand": "Alize", "ball_weight": 100},
            }
        )

        item = store.inventory.get_by_id(item_id)
        assert item.composite("tags") == ["wool", "winter"]
        assert item.composite("yarn_details").brand == "Alize"
        assert item.composite("hook_details") is None

    def test_invalid_input_is_rejected(self, store):
        with pytest.raises(ValueError):
            store.projects.create({"title": ""})
        with pytest.raises(ValueError):
            store.projects.create({"title": "x", "colour": "red"})
        with pytest.raises(ValueError):
            store.projects.create({"title": "x", "pending_sync": False})
        with pytest.raises(ValueError):
            store.inventory.create({"category": "yarn", "quantity": -1})

    def test_composite_text_must_parse(self, store):
        with pytest.raises(CodecError):
            store.projects.create({"title": "Bag", "images": "bag.jpg"})
        with pytest.raises(CodecError):
            store.inventory.create({"category": "hook", "name": "4 mm", "hook_details": '{"size": "4 mm"'})
        assert store.projects.list_all() == []

    def test_composite_text_is_stored_in_canonical_form(self, store):
        project_id = store.projects.create({"title": "Bag", "images": '[ "bag.jpg" ]'})

        project = store.projects.get_by_id(project_id)
        assert project.images == codecs.STRING_LIST.encode(["bag.jpg"])
        assert project.to_remote()["images"] == ["bag.jpg"]

    def test_update_with_bad_composite_text_keeps_record(self, store):
        project_id = store.projects.create({"title": "Bag", "images": ["bag.jpg"]})

        with pytest.raises(CodecError):
            store.projects.update(project_id, {"images": "not json"})
        assert store.projects.get_by_id(project_id).composite("images") == ["bag.jpg"]


class TestUpdateAndDelete:
    """Tests for update() and delete()."""

    def test_update_merges_and_marks_dirty(self, store):
        project_id = store.projects.create({"title": "Cardigan", "notes": "size M"})
        mark_synced(store, "projects", project_id)
        before = store.projects.get_by_id(project_id)

        updated = store.projects.update(project_id, {"status": ProjectStatus.COMPLETED})

        after = store.projects.get_by_id(project_id)
        assert updated.id == project_id
        assert after.status == ProjectStatus.COMPLETED.value
        assert after.notes == "size M"
        assert after.pending_sync is True
        assert after.updated_at > before.updated_at
        assert after.created_at == before.created_at

    def test_update_unknown_or_deleted_record(self, store):
        project_id = store.projects.create({"title": "Socks"})
        store.projects.delete(project_id)

        assert store.projects.update("missing", {"title": "x"}) is None
        assert store.projects.update(project_id, {"title": "x"}) is None

    def test_delete_sets_tombstone(self, store):
        project_id = store.projects.create({"title": "Hat"})
        mark_synced(store, "projects", project_id)
        before = store.projects.get_by_id(project_id)

        assert store.projects.delete(project_id) is True

        assert store.projects.get_by_id(project_id) is None
        deleted = store.projects.get_by_id(project_id, include_deleted=True)
        assert deleted.deleted_at is not None
        assert deleted.pending_sync is True
        assert deleted.updated_at > before.updated_at
        assert [p.id for p in store.projects.list_all()] == []

    def test_delete_is_idempotent(self, store):
        project_id = store.projects.create({"title": "Mittens"})
        store.projects.delete(project_id)
        first = store.projects.get_by_id(project_id, include_deleted=True)

        assert store.projects.delete(project_id) is True
        assert store.projects.get_by_id(project_id, include_deleted=True).updated_at == first.updated_at
        assert store.projects.delete("missing") is False

    def test_listeners_are_notified(self, store):
        seen = []
        store.projects.add_listener(lambda resource, record_id: seen.append((resource, record_id)))

        project_id = store.projects.create({"title": "Poncho"})
        store.projects.update(project_id, {"notes": "fringe"})
        store.projects.delete(project_id)

        assert seen == [("projects", project_id)] * 3


class TestClaimOrphans:
    """Tests for claim_orphans()."""

    def test_claim_preserves_data_and_assigns_once(self, guest_store):
        project_id = guest_store.projects.create(
            {
                "title": "Guest blanket",
                "description": "made before signing up",
                "yarn_materials": [codecs.ProjectYarn(item_id="yarn-9", quantity=6)],
            }
        )
        before = guest_store.projects.get_by_id(project_id)

        assert guest_store.claim_orphans(OWNER) == 1
        assert guest_store.claim_orphans(OTHER_OWNER) == 0

        after = guest_store.projects.get_by_id(project_id)
        assert after.owner_id == OWNER
        assert after.pending_sync is True
        for name in Project.model_fields:
            if name != "owner_id":
                assert getattr(after, name) == getattr(before, name)

    def test_claim_leaves_owned_records_alone(self, guest_store):
        first = guest_store.projects.create({"title": "First"})
        second = guest_store.projects.create({"title": "Second"})
        assert guest_store.projects.claim_orphans(OTHER_OWNER) == 2

        later = guest_store.projects.create({"title": "Later"})
        assert guest_store.projects.claim_orphans(OWNER) == 1

        assert guest_store.projects.get_by_id(first).owner_id == OTHER_OWNER
        assert guest_store.projects.get_by_id(second).owner_id == OTHER_OWNER
        assert guest_store.projects.get_by_id(later).owner_id == OWNER


class TestSyncPrimitives:
    """Tests for the primitives used by push, pull and reconcile."""

    def test_dirty_records_are_owner_scoped(self, store, guest_auth):
        mine = store.projects.create({"title": "Mine"})
        store.projects.auth = guest_auth
        store.projects.create({"title": "Guest"})

        assert [p.id for p in store.projects.get_dirty_records(OWNER)] == [mine]

    def test_mark_as_synced_only_for_the_pushed_version(self, store):
        project_id = store.projects.create({"title": "Shawl"})
        pushed = store.projects.get_by_id(project_id)
        store.projects.update(project_id, {"notes": "edited during upload"})

        assert store.projects.mark_as_synced(project_id, pushed.updated_at) is False
        assert store.projects.get_by_id(project_id).pending_sync is True

    def test_upsert_from_remote_only_replaces_older_rows(self, store):
        project_id = store.projects.create({"title": "Local"})
        local = store.projects.get_by_id(project_id)

        older = Project.from_remote(
            {"id": project_id, "owner_id": OWNER, "title": "Old", "updated_at": "2000-01-01T00:00:00Z"}
        )
        newer = Project.from_remote(
            {"id": project_id, "owner_id": OWNER, "title": "New", "updated_at": "2999-01-01T00:00:00Z"}
        )

        assert store.projects.upsert_from_remote(older) is False
        assert store.projects.get_by_id(project_id).title == local.title
        assert store.projects.upsert_from_remote(newer) is True
        merged = store.projects.get_by_id(project_id)
        assert merged.title == "New"
        assert merged.pending_sync is False

    def test_count_pending(self, store):
        first = store.projects.create({"title": "One"})
        store.inventory.create({"category": "hook", "name": "4 mm"})
        mark_synced(store, "projects", first)

        assert store.projects.count_pending() == 0
        assert store.count_pending() == 1


class TestQueries:
    """Tests for the typed query helpers."""

    def test_project_search_and_status(self, store):
        store.projects.create({"title": "Sunflower cardigan", "status": "in-progress"})
        store.projects.create({"title": "Baby blanket", "notes": "sunflower motif"})
        store.projects.create({"title": "Tote bag", "status": "completed"})

        assert len(store.projects.search("sunflower")) == 2
        assert [p.title for p in store.projects.list_by_status(ProjectStatus.COMPLETED)] == ["Tote bag"]

    def test_inventory_category_and_barcode(self, store):
        store.inventory.create({"category": "yarn", "name": "Cotton", "barcode": "8690000000001"})
        store.inventory.create({"category": "hook", "name": "3.5 mm"})

        assert [i.name for i in store.inventory.list_by_category(InventoryCategory.HOOK)] == ["3.5 mm"]
        assert store.inventory.find_by_barcode("8690000000001").name == "Cotton"
        assert store.inventory.find_by_barcode("nope") is None
