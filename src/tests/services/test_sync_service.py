"""Tests for the sync coordinator.

Tests cover:
- Mode switching, persistence and listeners
- Loading in local mode, remote mode and the read-only fallback
- Generic push restricted to operational collections
- Offline queueing, ordered replay and the 10-entry ring buffer
- Direct master-data writes and their rollback on remote failure
- Menu approvals, edits and deletions written through to the remote menus
- The one-time local-to-remote migration
"""

from datetime import date

import pytest

from src.models import DataMode, OrderStatus
from src.services import client_service, order_service
from src.services.exceptions import (
    ConnectivityError,
    QueueReplayError,
    ReadOnlyModeError,
    ValidationError,
)
from src.services.remote_store import InMemoryRemoteStore
from src.services.settings_service import get_blocked_dates
from src.services.sync_service import SyncContext, SyncCoordinator

MONDAY = date(2024, 6, 3)

LOG_ENTRY = {
    "date": "2024-06-03",
    "clientName": "Tim Brown",
    "stopKey": "Tim Brown|10 main st",
    "handoffType": "hand",
}


@pytest.fixture
def coordinator(test_db, remote_store):
    return SyncCoordinator(remote_store)


@pytest.fixture
def remote_coordinator(coordinator):
    coordinator.set_mode("remote")
    return coordinator


def _kinds(store):
    return [kind for kind, _ in store.writes]


class TestModeAndContext:
    def test_defaults_to_local(self, coordinator):
        assert coordinator.context.mode is DataMode.LOCAL
        assert coordinator.context.writable

    def test_mode_persists_and_notifies(self, coordinator):
        seen = []
        coordinator.context.add_listener(seen.append)

        coordinator.set_mode("remote")

        assert seen == [DataMode.REMOTE]
        assert SyncContext.load().mode is DataMode.REMOTE

    def test_unknown_mode_rejected(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.set_mode("cloud")

    def test_reset_restores_defaults(self, remote_coordinator):
        remote_coordinator.store.online = False
        remote_coordinator.push({"deliveryLog": [LOG_ENTRY]})

        remote_coordinator.context.reset()

        restored = SyncContext.load()
        assert restored.mode is DataMode.LOCAL
        assert restored.queue_length == 0


class TestLoad:
    def test_local_mode_serves_cache(self, coordinator, sample_client):
        result = coordinator.load()

        assert result.source == "local"
        assert result.writable
        assert result.counts["clients"] == 1

    def test_remote_mode_replaces_cache(self, remote_coordinator, sample_client):
        store = remote_coordinator.store
        store.save_one(
            "clients",
            {
                "name": "Ana Diaz",
                "deliveryDay": "Monday",
                "zone": "2",
                "contacts": [{"fullName": "Ana Diaz", "address": "5 Pine St"}],
            },
        )
        store.save_one("menus", {"clientName": "Ana Diaz", "date": "2024-06-03", "protein": "Beef", "approved": True})
        store.save_setting("blockedDates", ["2024-06-10"])

        result = remote_coordinator.load()

        assert result.source == "remote"
        assert result.writable
        assert [c.name for c in client_service.list_clients()] == ["Ana Diaz"]
        assert order_service.get_order("Ana Diaz", MONDAY).protein == "Beef"
        assert get_blocked_dates() == [date(2024, 6, 10)]
        assert remote_coordinator.context.status.last_synced_at is not None

    def test_offline_falls_back_read_only(self, remote_coordinator, sample_client):
        remote_coordinator.store.online = False

        result = remote_coordinator.load()

        assert result.source == "local"
        assert not result.writable
        assert [c.name for c in client_service.list_clients()] == ["Tim Brown"]
        with pytest.raises(ReadOnlyModeError):
            remote_coordinator.save_client({"name": "Ana Diaz", "pickup": True})

    def test_passthrough_documents_cached(self, remote_coordinator):
        remote_coordinator.store.save_one("recipes", {"name": "Chili", "category": "Main"})

        remote_coordinator.load()

        assert remote_coordinator.passthrough_records("recipes") == [{"name": "Chili", "category": "Main"}]


class TestPush:
    def test_local_mode_sends_nothing(self, coordinator):
        result = coordinator.push({"deliveryLog": [LOG_ENTRY]})

        assert result.pushed == []
        assert coordinator.store.writes == []

    def test_master_kinds_are_skipped(self, remote_coordinator):
        result = remote_coordinator.push(
            {"deliveryLog": [LOG_ENTRY], "clients": [{"name": "X"}], "menuItems": []}
        )

        assert result.pushed == ["deliveryLog"]
        assert sorted(result.skipped) == ["clients", "menuItems"]
        assert _kinds(remote_coordinator.store) == ["settings:deliveryLog"]

    def test_portal_data_saved_per_client(self, remote_coordinator):
        remote_coordinator.push({"clientPortalData": {"Tim Brown": {"selectedDates": ["2024-06-03"]}}})

        records = remote_coordinator.store.fetch_all("portalData")
        assert records == [{"clientName": "Tim Brown", "selectedDates": ["2024-06-03"]}]

    def test_offline_push_queues(self, remote_coordinator):
        remote_coordinator.store.online = False

        result = remote_coordinator.push({"deliveryLog": [LOG_ENTRY]})

        assert result.queued
        assert result.queue_length == 1
        assert SyncContext.load().queue_length == 1

    def test_write_failure_queues(self, remote_coordinator):
        remote_coordinator.store.fail_writes = 1

        result = remote_coordinator.push({"deliveryLog": [LOG_ENTRY]})

        assert result.queued

    def test_queue_keeps_ten_newest(self, remote_coordinator):
        remote_coordinator.store.online = False
        for i in range(12):
            remote_coordinator.push({"blockedDates": [f"2024-07-{i + 1:02d}"]})

        pending = list(remote_coordinator.context.pending)
        assert len(pending) == 10
        assert pending[0]["payload"] == {"blockedDates": ["2024-07-03"]}


class TestReplay:
    def test_replay_clears_queue(self, remote_coordinator):
        store = remote_coordinator.store
        store.online = False
        remote_coordinator.push({"deliveryLog": [LOG_ENTRY]})
        remote_coordinator.push({"blockedDates": ["2024-06-10"]})
        store.online = True

        assert remote_coordinator.replay_pending() == 2

        assert remote_coordinator.context.queue_length == 0
        assert _kinds(store) == ["settings:deliveryLog", "settings:blockedDates"]

    def test_replay_while_offline(self, remote_coordinator):
        remote_coordinator.store.online = False
        remote_coordinator.push({"deliveryLog": [LOG_ENTRY]})

        with pytest.raises(ConnectivityError):
            remote_coordinator.replay_pending()

    def test_failed_entry_keeps_whole_queue(self, remote_coordinator):
        store = remote_coordinator.store
        store.online = False
        remote_coordinator.push({"deliveryLog": [LOG_ENTRY]})
        remote_coordinator.push({"blockedDates": ["2024-06-10"]})
        store.online = True
        store.fail_writes = 1

        with pytest.raises(QueueReplayError) as exc_info:
            remote_coordinator.replay_pending()

        assert exc_info.value.processed == 1
        assert remote_coordinator.context.queue_length == 2

    def test_connectivity_check_replays(self, remote_coordinator):
        store = remote_coordinator.store
        store.online = False
        remote_coordinator.push({"deliveryLog": [LOG_ENTRY]})
        store.online = True

        assert remote_coordinator.check_connectivity()
        assert remote_coordinator.context.queue_length == 0


class TestDirectWrites:
    def test_save_client_writes_both_sides(self, remote_coordinator):
        remote_coordinator.save_client(
            {"name": "Tim Brown", "zone": "1", "contacts": [{"fullName": "Tim", "address": "10 Main St"}]}
        )

        assert client_service.get_client("Tim Brown").zone == "1"
        remote = remote_coordinator.store.fetch_all("clients")
        assert remote[0]["contacts"][0]["address"] == "10 Main St"

    def test_save_client_updates_existing(self, remote_coordinator, sample_client):
        remote_coordinator.save_client({"name": "Tim Brown", "zone": "3"})
        assert client_service.get_client("Tim Brown").zone == "3"

    def test_remote_failure_rolls_back_local_write(self, remote_coordinator):
        remote_coordinator.store.fail_writes = 1

        with pytest.raises(ConnectivityError):
            remote_coordinator.save_client({"name": "Ana Diaz", "pickup": True})

        assert client_service.get_client_or_none("Ana Diaz") is None

    def test_local_mode_writes_locally_only(self, coordinator):
        coordinator.save_driver({"name": "Sam", "zone": "1", "accessCode": "sam1"})

        assert coordinator.store.writes == []

    def test_save_menu_item(self, remote_coordinator, sample_client):
        remote_coordinator.save_menu_item(
            {"clientName": "Tim Brown", "date": MONDAY, "protein": "Chicken"}, enforce_deadline=False
        )

        menus = remote_coordinator.store.fetch_all("menus")
        assert menus[0]["approved"] is False


class TestMenuWriteThrough:
    @pytest.fixture
    def planned(self, remote_coordinator):
        remote_coordinator.save_client(
            {"name": "Tim Brown", "deliveryDay": "Monday", "zone": "1", "contacts": [{"fullName": "Tim", "address": "10 Main St"}]}
        )
        remote_coordinator.save_menu_item(
            {"clientName": "Tim Brown", "date": MONDAY, "protein": "Chicken"}, enforce_deadline=False
        )
        return remote_coordinator

    def test_approval_survives_remote_load(self, planned):
        planned.approve_menu_item("Tim Brown", MONDAY)
        planned.push(planned.operational_payload())

        planned.load()

        assert order_service.get_order("Tim Brown", MONDAY).status is OrderStatus.MENU_APPROVED

    def test_approve_all_marks_remote_menus(self, planned):
        approved = planned.approve_all()

        assert [o.client_name for o in approved] == ["Tim Brown"]
        assert planned.store.fetch_all("menus")[0]["approved"] is True

    def test_edit_survives_remote_load(self, planned):
        planned.update_menu_item("Tim Brown", MONDAY, {"protein": "Beef"}, enforce_deadline=False)

        planned.load()

        assert order_service.get_order("Tim Brown", MONDAY).protein == "Beef"

    def test_deleted_item_stays_deleted(self, planned):
        planned.delete_menu_item("Tim Brown", MONDAY, enforce_deadline=False)

        planned.load()

        assert planned.store.fetch_all("menus") == []
        assert order_service.list_orders() == []

    def test_remote_failure_keeps_local_approval_pending(self, planned):
        planned.store.fail_writes = 1

        with pytest.raises(ConnectivityError):
            planned.approve_menu_item("Tim Brown", MONDAY)

        assert order_service.get_order("Tim Brown", MONDAY).status is OrderStatus.MENU_PENDING
        assert planned.store.fetch_all("menus")[0]["approved"] is False

    def test_local_mode_writes_locally_only(self, coordinator, sample_client):
        coordinator.save_menu_item(
            {"clientName": "Tim Brown", "date": MONDAY, "protein": "Chicken"}, enforce_deadline=False
        )
        coordinator.approve_menu_item("Tim Brown", MONDAY)
        coordinator.delete_menu_item("Tim Brown", MONDAY, enforce_deadline=False)

        assert coordinator.store.writes == []

    def test_save_recipe_replaces_same_key(self, remote_coordinator):
        remote_coordinator.save_recipe({"name": "Chili", "category": "Main", "serves": 4})
        remote_coordinator.save_recipe({"name": "Chili", "category": "Main", "serves": 6})

        assert remote_coordinator.passthrough_records("recipes") == [
            {"name": "Chili", "category": "Main", "serves": 6}
        ]


class TestMigration:
    def test_migrates_once(self, coordinator, sample_client, make_ready_order):
        make_ready_order("Tim Brown")

        result = coordinator.migrate_local_to_remote()

        assert result.migrated
        assert "clients" in result.kinds
        assert "readyForDelivery" in result.kinds
        assert coordinator.context.status.migration_complete

        again = coordinator.migrate_local_to_remote()
        assert not again.migrated
        assert "already" in again.reason

    def test_offline_leaves_gate_open(self, coordinator, sample_client):
        coordinator.store.online = False

        result = coordinator.migrate_local_to_remote()

        assert not result.migrated
        assert not coordinator.context.status.migration_complete

    def test_empty_dataset_sets_gate(self, coordinator):
        result = coordinator.migrate_local_to_remote()

        assert not result.migrated
        assert coordinator.context.status.migration_complete
        assert SyncContext.load().status.migration_complete


class TestInMemoryStore:
    def test_offline_store_refuses_reads(self):
        store = InMemoryRemoteStore(online=False)

        with pytest.raises(ConnectivityError):
            store.fetch_all("clients")

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            InMemoryRemoteStore().save_one("bakedGoods", {})
