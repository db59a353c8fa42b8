"""Tests for the Supabase remote store adapter.

The supabase-py client is replaced by a recording fake that mimics its
chained query builder (table().select().order().execute()).
"""

from types import SimpleNamespace

import pytest
from postgrest.exceptions import APIError

from src.services.exceptions import ConnectivityError, ValidationError
from src.services.remote_store import SupabaseRemoteStore


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []

    def _chain(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._chain("select", *args, **kwargs)

    def order(self, *args, **kwargs):
        return self._chain("order", *args, **kwargs)

    def limit(self, *args, **kwargs):
        return self._chain("limit", *args, **kwargs)

    def upsert(self, *args, **kwargs):
        return self._chain("upsert", *args, **kwargs)

    def insert(self, *args, **kwargs):
        return self._chain("insert", *args, **kwargs)

    def delete(self, *args, **kwargs):
        return self._chain("delete", *args, **kwargs)

    def eq(self, *args, **kwargs):
        return self._chain("eq", *args, **kwargs)

    def execute(self):
        self.client.executed.append((self.table, self.calls))
        if self.client.error is not None:
            raise self.client.error
        return SimpleNamespace(data=self.client.responses.get(self.table, []))


class FakeSupabase:
    def __init__(self, responses=None, error=None):
        self.responses = responses or {}
        self.error = error
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)


def _store(**kwargs):
    fake = FakeSupabase(**kwargs)
    return SupabaseRemoteStore(client=fake), fake


class TestConstruction:
    def test_requires_credentials_without_client(self):
        with pytest.raises(ConnectivityError):
            SupabaseRemoteStore()


class TestConnection:
    def test_reachable(self):
        store, fake = _store()

        assert store.check_connection()
        table, calls = fake.executed[0]
        assert table == "app_settings"
        assert ("limit", (1,), {}) in calls

    def test_missing_table_counts_as_reachable(self):
        store, _ = _store(error=APIError({"message": 'relation "app_settings" does not exist'}))
        assert store.check_connection()

    def test_other_api_error_is_unreachable(self):
        store, _ = _store(error=APIError({"message": "JWT expired"}))
        assert not store.check_connection()

    def test_network_failure_is_unreachable(self):
        store, _ = _store(error=OSError("connection refused"))
        assert not store.check_connection()


class TestFetch:
    def test_clients_come_with_contacts(self):
        row = {
            "id": 7,
            "name": "Tim Brown",
            "display_name": "Tim B",
            "delivery_day": "Monday",
            "zone": "1",
            "pickup": None,
            "contacts": [{"full_name": "Tim Brown", "address": "10 Main St"}],
        }
        store, fake = _store(responses={"clients": [row]})

        clients = store.fetch_all("clients")

        assert clients[0]["displayName"] == "Tim B"
        assert clients[0]["pickup"] is False
        assert clients[0]["contacts"] == [
            {"fullName": "Tim Brown", "displayName": "", "email": "", "phone": "", "address": "10 Main St"}
        ]
        _, calls = fake.executed[0]
        assert calls[0] == ("select", ("*, contacts(*)",), {})
        assert calls[1] == ("order", ("name",), {})

    def test_menus_converted(self):
        row = {"client_name": "Tim Brown", "date": "2024-06-03", "protein": "Chicken", "approved": True}
        store, _ = _store(responses={"menus": [row]})

        menu = store.fetch_all("menus")[0]

        assert menu["clientName"] == "Tim Brown"
        assert menu["approved"] is True
        assert menu["portions"] == 1

    def test_opaque_kinds_pass_through(self):
        row = {"name": "Chili", "category": "Main", "steps": ["brown", "simmer"]}
        store, _ = _store(responses={"recipes": [row]})

        assert store.fetch_all("recipes") == [row]

    def test_settings_mapping(self):
        rows = [{"key": "blockedDates", "value": ["2024-06-10"]}, {"key": "adminSettings", "value": {}}]
        store, _ = _store(responses={"app_settings": rows})

        assert store.fetch_settings() == {"blockedDates": ["2024-06-10"], "adminSettings": {}}

    def test_api_error_raises_connectivity_error(self):
        store, _ = _store(error=APIError({"message": "permission denied"}))

        with pytest.raises(ConnectivityError):
            store.fetch_all("drivers")

    def test_unknown_kind(self):
        store, _ = _store()

        with pytest.raises(ValidationError):
            store.fetch_all("settings")


class TestSave:
    def test_menu_upsert_uses_natural_key(self):
        store, fake = _store()

        store.save_one("menus", {"clientName": "Tim Brown", "date": "2024-06-03", "status": "menu_approved"})

        table, calls = fake.executed[0]
        name, args, kwargs = calls[0]
        assert table == "menus"
        assert name == "upsert"
        assert args[0]["approved"] is True
        assert kwargs == {"on_conflict": "client_name,date"}

    def test_client_contacts_replaced(self):
        store, fake = _store(responses={"clients": [{"id": 7, "name": "Tim Brown"}]})

        store.save_one(
            "clients",
            {
                "name": "Tim Brown",
                "contacts": [
                    {"fullName": "Tim Brown", "address": "10 Main St"},
                    {"fullName": "Kim Brown", "address": "22 Elm Rd"},
                ],
            },
        )

        tables = [table for table, _ in fake.executed]
        assert tables == ["clients", "contacts", "contacts"]
        delete_calls = fake.executed[1][1]
        assert delete_calls == [("delete", (), {}), ("eq", ("client_id", 7), {})]
        inserted = fake.executed[2][1][0][1][0]
        assert [c["is_primary"] for c in inserted] == [True, False]
        assert inserted[1]["full_name"] == "Kim Brown"

    def test_client_without_contacts_skips_contact_table(self):
        store, fake = _store(responses={"clients": [{"id": 7, "name": "Tim Brown"}]})

        store.save_one("clients", {"name": "Tim Brown", "pickup": True})

        assert [table for table, _ in fake.executed] == ["clients"]

    def test_weeks_upsert_without_conflict_target(self):
        store, fake = _store()

        store.save_one("weeks", {"id": "2024-W23", "notes": "short week"})

        _, calls = fake.executed[0]
        assert calls[0] == ("upsert", ({"id": "2024-W23", "notes": "short week"},), {})

    def test_menu_delete_filters_on_natural_key(self):
        store, fake = _store()

        store.delete_one("menus", {"clientName": "Tim Brown", "date": "2024-06-03"})

        table, calls = fake.executed[0]
        assert table == "menus"
        assert calls == [
            ("delete", (), {}),
            ("eq", ("client_name", "Tim Brown"), {}),
            ("eq", ("date", "2024-06-03"), {}),
        ]

    def test_setting_upsert(self):
        store, fake = _store()

        store.save_setting("blockedDates", ["2024-06-10"])

        table, calls = fake.executed[0]
        assert table == "app_settings"
        assert calls[0] == (
            "upsert",
            ({"key": "blockedDates", "value": ["2024-06-10"]},),
            {"on_conflict": "key"},
        )

    def test_write_failure_raises_connectivity_error(self):
        store, _ = _store(error=RuntimeError("timeout"))

        with pytest.raises(ConnectivityError):
            store.save_setting("blockedDates", [])
