"""Tests for shared settings and device-local cache entries."""

from datetime import date

import pytest

from src.services import settings_service
from src.services.exceptions import ValidationError


class TestBlockedDates:
    def test_stored_sorted_and_unique(self, test_db):
        stored = settings_service.set_blocked_dates(["2024-06-10", "2024-06-03", "2024-06-10"])

        assert stored == [date(2024, 6, 3), date(2024, 6, 10)]
        assert settings_service.get_setting("blockedDates") == ["2024-06-03", "2024-06-10"]

    def test_add_and_remove(self, test_db):
        settings_service.add_blocked_date("2024-06-10")
        settings_service.add_blocked_date(date(2024, 6, 3))

        assert settings_service.remove_blocked_date("2024-06-10") == [date(2024, 6, 3)]

    def test_invalid_date(self, test_db):
        with pytest.raises(ValidationError):
            settings_service.add_blocked_date("tomorrow")

    def test_defaults_to_empty(self, test_db):
        assert settings_service.get_blocked_dates() == []


class TestRouteStartAddress:
    def test_blank_means_unset(self, test_db):
        settings_service.set_route_start_address("   ")
        assert settings_service.get_route_start_address() is None

    def test_kept_with_other_admin_settings(self, test_db):
        settings_service.set_setting("adminSettings", {"kitchenName": "North"})

        settings_service.set_route_start_address(" 1 Depot Rd ")

        assert settings_service.get_admin_settings() == {
            "kitchenName": "North",
            "routeStartAddress": "1 Depot Rd",
        }


class TestCacheEntries:
    def test_set_get_delete(self, test_db):
        settings_service.set_cache_entry("sync:mode", "remote")
        settings_service.set_cache_entry("sync:mode", "local")

        assert settings_service.get_cache_entry("sync:mode") == "local"
        assert settings_service.delete_cache_entry("sync:mode")
        assert not settings_service.delete_cache_entry("sync:mode")
        assert settings_service.get_cache_entry("sync:mode", default="none") == "none"

    def test_prefix_lookup(self, test_db):
        settings_service.set_cache_entry("remote:recipes", [{"name": "Chili"}])
        settings_service.set_cache_entry("remote:weeks", [])
        settings_service.set_cache_entry("sync:mode", "local")

        assert settings_service.cache_entries_with_prefix("remote:") == {
            "recipes": [{"name": "Chili"}],
            "weeks": [],
        }

    def test_cache_entries_are_not_shared_settings(self, test_db):
        settings_service.set_cache_entry("sync:mode", "local")
        assert settings_service.all_settings() == {}
