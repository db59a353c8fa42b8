"""Tests for the client portal.

Tests cover:
- Slug resolution (display name first, raw name second)
- Candidate dates: delivery day, blocked dates, deadlines, picker fallback
- Date selection with spacing rules
- Portal status priority
"""

from datetime import date, datetime

import pytest

from src.services import client_service, order_service, portal_service, settings_service
from src.services.exceptions import (
    ClientNotFound,
    DeadlinePassedError,
    SpacingError,
    ValidationError,
)

MONDAY = date(2024, 6, 3)
WEDNESDAY_BEFORE = date(2024, 5, 29)


class TestResolveClient:
    def test_display_name_slug(self, sample_client):
        assert portal_service.resolve_client("tim-b").name == "Tim Brown"

    def test_raw_name_slug_case_insensitive(self, sample_client):
        assert portal_service.resolve_client("Tim-Brown").name == "Tim Brown"

    def test_first_client_wins(self, make_client):
        make_client("Tim Brown")
        make_client("Timothy Brown", displayName="Tim Brown")

        assert portal_service.resolve_client("tim-brown").name == "Tim Brown"

    def test_unknown_slug(self, sample_client):
        with pytest.raises(ClientNotFound):
            portal_service.resolve_client("nobody")


class TestCandidateDates:
    def test_next_four_delivery_days(self, sample_client):
        dates = portal_service.candidate_dates("Tim Brown", today=WEDNESDAY_BEFORE)

        assert dates == [date(2024, 6, 3), date(2024, 6, 10), date(2024, 6, 17), date(2024, 6, 24)]

    def test_blocked_dates_skipped(self, sample_client):
        settings_service.set_blocked_dates(["2024-06-10"])

        dates = portal_service.candidate_dates("Tim Brown", today=WEDNESDAY_BEFORE)

        assert date(2024, 6, 10) not in dates
        assert dates[-1] == date(2024, 7, 1)

    def test_dates_past_deadline_skipped(self, sample_client):
        dates = portal_service.candidate_dates("Tim Brown", today=date(2024, 6, 2))
        assert dates[0] == date(2024, 6, 10)

    def test_no_delivery_day_offers_editable_weekdays(self, make_client):
        make_client("Ana Diaz", deliveryDay="")

        dates = portal_service.candidate_dates("Ana Diaz", today=WEDNESDAY_BEFORE)

        assert dates == [
            date(2024, 6, 3),
            date(2024, 6, 4),
            date(2024, 6, 5),
            date(2024, 6, 6),
            date(2024, 6, 7),
            date(2024, 6, 10),
            date(2024, 6, 11),
            date(2024, 6, 12),
        ]


class TestSelectDates:
    def test_stores_dates_and_clears_flag(self, sample_client):
        portal_service.update_portal_data("Tim Brown", {"needs_date_selection": True})

        stored = portal_service.select_dates(
            "Tim Brown", ["2024-06-10", "2024-06-03"], now=datetime(2024, 5, 29, 9, 0)
        )

        assert stored == [date(2024, 6, 3), date(2024, 6, 10)]
        portal = portal_service.get_portal_data("Tim Brown")
        assert portal.selected_dates == ["2024-06-03", "2024-06-10"]
        assert portal.needs_date_selection is False

    def test_biweekly_spacing_enforced(self, make_client):
        make_client("Ana Diaz", frequency="biweekly")

        with pytest.raises(SpacingError):
            portal_service.select_dates(
                "Ana Diaz", ["2024-06-03", "2024-06-16"], now=datetime(2024, 5, 29, 9, 0)
            )

    def test_deadline_enforced(self, sample_client):
        with pytest.raises(DeadlinePassedError):
            portal_service.select_dates("Tim Brown", ["2024-06-03"], now=datetime(2024, 6, 2, 9, 0))

    def test_blocked_date_rejected(self, sample_client):
        settings_service.set_blocked_dates(["2024-06-03"])

        with pytest.raises(ValidationError):
            portal_service.select_dates("Tim Brown", ["2024-06-03"], now=datetime(2024, 5, 29, 9, 0))

    def test_empty_selection_rejected(self, sample_client):
        with pytest.raises(ValidationError):
            portal_service.select_dates("Tim Brown", [])


class TestPortalStatus:
    def _status(self, today=MONDAY):
        return portal_service.portal_status("Tim Brown", today=today).status

    def test_paused_wins(self, sample_client):
        portal_service.update_portal_data("Tim Brown", {"payment_overdue": True})
        client_service.pause_client("Tim Brown")

        assert self._status() == portal_service.STATUS_PAUSED

    def test_payment_flags(self, sample_client):
        portal_service.update_portal_data("Tim Brown", {"pending_payment": True})
        assert self._status() == portal_service.STATUS_NEEDS_PAYMENT

        portal_service.update_portal_data("Tim Brown", {"payment_overdue": True})
        assert self._status() == portal_service.STATUS_OVERDUE

    def test_delivery_day_then_delivered(self, sample_client, make_ready_order):
        make_ready_order("Tim Brown")
        assert self._status() == portal_service.STATUS_DELIVERY_DAY

        order_service.complete_stop("Tim Brown", MONDAY)
        assert self._status() == portal_service.STATUS_DELIVERED

    def test_menu_ready_for_upcoming_order(self, sample_client):
        order_service.create_menu_item(
            {"clientName": "Tim Brown", "date": MONDAY, "protein": "Chicken"}, enforce_deadline=False
        )

        status = portal_service.portal_status("Tim Brown", today=date(2024, 5, 31))
        assert status.status == portal_service.STATUS_MENU_READY
        assert status.next_date == MONDAY

    def test_pick_dates_and_nothing_upcoming(self, sample_client):
        assert self._status() == portal_service.STATUS_NO_UPCOMING

        portal_service.update_portal_data("Tim Brown", {"needs_date_selection": True})
        assert self._status() == portal_service.STATUS_PICK_DATES

    def test_history(self, sample_client, make_ready_order):
        make_ready_order("Tim Brown")
        order_service.complete_stop("Tim Brown", MONDAY)

        history = portal_service.client_history("Tim Brown")
        assert [o.delivery_date for o in history] == [MONDAY]
