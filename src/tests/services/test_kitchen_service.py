"""Tests for dish completion and order readiness."""

from datetime import date

import pytest

from src.models import OrderStatus
from src.services import kitchen_service, order_service
from src.services.exceptions import ValidationError

MONDAY = date(2024, 6, 3)


@pytest.fixture
def approved_orders(make_client):
    make_client("Tim Brown")
    make_client("Ana Diaz")
    for name, protein in (("Tim Brown", "Chicken"), ("Ana Diaz", "Salmon")):
        order_service.create_menu_item(
            {"clientName": name, "date": MONDAY, "protein": protein, "starch": "Rice"},
            enforce_deadline=False,
        )
        order_service.approve_menu_item(name, MONDAY)


def _status(client_name):
    return order_service.get_order(client_name, MONDAY).status


class TestDependencies:
    def test_dish_maps_to_every_waiting_order(self, approved_orders):
        deps = kitchen_service.build_dish_dependencies()

        assert deps["Rice"] == {("Tim Brown", MONDAY), ("Ana Diaz", MONDAY)}
        assert deps["Chicken"] == {("Tim Brown", MONDAY)}

    def test_pending_orders_are_not_in_the_cycle(self, make_client):
        make_client("Tim Brown")
        order_service.create_menu_item(
            {"clientName": "Tim Brown", "date": MONDAY, "protein": "Chicken"}, enforce_deadline=False
        )
        assert kitchen_service.build_dish_dependencies() == {}

    def test_pending_dishes(self, approved_orders):
        kitchen_service.mark_dish_complete("Rice")
        assert kitchen_service.pending_dishes() == ["Chicken", "Salmon"]


class TestReadiness:
    def test_shared_dish_promotes_only_complete_orders(self, approved_orders):
        kitchen_service.mark_dish_complete("Chicken")
        result = kitchen_service.mark_dish_complete("Rice")

        assert result.promoted == [("Tim Brown", MONDAY)]
        assert _status("Tim Brown") is OrderStatus.READY_FOR_DELIVERY
        assert _status("Ana Diaz") is OrderStatus.MENU_APPROVED

    def test_unmark_does_not_demote(self, approved_orders):
        kitchen_service.mark_dish_complete("Chicken")
        kitchen_service.mark_dish_complete("Rice")

        kitchen_service.unmark_dish_complete("Rice")

        assert _status("Tim Brown") is OrderStatus.READY_FOR_DELIVERY
        assert kitchen_service.dish_status() == {"Rice": False, "Salmon": False}

    def test_complete_all(self, approved_orders):
        result = kitchen_service.complete_all()

        assert sorted(result.dish_names) == ["Chicken", "Rice", "Salmon"]
        assert len(result.promoted) == 2

    def test_reset_production_cycle(self, approved_orders):
        kitchen_service.mark_dish_complete("Rice")

        assert kitchen_service.reset_production_cycle() == 1
        assert kitchen_service.dish_status()["Rice"] is False

    def test_blank_dish_name_rejected(self, test_db):
        with pytest.raises(ValidationError):
            kitchen_service.mark_dish_complete("  ")


class TestKitchenView:
    def test_rows_aggregate_portions(self, approved_orders):
        rows = kitchen_service.kitchen_view(MONDAY)

        rice = next(row for row in rows if row["dish"] == "Rice")
        assert rice["portions"] == 4
        assert rice["clients"] == ["Ana Diaz", "Tim Brown"]
        assert [row["dish"] for row in rows] == ["Chicken", "Rice", "Salmon"]
