"""Unit tests for slug, stop key and calendar helpers."""

from datetime import date, datetime, timezone

from src.utils.datetime_utils import day_name, parse_timestamp, to_naive_utc, week_bounds
from src.utils.slug_utils import create_portal_slug, make_stop_key, normalize_address


class TestPortalSlug:
    def test_spaces_become_hyphens(self):
        assert create_portal_slug("  Tim   Brown ") == "tim-brown"

    def test_accents_are_dropped(self):
        assert create_portal_slug("Ana Muñoz") == "ana-munoz"

    def test_empty(self):
        assert create_portal_slug(None) == ""


class TestStopKey:
    def test_address_normalized(self):
        assert normalize_address("  10  Main St ") == "10 main st"
        assert make_stop_key("Tim Brown", "10 MAIN  st") == "Tim Brown|10 main st"

    def test_address_less_client(self):
        assert make_stop_key("Ben Cole", None) == "Ben Cole|"


class TestCalendar:
    def test_week_runs_sunday_to_saturday(self):
        assert week_bounds(date(2024, 6, 5)) == (date(2024, 6, 2), date(2024, 6, 8))
        assert week_bounds("2024-06-02") == (date(2024, 6, 2), date(2024, 6, 8))
        assert week_bounds(date(2024, 6, 8)) == (date(2024, 6, 2), date(2024, 6, 8))

    def test_day_name(self):
        assert day_name("2024-06-03") == "Monday"

    def test_trailing_z_timestamp(self):
        parsed = parse_timestamp("2024-06-03T15:00:00Z")

        assert parsed.tzinfo is not None
        assert to_naive_utc(parsed) == datetime(2024, 6, 3, 15, 0)

    def test_naive_values_left_alone(self):
        value = datetime(2024, 6, 3, 15, 0)
        assert to_naive_utc(value) is value
        assert to_naive_utc(datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)) == value
