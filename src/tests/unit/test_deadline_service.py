"""Unit tests for the deadline and delivery date policy.

Tests cover:
- Saturday deadline before the delivery week
- Strict comparison at the deadline second
- Biweekly spacing validation
- Candidate date enumeration within a horizon
"""

from datetime import date, datetime

import pytest

from src.services.deadline_service import (
    compute_deadline,
    enumerate_candidates,
    is_editable,
    parse_date,
    require_editable,
    validate_spacing,
    weekday_index,
)
from src.services.exceptions import DeadlinePassedError, SpacingError, ValidationError


class TestComputeDeadline:
    def test_monday_delivery_closes_previous_saturday(self):
        assert compute_deadline(date(2024, 6, 3)) == datetime(2024, 6, 1, 23, 59, 59)

    def test_whole_week_shares_one_deadline(self):
        """Sunday through Saturday of one week close at the same time."""
        deadlines = {compute_deadline(date(2024, 6, day)) for day in range(2, 9)}
        assert deadlines == {datetime(2024, 6, 1, 23, 59, 59)}

    def test_saturday_delivery_belongs_to_its_own_week(self):
        assert compute_deadline(date(2024, 6, 8)) == datetime(2024, 6, 1, 23, 59, 59)
        assert compute_deadline(date(2024, 6, 9)) == datetime(2024, 6, 8, 23, 59, 59)

    def test_no_target_returns_end_of_current_week(self):
        assert compute_deadline(today=date(2024, 6, 3)) == datetime(2024, 6, 8, 23, 59, 59)

    def test_accepts_iso_string(self):
        assert compute_deadline("2024-06-05") == datetime(2024, 6, 1, 23, 59, 59)


class TestEditability:
    def test_editable_one_second_before(self):
        assert is_editable(date(2024, 6, 3), now=datetime(2024, 6, 1, 23, 59, 58))

    def test_not_editable_at_deadline(self):
        """The deadline second itself is already too late."""
        assert not is_editable(date(2024, 6, 3), now=datetime(2024, 6, 1, 23, 59, 59))

    def test_require_editable_raises_with_deadline(self):
        with pytest.raises(DeadlinePassedError) as exc_info:
            require_editable(date(2024, 6, 3), now=datetime(2024, 6, 2, 8, 0))

        assert exc_info.value.deadline == datetime(2024, 6, 1, 23, 59, 59)
        assert isinstance(exc_info.value, ValidationError)

    def test_require_editable_passes_before_deadline(self):
        require_editable("2024-06-03", now=datetime(2024, 5, 31, 9, 0))


class TestValidateSpacing:
    def test_biweekly_thirteen_days_rejected(self):
        with pytest.raises(SpacingError) as exc_info:
            validate_spacing([date(2024, 6, 3), date(2024, 6, 16)], "biweekly")

        assert exc_info.value.pairs == [(date(2024, 6, 3), date(2024, 6, 16))]

    def test_biweekly_fourteen_days_accepted(self):
        result = validate_spacing(["2024-06-17", "2024-06-03"], "biweekly")
        assert result == [date(2024, 6, 3), date(2024, 6, 17)]

    def test_every_offending_pair_reported(self):
        with pytest.raises(SpacingError) as exc_info:
            validate_spacing(
                [date(2024, 6, 3), date(2024, 6, 10), date(2024, 6, 17)], "biweekly"
            )
        assert len(exc_info.value.pairs) == 2

    def test_weekly_is_unconstrained(self):
        result = validate_spacing([date(2024, 6, 3), date(2024, 6, 4)], "weekly")
        assert len(result) == 2

    def test_duplicates_collapse(self):
        assert validate_spacing(["2024-06-03", "2024-06-03"], "biweekly") == [date(2024, 6, 3)]

    def test_invalid_date_raises_validation_error(self):
        with pytest.raises(ValidationError):
            validate_spacing(["not-a-date"], "biweekly")


class TestEnumerateCandidates:
    def test_yields_matching_weekdays_from_start(self):
        result = list(enumerate_candidates(date(2024, 6, 3), "Monday", count=3))
        assert result == [date(2024, 6, 3), date(2024, 6, 10), date(2024, 6, 17)]

    def test_skips_excluded_dates(self):
        result = list(
            enumerate_candidates(date(2024, 6, 4), "mon", exclude=["2024-06-10"], count=2)
        )
        assert result == [date(2024, 6, 17), date(2024, 6, 24)]

    def test_horizon_limits_results(self):
        result = list(enumerate_candidates(date(2024, 6, 3), 0, count=10, horizon_days=14))
        assert result == [date(2024, 6, 3), date(2024, 6, 10), date(2024, 6, 17)]

    def test_is_lazy(self):
        generator = enumerate_candidates(date(2024, 6, 3), "Friday", count=100)
        assert next(generator) == date(2024, 6, 7)


class TestParsing:
    def test_weekday_index_accepts_names_and_abbreviations(self):
        assert weekday_index("Monday") == 0
        assert weekday_index("sat") == 5
        assert weekday_index(6) == 6

    def test_weekday_index_rejects_unknown(self):
        with pytest.raises(ValidationError):
            weekday_index("Someday")

    def test_parse_date_rejects_empty(self):
        with pytest.raises(ValidationError):
            parse_date("")
