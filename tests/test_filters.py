"""Filter normalization shared by the API and the Streamlit app."""

from datetime import date, datetime

import pytest

from core.filters import (
    ALL_DEPARTMENTS,
    CapacityFilters,
    PlanningConstants,
    default_month,
    normalize_filters,
)
from core.periods import current_month_label


class TestNormalizeFilters:
    def test_defaults(self):
        f = normalize_filters({})
        assert f.filter_mode == "month"
        assert f.selected_month == current_month_label()
        assert f.selected_department == ALL_DEPARTMENTS
        assert f.department_filter is None
        assert f.include_env is True
        assert f.include_pnb is False
        assert f.internal_match == "bracket"
        assert f.constants == PlanningConstants()

    def test_unknown_mode_and_policy_fall_back(self):
        f = normalize_filters({"filter_mode": "week", "internal_match": "fuzzy"})
        assert f.filter_mode == "month"
        assert f.internal_match == "bracket"

    @pytest.mark.parametrize("raw, expected", [("true", True), ("No", False), ("1", True), (0, False), (None, False)])
    def test_boolean_coercion(self, raw, expected):
        assert normalize_filters({"include_pnb": raw}).include_pnb is expected

    def test_date_range_parses_strings_and_datetimes(self):
        f = normalize_filters({"filter_mode": "dateRange", "start_date": "2025-01-01", "end_date": datetime(2025, 1, 10, 9)})
        assert (f.start_date, f.end_date) == (date(2025, 1, 1), date(2025, 1, 10))

    def test_date_range_missing_end_uses_month_bounds(self):
        f = normalize_filters({"filter_mode": "dateRange", "selected_month": "Feb 2024", "start_date": "2024-02-10"})
        assert (f.start_date, f.end_date) == (date(2024, 2, 10), date(2024, 2, 29))

    def test_invalid_month_uses_latest_available(self):
        f = normalize_filters({"selected_month": "Smarch 2025"}, available_months=["Jan 2025", "Feb 2025", "junk"])
        assert f.selected_month == "Feb 2025"

    def test_department_and_constants(self):
        f = normalize_filters(
            {
                "selected_department": " Ops ",
                "constants": {"annual_billable_hours": "1800", "annual_business_days": 250, "min_billable_hours": -1},
            }
        )
        assert f.department_filter == "Ops"
        assert f.constants.annual_billable_hours == 1800.0
        assert f.constants.daily_hours == pytest.approx(7.2)
        assert f.constants.min_billable_hours == 1.0

    def test_filters_are_frozen(self):
        with pytest.raises(AttributeError):
            CapacityFilters().include_pnb = True


class TestDefaultMonth:
    def test_current_month_preferred(self):
        current = current_month_label()
        assert default_month(["Jan 2020", current]) == current

    def test_latest_when_current_missing(self):
        assert default_month(["Mar 2020", "Jan 2021", "Dec 2020"]) == "Jan 2021"

    def test_no_months(self):
        assert default_month([]) == current_month_label()


def test_zero_business_days_per_year_gives_zero_daily_hours():
    assert PlanningConstants(annual_business_days=0).daily_hours == 0.0
