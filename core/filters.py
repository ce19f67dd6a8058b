from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional

from core.periods import current_month_label, month_sort_key, parse_month_label

FILTER_MODES = ("month", "dateRange")
INTERNAL_MATCH_POLICIES = ("bracket", "substring", "exact")
ALL_DEPARTMENTS = "All"


@dataclass(frozen=True)
class PlanningConstants:
    annual_billable_hours: float = 2080.0
    annual_business_days: float = 260.0
    min_billable_hours: float = 1.0

    @property
    def daily_hours(self) -> float:
        if not self.annual_business_days:
            return 0.0
        return self.annual_billable_hours / self.annual_business_days


@dataclass(frozen=True)
class CapacityFilters:
    filter_mode: str = "month"
    selected_month: str = field(default_factory=current_month_label)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    selected_department: str = ALL_DEPARTMENTS
    include_env: bool = True
    include_pnb: bool = False
    internal_match: str = "bracket"
    constants: PlanningConstants = field(default_factory=PlanningConstants)

    @property
    def department_filter(self) -> Optional[str]:
        if not self.selected_department or self.selected_department == ALL_DEPARTMENTS:
            return None
        return self.selected_department


def _as_date(value: object) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _as_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_float(value: object, default: float) -> float:
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return out if out >= 0 else default


def _valid_month(label: object) -> Optional[str]:
    if not label:
        return None
    text = str(label).strip()
    try:
        parse_month_label(text)
    except ValueError:
        return None
    return text


def default_month(available_months: Optional[Iterable[str]] = None) -> str:
    """Latest parseable month label among ``available_months``, else the current month."""
    months = [m for m in (available_months or []) if _valid_month(m)]
    if not months:
        return current_month_label()
    current = current_month_label()
    if current in months:
        return current
    return sorted(months, key=month_sort_key)[-1]


def normalize_filters(raw: dict, *, available_months: Optional[List[str]] = None) -> CapacityFilters:
    filter_mode = str(raw.get("filter_mode") or "month")
    if filter_mode not in FILTER_MODES:
        filter_mode = "month"

    selected_month = _valid_month(raw.get("selected_month")) or default_month(available_months)

    start_date = _as_date(raw.get("start_date"))
    end_date = _as_date(raw.get("end_date"))
    if filter_mode == "dateRange" and (start_date is None or end_date is None):
        month_start, month_end = parse_month_label(selected_month)
        start_date = start_date or month_start
        end_date = end_date or month_end

    selected_department = str(raw.get("selected_department") or ALL_DEPARTMENTS).strip() or ALL_DEPARTMENTS

    internal_match = str(raw.get("internal_match") or "bracket").strip().lower()
    if internal_match not in INTERNAL_MATCH_POLICIES:
        internal_match = "bracket"

    c = raw.get("constants") or {}
    constants = PlanningConstants(
        annual_billable_hours=_as_float(c.get("annual_billable_hours"), 2080.0),
        annual_business_days=_as_float(c.get("annual_business_days"), 260.0),
        min_billable_hours=_as_float(c.get("min_billable_hours"), 1.0),
    )

    return CapacityFilters(
        filter_mode=filter_mode,
        selected_month=selected_month,
        start_date=start_date,
        end_date=end_date,
        selected_department=selected_department,
        include_env=_as_bool(raw.get("include_env"), True),
        include_pnb=_as_bool(raw.get("include_pnb"), False),
        internal_match=internal_match,
        constants=constants,
    )
