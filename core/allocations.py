from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

import pandas as pd

from core.periods import Period, business_days

if TYPE_CHECKING:
    from core.filters import CapacityFilters


class Category(str, Enum):
    PTO = "PTO"
    INT = "INT"
    ENV = "ENV"
    PNB = "PNB"
    ORDINARY = "ORDINARY"


NON_BILLABLE_CATEGORIES = {Category.PTO.value, Category.INT.value, Category.PNB.value}
# PTO and internal time never count toward booked hours.
NON_BOOKED_CATEGORIES = {Category.PTO.value, Category.INT.value}


def matches_internal(label: str, policy: str = "bracket") -> bool:
    """Internal-time test. ``policy`` is one of "bracket", "substring" or "exact"."""
    upper = label.strip().upper()
    if policy == "substring":
        return "INT" in upper
    if policy == "exact":
        return upper == "INT"
    return "[INT]" in label or upper == "INT"


def classify_task(label: object, internal_match: str = "bracket") -> Category:
    text = "" if label is None or (isinstance(label, float) and pd.isna(label)) else str(label)
    if "[PTO]" in text:
        return Category.PTO
    if matches_internal(text, internal_match):
        return Category.INT
    if "[ENV]" in text:
        return Category.ENV
    if text.strip().upper().startswith("PNB:"):
        return Category.PNB
    return Category.ORDINARY


def project_key(label: object) -> str:
    """Project label up to its first colon, e.g. "ProjX: Build" -> "ProjX"."""
    if label is None or (isinstance(label, float) and pd.isna(label)):
        return ""
    return str(label).split(":", 1)[0].strip()


def _with_hours(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for col in ("hours", "span_business_days", "overlap_business_days"):
        if col not in out.columns:
            out[col] = pd.Series(dtype=float)
    return out


def select_month(allocations: pd.DataFrame, month: str) -> pd.DataFrame:
    """Rows tagged with exactly ``month``; hours are taken whole."""
    if allocations.empty:
        return _with_hours(allocations)
    labels = allocations["month"].fillna("").astype(str).str.strip()
    out = allocations[labels == month.strip()].copy()
    out["hours"] = out["estimated_hours"].astype(float)
    return _with_hours(out)


def prorate_allocations(allocations: pd.DataFrame, period: Period) -> pd.DataFrame:
    """Scale each dated allocation to the share of its own business days inside ``period``.

    A 10 business-day, 40 hour allocation with 3 of those days inside the
    period contributes 12 hours, whatever the length of the period itself.
    """
    if allocations.empty:
        return _with_hours(allocations)
    out = allocations.dropna(subset=["start_date", "end_date"]).copy()
    if out.empty:
        return _with_hours(out)

    starts = pd.to_datetime(out["start_date"]).dt.normalize()
    ends = pd.to_datetime(out["end_date"]).dt.normalize()
    period_start = pd.Timestamp(period.start_date)
    period_end = pd.Timestamp(period.end_date)
    overlap_start = starts.where(starts > period_start, period_start)
    overlap_end = ends.where(ends < period_end, period_end)

    keep = overlap_start <= overlap_end
    out = out[keep].copy()
    if out.empty:
        return _with_hours(out)

    out["span_business_days"] = business_days(starts[keep], ends[keep])
    out["overlap_business_days"] = business_days(overlap_start[keep], overlap_end[keep])
    out = out[out["span_business_days"] > 0].copy()
    out["hours"] = out["estimated_hours"].astype(float) * out["overlap_business_days"] / out["span_business_days"]
    return out[out["hours"] > 0].copy()


def select_allocations(allocations: pd.DataFrame, filters: "CapacityFilters", period: Period) -> pd.DataFrame:
    if filters.filter_mode == "dateRange":
        return prorate_allocations(allocations, period)
    return select_month(allocations, filters.selected_month)


def classify_allocations(allocations: pd.DataFrame, filters: "CapacityFilters") -> pd.DataFrame:
    """Tag rows with category, billability and project key; drop excluded ENV/PNB rows."""
    out = allocations.copy()
    if out.empty:
        out["category"] = pd.Series(dtype=str)
        out["is_billable"] = pd.Series(dtype=bool)
        out["project"] = pd.Series(dtype=str)
        return out

    labels = out["project_name"].where(out["project_name"].astype(str).str.strip() != "", out["task_label"])
    out["category"] = labels.apply(lambda s: classify_task(s, filters.internal_match).value)
    out["is_billable"] = ~out["category"].isin(NON_BILLABLE_CATEGORIES)
    out["project"] = labels.apply(project_key)

    if not filters.include_env:
        out = out[out["category"] != Category.ENV.value]
    if not filters.include_pnb:
        out = out[out["category"] != Category.PNB.value]
    return out.copy()
