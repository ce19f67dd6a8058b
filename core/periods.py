from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Tuple

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from core.filters import CapacityFilters

MONTH_LABEL_FORMATS = ("%b %Y", "%B %Y")


def _as_days(value):
    ts = pd.to_datetime(value)
    if isinstance(ts, pd.Timestamp):
        return np.datetime64(ts.normalize().date(), "D")
    return pd.DatetimeIndex(ts).normalize().values.astype("datetime64[D]")


def business_days(start, end):
    """Count Monday-Friday days in ``[start, end]`` inclusive.

    Accepts scalars (returns ``int``) or equal-length array-likes (returns an
    ``ndarray`` of ints). Time-of-day is discarded before counting and a start
    after the end counts as zero. Inputs must not contain NaT.
    """
    s = _as_days(start)
    e = _as_days(end)
    counts = np.busday_count(s, e + np.timedelta64(1, "D"))
    counts = np.where(s > e, 0, counts)
    if np.ndim(counts) == 0:
        return int(counts)
    return counts.astype(int)


@dataclass(frozen=True)
class Period:
    start_date: date
    end_date: date
    business_days: int

    @classmethod
    def between(cls, start_date: date, end_date: date) -> "Period":
        return cls(start_date=start_date, end_date=end_date, business_days=business_days(start_date, end_date))

    def to_dict(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "business_days": self.business_days,
        }


def parse_month_label(label: str) -> Tuple[date, date]:
    """Parse ``"Aug 2025"`` into the first and last calendar day of that month."""
    text = str(label or "").strip()
    for fmt in MONTH_LABEL_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        last_day = calendar.monthrange(parsed.year, parsed.month)[1]
        return date(parsed.year, parsed.month, 1), date(parsed.year, parsed.month, last_day)
    raise ValueError(f"Invalid month label: {label!r}")


def month_label(value: date) -> str:
    return value.strftime("%b %Y")


def current_month_label() -> str:
    return month_label(date.today())


def month_sort_key(label: str) -> Tuple[int, int]:
    try:
        start, _ = parse_month_label(label)
    except ValueError:
        return (9999, 99)
    return (start.year, start.month)


def resolve_period(filters: "CapacityFilters") -> Period:
    if filters.filter_mode == "dateRange" and filters.start_date and filters.end_date:
        return Period.between(filters.start_date, filters.end_date)
    start, end = parse_month_label(filters.selected_month)
    return Period.between(start, end)
