from __future__ import annotations

from typing import Any, Dict, Iterable

import pandas as pd

EXPORT_HEADER = [
    "First Last",
    "Title",
    "Department",
    "Required Hrs",
    "Hrs Booked",
    "Target %",
    "% of Target",
    "PTO Hrs",
    "INT Hrs",
]


def _fixed(value: Any, decimals: int) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if pd.isna(number):
        number = 0.0
    return f"{number:.{decimals}f}"


def build_export_frame(employees: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """One row per employee with hours at 2 decimals, Target % whole and % of Target at 2 decimals."""
    rows = [
        {
            "First Last": e.get("display_name") or e.get("normalized_name", ""),
            "Title": e.get("title", ""),
            "Department": e.get("department", ""),
            "Required Hrs": _fixed(e.get("required_billable_hours"), 2),
            "Hrs Booked": _fixed(e.get("booked_billable_hours"), 2),
            "Target %": _fixed(float(e.get("billing_target") or 0) * 100, 0),
            "% of Target": _fixed(e.get("percent_to_target"), 2),
            "PTO Hrs": _fixed(e.get("pto_hours"), 2),
            "INT Hrs": _fixed(e.get("int_hours"), 2),
        }
        for e in employees
    ]
    return pd.DataFrame(rows, columns=EXPORT_HEADER)


def export_csv_bytes(employees: Iterable[Dict[str, Any]]) -> bytes:
    return build_export_frame(employees).to_csv(index=False).encode("utf-8")


def export_filename(period: Dict[str, Any]) -> str:
    start = period.get("start_date", "")
    end = period.get("end_date", "")
    return f"capacity_{start}_{end}.csv" if start and end else "capacity.csv"
