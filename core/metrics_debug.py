from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from core.data import iter_source_columns


def compute_debug(filters, ctx: Dict[str, Any], *, top_n: int = 20) -> Dict[str, Any]:
    roster: pd.DataFrame = ctx.get("roster", pd.DataFrame())
    allocations: pd.DataFrame = ctx.get("allocations", pd.DataFrame())
    classified: pd.DataFrame = ctx.get("classified_allocations", pd.DataFrame())
    unmatched: pd.DataFrame = ctx.get("unmatched_allocations", pd.DataFrame())

    payload = {
        "filters": asdict(filters),
        "period": ctx["period"].to_dict() if ctx.get("period") is not None else None,
        "sources": list(ctx.get("sources") or []),
        "loaded_at": ctx.get("loaded_at"),
        "expected_columns": dict(iter_source_columns()),
        "row_counts": {
            "roster_rows": int(len(roster)),
            "allocation_rows": int(len(allocations)),
            "selected_rows": int(len(ctx.get("selected_allocations", pd.DataFrame()))),
            "classified_rows": int(len(classified)),
            "unmatched_rows": int(len(unmatched)),
        },
        "cleaning_checks": {
            "zero_billing_target": 0,
            "missing_dates": 0,
            "unparsed_dates": 0,
            "zero_hours": 0,
        },
        "category_counts": {},
        "unmatched_top": [],
    }

    if not roster.empty and "billing_target" in roster.columns:
        payload["cleaning_checks"]["zero_billing_target"] = int((roster["billing_target"] <= 0).sum())
    if not allocations.empty:
        checks = payload["cleaning_checks"]
        checks["missing_dates"] = int((allocations["start_date"].isna() | allocations["end_date"].isna()).sum())
        checks["unparsed_dates"] = int(allocations["date_parse_failed"].sum())
        checks["zero_hours"] = int((allocations["estimated_hours"] <= 0).sum())

    if not classified.empty and "category" in classified.columns:
        counts = classified["category"].value_counts().sort_index()
        payload["category_counts"] = {str(k): int(v) for k, v in counts.items()}

    if not unmatched.empty:
        top = (
            unmatched.groupby("resource_name")["hours"]
            .agg(["count", "sum"])
            .rename(columns={"count": "rows", "sum": "hours"})
            .sort_values(["hours", "rows"], ascending=False)
            .head(top_n)
            .reset_index()
        )
        payload["unmatched_top"] = top.to_dict(orient="records")
    return payload
