from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import altair as alt
import numpy as np
import pandas as pd

from core.allocations import Category
from core.charts import percent_axis, target_rule, to_vega_spec
from core.filters import CapacityFilters
from core.periods import Period

EMPLOYEE_COLUMNS = [
    "normalized_name",
    "display_name",
    "department",
    "title",
    "billing_target",
    "total_booked_hours",
    "booked_billable_hours",
    "booked_non_billable_hours",
    "pto_hours",
    "int_hours",
    "required_billable_hours",
    "percent_to_target",
    "potential_hours",
    "utilization_percent",
    "projects",
]

ROLLUP_SUMS = [
    "total_booked_hours",
    "booked_billable_hours",
    "booked_non_billable_hours",
    "pto_hours",
    "int_hours",
    "required_billable_hours",
    "potential_hours",
]

DEPARTMENT_COLUMNS = ["department", "employee_count"] + ROLLUP_SUMS + ["utilization", "booked_utilization"]

SORT_FIELDS = {
    "name": "display_name",
    "department": "department",
    "percent_to_target": "percent_to_target",
    "utilization_percent": "utilization_percent",
    "booked_billable_hours": "booked_billable_hours",
    "total_booked_hours": "total_booked_hours",
}


def safe_pct(numerator, denominator):
    """``numerator / denominator * 100`` with zero wherever the denominator is not positive."""
    num = np.asarray(numerator, dtype=float)
    den = np.asarray(denominator, dtype=float)
    out = np.divide(num * 100.0, den, out=np.zeros(np.broadcast(num, den).shape), where=den > 0)
    if np.ndim(out) == 0:
        return float(out)
    return out


def build_roster_map(roster: pd.DataFrame) -> pd.DataFrame:
    if roster.empty:
        return roster.set_index(pd.Index([], name="normalized_name"))
    return roster.drop_duplicates(subset=["normalized_name"], keep="first").set_index("normalized_name")


def _project_breakdown(df: pd.DataFrame) -> Dict[str, List[Dict[str, Any]]]:
    grouped = (
        df.groupby(["normalized_resource", "project", "category"], sort=False)
        .agg(task=("task_label", "first"), hours=("hours", "sum"), is_billable=("is_billable", "first"))
        .reset_index()
    )
    breakdown: Dict[str, List[Dict[str, Any]]] = {}
    for resource, rows in grouped.groupby("normalized_resource", sort=False):
        rows = rows.sort_values(["hours", "project"], ascending=[False, True], kind="mergesort")
        breakdown[resource] = [
            {
                "name": str(r.project),
                "task": str(r.task),
                "category": str(r.category),
                "hours": float(r.hours),
                "is_billable": bool(r.is_billable),
            }
            for r in rows.itertuples(index=False)
        ]
    return breakdown


def aggregate_employees(
    allocations: pd.DataFrame, roster: pd.DataFrame, period: Period, filters: CapacityFilters
) -> pd.DataFrame:
    """Fold classified, hour-weighted allocations into one row per rostered employee."""
    if allocations.empty or roster.empty:
        return pd.DataFrame(columns=EMPLOYEE_COLUMNS)

    roster_map = build_roster_map(roster)
    df = allocations[allocations["normalized_resource"].isin(roster_map.index)].copy()
    df = df.join(roster_map[["department"]], on="normalized_resource")
    if filters.department_filter is not None:
        df = df[df["department"] == filters.department_filter]
    if df.empty:
        return pd.DataFrame(columns=EMPLOYEE_COLUMNS)

    hours = df["hours"].astype(float)
    category = df["category"]
    df = df.assign(
        billable=np.where(df["is_billable"], hours, 0.0),
        non_billable=np.where(category == Category.PNB.value, hours, 0.0),
        pto=np.where(category == Category.PTO.value, hours, 0.0),
        internal=np.where(category == Category.INT.value, hours, 0.0),
    )

    totals = (
        df.groupby("normalized_resource", sort=True)
        .agg(
            booked_billable_hours=("billable", "sum"),
            booked_non_billable_hours=("non_billable", "sum"),
            pto_hours=("pto", "sum"),
            int_hours=("internal", "sum"),
        )
        .reset_index()
        .rename(columns={"normalized_resource": "normalized_name"})
    )
    totals = totals.join(roster_map[["display_name", "department", "title", "billing_target"]], on="normalized_name")
    totals["total_booked_hours"] = totals["booked_billable_hours"] + totals["booked_non_billable_hours"]

    potential = filters.constants.daily_hours * period.business_days
    totals["potential_hours"] = float(potential)
    totals["required_billable_hours"] = totals["billing_target"].astype(float) * potential
    totals["percent_to_target"] = safe_pct(totals["booked_billable_hours"], totals["required_billable_hours"])
    totals["utilization_percent"] = safe_pct(totals["total_booked_hours"], totals["potential_hours"])

    breakdown = _project_breakdown(df)
    totals["projects"] = totals["normalized_name"].map(lambda n: breakdown.get(n, []))
    return totals[EMPLOYEE_COLUMNS].reset_index(drop=True)


def _qualifying(employees: pd.DataFrame, min_billable_hours: float) -> pd.DataFrame:
    if employees.empty:
        return employees
    return employees[employees["booked_billable_hours"] >= min_billable_hours]


def rollup_departments(employees: pd.DataFrame, *, min_billable_hours: float = 1.0) -> pd.DataFrame:
    """Per-department sums over employees with at least ``min_billable_hours`` billable."""
    qualifying = _qualifying(employees, min_billable_hours)
    if qualifying.empty:
        return pd.DataFrame(columns=DEPARTMENT_COLUMNS)
    dept = (
        qualifying.groupby("department", sort=True)
        .agg(employee_count=("normalized_name", "count"), **{c: (c, "sum") for c in ROLLUP_SUMS})
        .reset_index()
    )
    dept["utilization"] = safe_pct(dept["booked_billable_hours"], dept["required_billable_hours"])
    dept["booked_utilization"] = safe_pct(dept["total_booked_hours"], dept["potential_hours"])
    return dept[DEPARTMENT_COLUMNS]


def rollup_overall(employees: pd.DataFrame, *, min_billable_hours: float = 1.0) -> Dict[str, Any]:
    qualifying = _qualifying(employees, min_billable_hours)
    sums = {c: float(qualifying[c].sum()) if not qualifying.empty else 0.0 for c in ROLLUP_SUMS}
    return {
        "employee_count": int(len(qualifying)),
        **sums,
        "utilization": safe_pct(sums["booked_billable_hours"], sums["required_billable_hours"]),
        "booked_utilization": safe_pct(sums["total_booked_hours"], sums["potential_hours"]),
    }


def sort_employees(employees: pd.DataFrame, sort_by: str = "percent_to_target", descending: bool = True) -> pd.DataFrame:
    if employees.empty:
        return employees
    col = SORT_FIELDS.get(sort_by, "percent_to_target")
    return employees.sort_values(
        [col, "normalized_name"], ascending=[not descending, True], kind="mergesort"
    ).reset_index(drop=True)


def _department_chart(departments: pd.DataFrame) -> alt.LayerChart:
    hover = alt.selection_point(name="department_hover", fields=["department"], on="mouseover", empty="all")
    bars = (
        alt.Chart(departments)
        .mark_bar()
        .encode(
            x=alt.X("department:N", title="Department", sort="-y", axis=alt.Axis(labelAngle=0)),
            y=alt.Y("utilization:Q", axis=percent_axis("% to Target")),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.5)),
            tooltip=[
                alt.Tooltip("department:N", title="Department"),
                alt.Tooltip("employee_count:Q", title="Employees"),
                alt.Tooltip("booked_billable_hours:Q", title="Billable Hrs", format=",.1f"),
                alt.Tooltip("required_billable_hours:Q", title="Required Hrs", format=",.1f"),
                alt.Tooltip("utilization:Q", title="% to Target", format=".1f"),
            ],
        )
        .add_params(hover)
        .properties(name="department_bars")
    )
    return (bars + target_rule()).properties(height=320)


def _employee_chart(employees: pd.DataFrame) -> alt.Chart:
    src = employees[["display_name", "department", "percent_to_target", "booked_billable_hours"]]
    return (
        alt.Chart(src)
        .mark_bar()
        .encode(
            y=alt.Y("display_name:N", title=None, sort="-x"),
            x=alt.X("percent_to_target:Q", axis=percent_axis("% of Target")),
            color=alt.Color("department:N", title="Department"),
            tooltip=[
                alt.Tooltip("display_name:N", title="Employee"),
                alt.Tooltip("department:N", title="Department"),
                alt.Tooltip("booked_billable_hours:Q", title="Billable Hrs", format=",.2f"),
                alt.Tooltip("percent_to_target:Q", title="% of Target", format=".1f"),
            ],
        )
        .properties(height=max(120, 22 * len(src)))
    )


def compute_utilization(
    filters: CapacityFilters,
    ctx: Dict[str, Any],
    *,
    sort_by: str = "percent_to_target",
    descending: bool = True,
) -> Dict[str, Any]:
    period: Period = ctx["period"]
    allocations: pd.DataFrame = ctx.get("classified_allocations", pd.DataFrame())
    roster: pd.DataFrame = ctx.get("roster", pd.DataFrame())
    min_billable = filters.constants.min_billable_hours

    employees = sort_employees(aggregate_employees(allocations, roster, period, filters), sort_by, descending)
    departments = rollup_departments(employees, min_billable_hours=min_billable)
    overall = rollup_overall(employees, min_billable_hours=min_billable)

    charts: Dict[str, Any] = {}
    if not departments.empty:
        charts["department_utilization"] = to_vega_spec(_department_chart(departments))
    if not employees.empty:
        charts["employee_percent_to_target"] = to_vega_spec(_employee_chart(employees))

    return {
        "filters": asdict(filters),
        "period": period.to_dict(),
        "kpis": overall,
        "departments": departments.to_dict(orient="records"),
        "employees": employees.to_dict(orient="records"),
        "charts": charts,
    }
