import logging
from contextlib import contextmanager
from datetime import date
from typing import Optional

import altair as alt
import pandas as pd
import streamlit as st

from core import data as dc
from core.export import export_csv_bytes, export_filename
from core.filters import ALL_DEPARTMENTS, default_month, normalize_filters
from core.metrics_utilization import compute_utilization
from core.periods import parse_month_label

logger = logging.getLogger(__name__)
alt.data_transformers.disable_max_rows()


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(filters) -> str:
    if filters.filter_mode == "dateRange":
        period_chip = f"Dates: {filters.start_date:%m/%d/%Y} – {filters.end_date:%m/%d/%Y}"
    else:
        period_chip = f"Month: {filters.selected_month}"
    dept_chip = f"Department: {filters.selected_department}"
    env_chip = "ENV: included" if filters.include_env else "ENV: excluded"
    pnb_chip = "PNB: included" if filters.include_pnb else "PNB: excluded"
    return "".join(f"<span class='chip'>{txt}</span>" for txt in [period_chip, dept_chip, env_chip, pnb_chip])


def load_data_or_last_good(refresh: bool = False) -> Optional[dict]:
    """Fetch both tables; on failure keep showing the last successful load."""
    try:
        data_ctx = dc.load_dashboard_data(refresh=refresh)
    except dc.SourceFetchError as exc:
        logger.warning("Refresh failed: %s", exc)
        st.error(f"Could not refresh data: {exc}")
        return st.session_state.get("_last_good_data")
    st.session_state["_last_good_data"] = data_ctx
    return data_ctx


def fmt_hours(value: Optional[float]) -> str:
    return f"{value:,.1f}" if value is not None else "N/A"


# ---------- UI setup ----------
st.set_page_config(page_title="Capacity Planning Dashboard", layout="wide")
inject_base_styles()
st.title("Capacity Planning Dashboard")
st.caption("Booked hours against billing targets, by employee and department.")

refresh_clicked = st.sidebar.button("Refresh data")
data_ctx = load_data_or_last_good(refresh=refresh_clicked)
if not data_ctx:
    st.stop()

months = data_ctx.get("months", [])
departments = data_ctx.get("departments", [])

# ----- Sidebar: filters -----
with st.sidebar:
    st.markdown("### Period")
    mode_label = st.radio("Filter by", ["Month", "Date range"], index=0, horizontal=True)
    filter_mode = "month" if mode_label == "Month" else "dateRange"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    fallback_month = default_month(months)
    if filter_mode == "month":
        month_options = months or [fallback_month]
        selected_month = st.selectbox("Month", month_options, index=month_options.index(fallback_month) if fallback_month in month_options else 0)
    else:
        selected_month = fallback_month
        month_start, month_end = parse_month_label(fallback_month)
        start_date = st.date_input("Start date", value=month_start)
        end_date = st.date_input("End date", value=month_end)

    st.markdown("---")
    st.markdown("### Scope")
    selected_department = st.selectbox("Department", [ALL_DEPARTMENTS] + departments, index=0)
    include_env = st.checkbox("Include ENV overhead", value=True)
    include_pnb = st.checkbox("Include PNB (non-billable)", value=False)

    with st.expander("Advanced settings", expanded=False):
        annual_billable_hours = st.number_input("Annual billable hours", min_value=0.0, value=2080.0, step=4.0)
        annual_business_days = st.number_input("Annual business days", min_value=0.0, value=260.0, step=1.0)
        min_billable_hours = st.number_input("Rollup minimum billable hours", min_value=0.0, value=1.0, step=0.5)
        internal_match = st.selectbox("Internal (INT) matching", ["bracket", "substring", "exact"], index=0)

filters = normalize_filters(
    {
        "filter_mode": filter_mode,
        "selected_month": selected_month,
        "start_date": start_date,
        "end_date": end_date,
        "selected_department": selected_department,
        "include_env": include_env,
        "include_pnb": include_pnb,
        "internal_match": internal_match,
        "constants": {
            "annual_billable_hours": annual_billable_hours,
            "annual_business_days": annual_business_days,
            "min_billable_hours": min_billable_hours,
        },
    },
    available_months=months,
)

ctx = dc.prepare_context(filters, data_ctx)
payload = compute_utilization(filters, ctx)
kpis = payload["kpis"]
period = payload["period"]
employees = payload["employees"]

# ----- Header -----
head_cols = st.columns([6, 2])
with head_cols[0]:
    st.markdown(
        f"<div class='app-top-bar'><div class='breadcrumb'>Home / Utilization</div>"
        f"<div class='page-title'>{period['start_date']} → {period['end_date']} ({period['business_days']} business days)</div></div>",
        unsafe_allow_html=True,
    )
    st.markdown(f"<div class='chip-row'>{format_filter_summary(filters)}</div>", unsafe_allow_html=True)
with head_cols[1]:
    if employees:
        st.download_button(
            "Export CSV",
            data=export_csv_bytes(employees),
            file_name=export_filename(period),
            mime="text/csv",
        )
    else:
        st.caption("No data available to export.")

# ----- KPI tiles -----
with card("Overall"):
    cols = st.columns(5)
    cols[0].metric("% to Target", f"{kpis['utilization']:.1f}%", help="Billable hours / required billable hours.")
    cols[1].metric("Billable Hrs", fmt_hours(kpis["booked_billable_hours"]))
    cols[2].metric("Required Hrs", fmt_hours(kpis["required_billable_hours"]))
    cols[3].metric("PTO Hrs", fmt_hours(kpis["pto_hours"]))
    cols[4].metric("Employees", f"{kpis['employee_count']:,}", help="Employees with at least the rollup minimum of billable hours.")

# ----- Charts -----
chart_cols = st.columns(2)
with chart_cols[0]:
    with card("Department % to Target"):
        spec = payload["charts"].get("department_utilization")
        if spec:
            st.vega_lite_chart(spec, use_container_width=True)
        else:
            st.info("No department has billable hours in this period.")
with chart_cols[1]:
    with card("Department summary"):
        dept_df = pd.DataFrame(payload["departments"])
        if dept_df.empty:
            st.info("No department rollup for the selected filters.")
        else:
            st.dataframe(
                dept_df[["department", "employee_count", "booked_billable_hours", "required_billable_hours", "utilization"]],
                hide_index=True,
                use_container_width=True,
            )

# ----- Employee table -----
with card("Employees"):
    if not employees:
        st.info("No allocations match the selected filters.")
    else:
        table = pd.DataFrame(employees).drop(columns=["projects", "normalized_name"])
        st.dataframe(table, hide_index=True, use_container_width=True)
        names = [e["display_name"] for e in employees]
        chosen = st.selectbox("Project breakdown for", names)
        detail = next(e for e in employees if e["display_name"] == chosen)
        st.dataframe(pd.DataFrame(detail["projects"]), hide_index=True, use_container_width=True)

with st.expander("Sources"):
    st.write({"sources": ctx.get("sources"), "loaded_at": ctx.get("loaded_at"), "unmatched_rows": int(len(ctx["unmatched_allocations"]))})
