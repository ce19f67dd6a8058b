"""CSV export of the employee table."""

import csv
import io

from core.data import prepare_context
from core.export import EXPORT_HEADER, build_export_frame, export_csv_bytes, export_filename
from core.filters import normalize_filters
from core.metrics_utilization import compute_utilization


def _employees(ctx, raw):
    filters = normalize_filters(raw, available_months=ctx["months"])
    return compute_utilization(filters, prepare_context(filters, ctx), sort_by="name", descending=False)


class TestExportCsv:
    def test_header_and_row(self, jane_scenario_ctx, jan_range):
        lines = export_csv_bytes(_employees(jane_scenario_ctx, jan_range)["employees"]).decode("utf-8").splitlines()
        assert lines[0] == "First Last,Title,Department,Required Hrs,Hrs Booked,Target %,% of Target,PTO Hrs,INT Hrs"
        assert lines[1] == "Jane Doe,Engineer,Eng,51.20,100.00,80,195.31,0.00,0.00"
        assert len(lines) == 2

    def test_rows_in_payload_order(self, data_ctx):
        payload = _employees(data_ctx, {"filter_mode": "month", "selected_month": "Jan 2025"})
        rows = list(csv.DictReader(io.StringIO(export_csv_bytes(payload["employees"]).decode("utf-8"))))
        assert [r["First Last"] for r in rows] == ["Ann Lee", "Jane Doe", "John Smith"]
        john = rows[2]
        assert john["INT Hrs"] == "8.00"
        assert john["Target %"] == "50"

    def test_fields_with_commas_are_quoted(self):
        employee = {
            "display_name": "Jane Doe",
            "title": "Director, Delivery",
            "department": "Eng",
            "required_billable_hours": 10,
            "booked_billable_hours": 5,
            "billing_target": 0.5,
            "percent_to_target": 50,
            "pto_hours": 0,
            "int_hours": 0,
        }
        text = export_csv_bytes([employee]).decode("utf-8")
        assert '"Director, Delivery"' in text
        assert next(csv.reader(io.StringIO(text.splitlines()[1])))[1] == "Director, Delivery"

    def test_missing_values_render_as_zero(self):
        frame = build_export_frame([{"normalized_name": "JANE DOE", "percent_to_target": float("nan")}])
        row = frame.iloc[0]
        assert row["First Last"] == "JANE DOE"
        assert row["% of Target"] == "0.00"
        assert row["Target %"] == "0"

    def test_empty_export_has_header_only(self):
        assert export_csv_bytes([]).decode("utf-8").splitlines() == [",".join(EXPORT_HEADER)]


def test_export_filename():
    assert export_filename({"start_date": "2025-01-01", "end_date": "2025-01-31"}) == "capacity_2025-01-01_2025-01-31.csv"
    assert export_filename({}) == "capacity.csv"
