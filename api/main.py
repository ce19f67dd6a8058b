from __future__ import annotations

import logging
import math
from typing import Literal

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import CapacityFiltersModel
from core.data import SourceFetchError, load_dashboard_data, prepare_context
from core.export import export_csv_bytes, export_filename
from core.filters import CapacityFilters, normalize_filters
from core.metrics_debug import compute_debug
from core.metrics_utilization import compute_utilization

app = FastAPI(title="Capacity Planning API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SortField = Literal[
    "name", "department", "percent_to_target", "utilization_percent", "booked_billable_hours", "total_booked_hours"
]


def _filters_from_model(model: CapacityFiltersModel, *, available_months: list[str]) -> CapacityFilters:
    raw = model.model_dump()
    return normalize_filters(raw, available_months=available_months)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, label: str) -> JSONResponse:
    if isinstance(exc, SourceFetchError):
        logger.warning("%s failed: %s", label, exc)
        return JSONResponse(
            status_code=502,
            content={"error": str(exc), "type": type(exc).__name__, "table": exc.table},
        )
    logger.exception("%s failed", label)
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/meta/months")
def meta_months():
    try:
        data_ctx = load_dashboard_data()
        return _json({"values": list(data_ctx.get("months", []) or [])})
    except Exception as exc:
        return _error(exc, "meta_months")


@app.get("/meta/departments")
def meta_departments():
    try:
        data_ctx = load_dashboard_data()
        return _json({"values": list(data_ctx.get("departments", []) or [])})
    except Exception as exc:
        return _error(exc, "meta_departments")


@app.post("/refresh")
def refresh():
    try:
        data_ctx = load_dashboard_data(refresh=True)
        return _json(
            {
                "loaded_at": data_ctx.get("loaded_at"),
                "roster_rows": int(len(data_ctx.get("roster", pd.DataFrame()))),
                "allocation_rows": int(len(data_ctx.get("allocations", pd.DataFrame()))),
            }
        )
    except Exception as exc:
        return _error(exc, "refresh")


@app.post("/utilization")
def utilization(
    filters: CapacityFiltersModel,
    sort_by: SortField = Query(default="percent_to_target"),
    descending: bool = Query(default=True),
):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters, available_months=data_ctx.get("months", []))
        ctx = prepare_context(f, data_ctx)
        return _json(compute_utilization(f, ctx, sort_by=sort_by, descending=descending))
    except Exception as exc:
        return _error(exc, "utilization")


@app.post("/debug")
def debug(filters: CapacityFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters, available_months=data_ctx.get("months", []))
        ctx = prepare_context(f, data_ctx)
        return _json(compute_debug(f, ctx))
    except Exception as exc:
        return _error(exc, "debug")


@app.post("/export")
def export(filters: CapacityFiltersModel, sort_by: SortField = Query(default="name")):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters, available_months=data_ctx.get("months", []))
        ctx = prepare_context(f, data_ctx)
        payload = compute_utilization(f, ctx, sort_by=sort_by, descending=sort_by != "name")
    except Exception as exc:
        return _error(exc, "export")

    csv_bytes = export_csv_bytes(payload["employees"])
    filename = export_filename(payload["period"])
    return Response(
        content=csv_bytes,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
