from __future__ import annotations

import io
import logging
import math
import os
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import pandas as pd
import requests

from core.allocations import NON_BOOKED_CATEGORIES, classify_allocations, classify_task, select_allocations
from core.filters import CapacityFilters, normalize_filters
from core.periods import month_sort_key, resolve_period

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1]
ROSTER_FILE = DATA_DIR / "roster.csv"
ALLOCATIONS_FILE = DATA_DIR / "allocations.csv"

SHEET_CSV_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:csv&sheet={sheet}"
DEFAULT_ROSTER_SHEET = "Names"
DEFAULT_ALLOCATIONS_SHEET = "Allocations"
DEFAULT_CACHE_TTL_SECONDS = 300
FETCH_TIMEOUT_SECONDS = 20

ROSTER_COLUMNS = {
    "Name": "name",
    "Department": "department",
    "Title": "title",
    "Percentage Billable": "percentage_billable",
}

ALLOCATION_COLUMNS = {
    "Resource": "resource_name",
    "Name": "task_label",
    "Project (from Task)": "project_name",
    "Estimated Hours": "estimated_hours_raw",
    "Start Date": "start_date_raw",
    "End Date": "end_date_raw",
    "Month": "month",
}

ROSTER_FIELDS = ["normalized_name", "display_name", "department", "title", "billing_target"]
ALLOCATION_FIELDS = [
    "row_id",
    "resource_name",
    "normalized_resource",
    "project_name",
    "task_label",
    "start_date",
    "end_date",
    "estimated_hours",
    "month",
    "date_parse_failed",
]


class SourceFetchError(RuntimeError):
    """Raised when either source table cannot be fetched or parsed."""

    def __init__(self, table: str, source: str, reason: str) -> None:
        super().__init__(f"Could not load {table} from {source}: {reason}")
        self.table = table
        self.source = source
        self.reason = reason


# ---------------- Sources ----------------
def sheet_csv_url(sheet_id: str, sheet: str) -> str:
    return SHEET_CSV_URL.format(sheet_id=sheet_id, sheet=quote(sheet))


def get_sources() -> Tuple[str, str]:
    """Resolve (roster, allocations) sources from the environment.

    Explicit CSV locations win, then a published Google Sheet, then the CSV
    files sitting next to the app.
    """
    roster = os.environ.get("CAPACITY_ROSTER_CSV", "").strip()
    allocations = os.environ.get("CAPACITY_ALLOCATIONS_CSV", "").strip()
    sheet_id = os.environ.get("CAPACITY_SPREADSHEET_ID", "").strip()
    if sheet_id:
        roster = roster or sheet_csv_url(sheet_id, os.environ.get("CAPACITY_ROSTER_SHEET", DEFAULT_ROSTER_SHEET))
        allocations = allocations or sheet_csv_url(
            sheet_id, os.environ.get("CAPACITY_ALLOCATIONS_SHEET", DEFAULT_ALLOCATIONS_SHEET)
        )
    return roster or str(ROSTER_FILE), allocations or str(ALLOCATIONS_FILE)


def cache_ttl_seconds() -> int:
    try:
        return max(0, int(os.environ.get("CAPACITY_CACHE_TTL", DEFAULT_CACHE_TTL_SECONDS)))
    except ValueError:
        return DEFAULT_CACHE_TTL_SECONDS


def read_csv_source(source: str) -> pd.DataFrame:
    if source.startswith(("http://", "https://")):
        r = requests.get(source, timeout=FETCH_TIMEOUT_SECONDS)
        r.raise_for_status()
        text = r.content.decode("utf-8-sig", errors="replace")
        df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"No such file: {path}")
        df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    df.columns = [str(c).strip() for c in df.columns]
    return df


def fetch_sources(roster_source: str, allocations_source: str) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Fetch both tables concurrently; either failure aborts the whole load."""
    sources = {"roster": roster_source, "allocations": allocations_source}
    frames: Dict[str, pd.DataFrame] = {}
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = {table: pool.submit(read_csv_source, source) for table, source in sources.items()}
        for table, future in futures.items():
            try:
                frames[table] = future.result()
            except (requests.RequestException, OSError, ValueError) as exc:
                logger.warning("Fetching %s from %s failed: %s", table, sources[table], exc)
                raise SourceFetchError(table, sources[table], str(exc)) from exc
    return frames["roster"], frames["allocations"]


# ---------------- Record normalizer ----------------
def is_blank(value: object) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        return False
    return str(value).strip() == ""


def normalize_name(raw: object) -> str:
    """Canonical "FIRST LAST" form; "Last, First" is reordered on its first comma."""
    if is_blank(raw):
        return ""
    text = str(raw).strip()
    if "," in text:
        last, first = text.split(",", 1)
        return f"{first.strip()} {last.strip()}".strip().upper()
    return text.upper()


def display_name(raw: object) -> str:
    if is_blank(raw):
        return ""
    text = str(raw).strip()
    if "," in text:
        last, first = text.split(",", 1)
        return f"{first.strip()} {last.strip()}".strip()
    return text


def parse_percent(raw: object) -> float:
    """Billing target as a 0-1 ratio. Values above 1 are read as 0-100 percentages."""
    if is_blank(raw):
        return 0.0
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = float(raw)
    else:
        text = str(raw).strip().rstrip("%").strip().replace(",", "")
        try:
            value = float(text)
        except ValueError:
            return 0.0
    if math.isnan(value):
        return 0.0
    if value > 1:
        value = value / 100
    return min(1.0, max(0.0, value))


def parse_date(raw: object, reference_year: Optional[int] = None) -> Optional[date]:
    """Parse ``MM/DD/YYYY`` or ``Mon-DD`` (year taken from ``reference_year``)."""
    if is_blank(raw):
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    try:
        return datetime.strptime(text, "%m/%d/%Y").date()
    except ValueError:
        pass
    year = reference_year or date.today().year
    try:
        return datetime.strptime(f"{text}-{year}", "%b-%d-%Y").date()
    except ValueError:
        return None


def parse_hours(raw: object) -> float:
    if is_blank(raw):
        return 0.0
    try:
        value = float(str(raw).strip().replace(",", ""))
    except ValueError:
        return 0.0
    if math.isnan(value) or value < 0:
        return 0.0
    return value


def drop_duplicate_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[:, ~df.columns.duplicated()]


def select_columns(raw: pd.DataFrame, mapping: Dict[str, str]) -> pd.DataFrame:
    """Rename known source headers, ignore the rest and default missing ones to ""."""
    df = raw.copy()
    df.columns = [str(c).strip() for c in df.columns]
    df = drop_duplicate_columns(df.rename(columns=mapping))
    for col in mapping.values():
        if col not in df.columns:
            df[col] = ""
    df = df[list(mapping.values())].copy()
    for col in mapping.values():
        df[col] = df[col].apply(lambda v: "" if is_blank(v) else str(v).strip())
    return df


def normalize_roster(raw: pd.DataFrame) -> pd.DataFrame:
    if raw is None or raw.empty:
        return pd.DataFrame(columns=ROSTER_FIELDS)
    df = select_columns(raw, ROSTER_COLUMNS)
    df["normalized_name"] = df["name"].apply(normalize_name)
    df["display_name"] = df["name"].apply(display_name)
    df["billing_target"] = df["percentage_billable"].apply(parse_percent).astype(float)
    df = df[df["normalized_name"] != ""]
    df = df.drop_duplicates(subset=["normalized_name"], keep="first")
    return df[ROSTER_FIELDS].reset_index(drop=True)


def normalize_allocations(raw: pd.DataFrame, *, reference_year: Optional[int] = None) -> pd.DataFrame:
    if raw is None or raw.empty:
        return pd.DataFrame(columns=ALLOCATION_FIELDS)
    reference_year = reference_year or date.today().year
    df = select_columns(raw, ALLOCATION_COLUMNS)
    df["row_id"] = range(len(df))
    df["normalized_resource"] = df["resource_name"].apply(normalize_name)
    df["start_date"] = df["start_date_raw"].apply(parse_date, reference_year=reference_year).astype(object)
    df["end_date"] = df["end_date_raw"].apply(parse_date, reference_year=reference_year).astype(object)
    df["estimated_hours"] = df["estimated_hours_raw"].apply(parse_hours).astype(float)
    df["month"] = df["month"].where(df["month"] != "", None)
    df["date_parse_failed"] = ((df["start_date_raw"] != "") & df["start_date"].isna()) | (
        (df["end_date_raw"] != "") & df["end_date"].isna()
    )
    return df[ALLOCATION_FIELDS].reset_index(drop=True)


def available_months(allocations: pd.DataFrame) -> List[str]:
    if allocations.empty or "month" not in allocations.columns:
        return []
    labels = {str(m).strip() for m in allocations["month"].dropna() if str(m).strip()}
    return sorted(labels, key=lambda m: (month_sort_key(m), m))


def departments_with_allocations(
    roster: pd.DataFrame, allocations: pd.DataFrame, *, internal_match: str = "bracket"
) -> List[str]:
    """Departments whose people hold at least one allocation other than PTO or internal time."""
    if roster.empty or allocations.empty:
        return []
    labels = allocations["project_name"].where(allocations["project_name"] != "", allocations["task_label"])
    categories = labels.apply(lambda s: classify_task(s, internal_match).value)
    booked = set(allocations.loc[~categories.isin(NON_BOOKED_CATEGORIES), "normalized_resource"])
    depts = roster.loc[roster["normalized_name"].isin(booked), "department"]
    return sorted({d for d in depts if d})


# ---------------- Public API (Streamlit + FastAPI use) ----------------
def build_data_context(
    roster_raw: pd.DataFrame,
    allocations_raw: pd.DataFrame,
    *,
    sources: Iterable[str] = (),
    reference_year: Optional[int] = None,
) -> Dict[str, object]:
    roster = normalize_roster(roster_raw)
    allocations = normalize_allocations(allocations_raw, reference_year=reference_year)
    logger.info("Loaded %d roster rows and %d allocation rows", len(roster), len(allocations))
    return {
        "sources": list(sources),
        "loaded_at": datetime.now().isoformat(timespec="seconds"),
        "roster": roster,
        "allocations": allocations,
        "months": available_months(allocations),
        "departments": departments_with_allocations(roster, allocations),
    }


@lru_cache(maxsize=4)
def _load_dashboard_data_cached(sources: Tuple[str, str], cache_bucket: int) -> Dict[str, object]:
    roster_raw, allocations_raw = fetch_sources(*sources)
    return build_data_context(roster_raw, allocations_raw, sources=sources)


def load_dashboard_data(*, refresh: bool = False) -> Dict[str, object]:
    """Load both tables, served from a short-lived cache unless ``refresh`` is set.

    Raises ``SourceFetchError`` when either table is unavailable; failures are
    never cached.
    """
    if refresh:
        _load_dashboard_data_cached.cache_clear()
    ttl = cache_ttl_seconds()
    bucket = int(time.time() // ttl) if ttl else time.time_ns()
    return _load_dashboard_data_cached(get_sources(), bucket)


def prepare_context(filters: dict | CapacityFilters, data_ctx: Dict[str, object]) -> Dict[str, object]:
    roster: pd.DataFrame = data_ctx.get("roster", pd.DataFrame(columns=ROSTER_FIELDS)).copy()
    allocations: pd.DataFrame = data_ctx.get("allocations", pd.DataFrame(columns=ALLOCATION_FIELDS)).copy()

    filt = (
        filters
        if isinstance(filters, CapacityFilters)
        else normalize_filters(filters, available_months=data_ctx.get("months") or available_months(allocations))
    )
    period = resolve_period(filt)

    selected = select_allocations(allocations, filt, period)
    classified = classify_allocations(selected, filt)

    known = set(roster["normalized_name"]) if "normalized_name" in roster.columns else set()
    matched_mask = classified["normalized_resource"].isin(known) if not classified.empty else pd.Series(dtype=bool)
    unmatched = classified[~matched_mask] if not classified.empty else classified

    return {
        "filters": filt,
        "period": period,
        "roster": roster,
        "allocations": allocations,
        "selected_allocations": selected,
        "classified_allocations": classified,
        "unmatched_allocations": unmatched,
        "sources": data_ctx.get("sources", []),
        "loaded_at": data_ctx.get("loaded_at"),
    }


def iter_source_columns() -> Iterable[Tuple[str, List[str]]]:
    yield "roster", list(ROSTER_COLUMNS)
    yield "allocations", list(ALLOCATION_COLUMNS)
