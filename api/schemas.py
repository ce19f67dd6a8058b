from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field


class PlanningConstantsModel(BaseModel):
    annual_billable_hours: float = Field(default=2080.0, ge=0)
    annual_business_days: float = Field(default=260.0, ge=0)
    min_billable_hours: float = Field(default=1.0, ge=0)


class CapacityFiltersModel(BaseModel):
    filter_mode: Literal["month", "dateRange"] = "month"
    selected_month: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    selected_department: str = "All"
    include_env: bool = True
    include_pnb: bool = False
    internal_match: Literal["bracket", "substring", "exact"] = "bracket"
    constants: PlanningConstantsModel = Field(default_factory=PlanningConstantsModel)
