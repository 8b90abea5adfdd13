from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel


class MonthlyPeriod(BaseModel):
    year: int
    month: int
    label: str  # e.g., "2025-04"
    start_date: date
    end_date: date


class CategoryStats(BaseModel):
    amount: int
    count: int


class MonthlyReport(BaseModel):
    period: MonthlyPeriod
    total_amount: int
    total_count: int
    average_amount: float
    categories: Dict[str, CategoryStats]


class MonthOverview(BaseModel):
    month: str  # YYYY-MM
    total_amount: int
    count: int


class MonthlyOverviewResponse(BaseModel):
    months: List[MonthOverview]


class CategoryReport(BaseModel):
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    categories: Dict[str, CategoryStats]
