import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.api.dependencies import CurrentUser, get_current_user
from app.core.db import get_db
from app.models.receipt import Receipt
from app.utils.date import calculate_date_range
from schemas.reports.monthly import (
    MonthlyReport, MonthlyPeriod, CategoryStats, MonthOverview,
    MonthlyOverviewResponse, CategoryReport
)
from utils.aggregation import group_by_category, group_by_month, summarize

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/monthly", response_model=MonthlyReport)
async def get_monthly_report(
    year: int = Query(..., ge=1900, le=9999, description="Report year"),
    month: int = Query(..., ge=1, le=12, description="Report month (1-12)"),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> MonthlyReport:
    """Totals, count, average and per-category breakdown for one month"""
    start_date, end_date = calculate_date_range(year, month)

    query = select(Receipt.receipt_date, Receipt.total_amount, Receipt.category).where(
        Receipt.user_id == current_user.user_id,
        Receipt.receipt_date >= start_date,
        Receipt.receipt_date <= end_date
    )
    result = await db.execute(query)
    rows = [dict(row._mapping) for row in result.all()]

    summary = summarize(rows)
    categories = group_by_category(rows)

    return MonthlyReport(
        period=MonthlyPeriod(
            year=year,
            month=month,
            label=f"{year:04d}-{month:02d}",
            start_date=start_date,
            end_date=end_date
        ),
        total_amount=summary.total,
        total_count=summary.count,
        average_amount=summary.average,
        categories={
            name: CategoryStats(amount=bucket.total, count=bucket.count)
            for name, bucket in categories.items()
        }
    )


@router.get("/months", response_model=MonthlyOverviewResponse)
async def get_monthly_overview(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> MonthlyOverviewResponse:
    """Per-month count and total across all of the caller's receipts, newest month first"""
    query = select(Receipt.receipt_date, Receipt.total_amount).where(
        Receipt.user_id == current_user.user_id
    )
    result = await db.execute(query)
    buckets = group_by_month(dict(row._mapping) for row in result.all())

    return MonthlyOverviewResponse(
        months=[
            MonthOverview(month=key, total_amount=bucket.total, count=bucket.count)
            for key, bucket in sorted(buckets.items(), reverse=True)
        ]
    )


@router.get("/categories", response_model=CategoryReport)
async def get_category_report(
    from_date: Optional[date] = Query(None, description="Start date (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, description="End date (YYYY-MM-DD)"),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> CategoryReport:
    if from_date and to_date and from_date > to_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "status": "error",
                "error_code": "validation_error",
                "error": "from_date must not be after to_date"
            }
        )

    query_filters = [Receipt.user_id == current_user.user_id]
    if from_date:
        query_filters.append(Receipt.receipt_date >= from_date)
    if to_date:
        query_filters.append(Receipt.receipt_date <= to_date)

    result = await db.execute(select(Receipt.category, Receipt.total_amount).where(*query_filters))
    categories = group_by_category(dict(row._mapping) for row in result.all())

    return CategoryReport(
        from_date=from_date,
        to_date=to_date,
        categories={
            name: CategoryStats(amount=bucket.total, count=bucket.count)
            for name, bucket in categories.items()
        }
    )
