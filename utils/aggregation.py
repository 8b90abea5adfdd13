import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel

from app.core.config import settings

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


class ReceiptSummary(BaseModel):
    count: int = 0
    total: int = 0
    average: float = 0.0


class MonthBucket(BaseModel):
    count: int = 0
    total: int = 0


class CategoryBucket(BaseModel):
    count: int = 0
    total: int = 0


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _amount(record: Any) -> int:
    amount = _field(record, "total_amount")
    try:
        return int(amount or 0)
    except (TypeError, ValueError):
        return 0


def month_key(value: Any) -> Optional[str]:
    """Return ``YYYY-MM`` for an ISO date (string or date), or None if malformed."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:7]
    if not isinstance(value, str) or not ISO_DATE.match(value):
        return None
    try:
        return date.fromisoformat(value[:10]).isoformat()[:7]
    except ValueError:
        return None


def summarize(records: Iterable[Any]) -> ReceiptSummary:
    """Count, sum and mean of receipt amounts; a missing amount counts as 0."""
    count = 0
    total = 0
    for record in records:
        count += 1
        total += _amount(record)
    return ReceiptSummary(count=count, total=total, average=total / count if count else 0.0)


def group_by_month(records: Iterable[Any]) -> Dict[str, MonthBucket]:
    """
    Bucket receipts by calendar month of their ``receipt_date``.

    Records without a usable date are left out instead of failing the whole
    aggregation.
    """
    buckets: Dict[str, MonthBucket] = {}
    for record in records:
        key = month_key(_field(record, "receipt_date"))
        if key is None:
            continue
        bucket = buckets.setdefault(key, MonthBucket())
        bucket.count += 1
        bucket.total += _amount(record)
    return buckets


def group_by_category(records: Iterable[Any]) -> Dict[str, CategoryBucket]:
    buckets: Dict[str, CategoryBucket] = {}
    for record in records:
        category = _field(record, "category") or settings.DEFAULT_CATEGORY
        bucket = buckets.setdefault(category, CategoryBucket())
        bucket.count += 1
        bucket.total += _amount(record)
    return buckets
