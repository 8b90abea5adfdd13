from dateutil.parser import parse
from datetime import date, datetime, timedelta
import logging
from typing import Tuple, Union

logger = logging.getLogger(__name__)

def parse_with_dateutil(date_string: Union[str, None]) -> Union[datetime, None]:
    """
    Intelligently parses a date string using dateutil.parser.
    Returns a datetime object or None if parsing fails.
    """
    if not date_string:
        return None
    
    try:
        # Receipts printed in Korea put the year first (2024.03.15, 24/03/15).
        return parse(date_string, yearfirst=True, dayfirst=False)
    except (ValueError, TypeError, OverflowError):
        # ValueError: Catches unparseable strings like "not a date"
        # TypeError: Catches if date_string is not a string (e.g., a number)
        logger.warning(f"dateutil could not parse date: '{date_string}'.")
        return None


def calculate_date_range(year: int, month: int) -> Tuple[date, date]:
    """Calculate start and end date for a given year and month."""
    start_date = date(year, month, 1)
    
    # Get the last day of the month
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    
    end_date = next_month - timedelta(days=1)
    
    return start_date, end_date
