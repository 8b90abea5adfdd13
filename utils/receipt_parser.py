import re
import logging
from datetime import date
from typing import Callable, List, Optional, Tuple

from schemas.ocr import MAX_TOTAL_AMOUNT, ParsedReceipt

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 50
MIN_PLAUSIBLE_YEAR = 1990

# Store name
STORE_NAME_SCAN_LINES = 5
MERCHANT_INDICATORS = [
    re.compile(r"점(?=\s|$)"),        # branch suffix, e.g. "강남점"
    re.compile(r"\(주\)|㈜|주식회사"),  # corporate entity marker
    re.compile(r"상호|가맹점명|매장명"),  # printed business-name labels
    re.compile(r"\bstore\b", re.IGNORECASE),
]
PROPRIETOR_MARKER = re.compile(r"대표")
NON_NAME_CHARS = re.compile(r"[^0-9A-Za-z가-힣ㄱ-ㅎㅏ-ㅣ\s]")

# Total amount
TOTAL_KEYWORD_AMOUNT = re.compile(
    r"(?:판매\s*합계|받을\s*금액|결제\s*금액|합\s*계|총\s*액|총\s*계|(?<![A-Za-z])total|(?<![A-Za-z])sum)"
    r"(?:\s*금액)?[\s:：₩￦\\]*(\d[\d,]{0,14})(?!\d)",
    re.IGNORECASE,
)
# Runs longer than any plausible amount (barcodes, OCR noise) never match
NUMBER_RUN = re.compile(r"(?<![\d,])\d[\d,]{0,14}(?!\d)")
MIN_FALLBACK_AMOUNT = 100

DateResult = Tuple[str, Optional[str]]
DateFormatter = Callable[[re.Match, date], Optional[DateResult]]


def parse_receipt_text(raw_text: str, confidence: Optional[int] = None, today: Optional[date] = None) -> ParsedReceipt:
    """
    Extract store name, total amount and transaction date from OCR text.

    Never raises: anything that cannot be recognised is left absent so the
    user can fill it in. The only impure step is the fallback to ``today``
    when the text carries no recognisable date.

    Args:
        raw_text: Newline separated OCR output, kept verbatim on the result.
        confidence: Backend confidence (0-100); defaults to 50, or 0 for blank text.
        today: Reference date for the year check and the missing-date fallback.
    """
    raw_text = raw_text or ""
    today = today or date.today()

    if not raw_text.strip():
        return ParsedReceipt(raw_text=raw_text, confidence=0)

    transaction_date, transaction_time = extract_transaction_date(raw_text, today)
    if transaction_date is None:
        logger.debug("No date found in receipt text, using %s", today.isoformat())
        transaction_date = today.isoformat()

    return ParsedReceipt(
        store_name=extract_store_name(raw_text),
        total_amount=extract_total_amount(raw_text),
        transaction_date=transaction_date,
        transaction_time=transaction_time,
        raw_text=raw_text,
        confidence=DEFAULT_CONFIDENCE if confidence is None else max(0, min(100, int(confidence))),
    )


def _clean_store_name(line: str) -> Optional[str]:
    cleaned = NON_NAME_CHARS.sub("", line).strip()
    return cleaned or None


def extract_store_name(raw_text: str) -> Optional[str]:
    lines = [line.strip() for line in raw_text.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return None

    for line in lines[:STORE_NAME_SCAN_LINES]:
        if PROPRIETOR_MARKER.search(line):
            continue
        if any(pattern.search(line) for pattern in MERCHANT_INDICATORS):
            return _clean_store_name(line)

    # Receipts conventionally print the merchant first
    for line in lines:
        if not PROPRIETOR_MARKER.search(line):
            return _clean_store_name(line)
    return None


def to_amount(number: Optional[str]) -> Optional[int]:
    """Whole-unit amount from a printed number; None when empty or outside 0..MAX_TOTAL_AMOUNT."""
    digits = re.sub(r"[^\d]", "", number or "")
    if not digits or len(digits) > len(str(MAX_TOTAL_AMOUNT)):
        return None
    try:
        amount = int(digits)
    except ValueError:
        return None
    return amount if amount <= MAX_TOTAL_AMOUNT else None


def extract_total_amount(raw_text: str) -> Optional[int]:
    for match in TOTAL_KEYWORD_AMOUNT.finditer(raw_text):
        amount = to_amount(match.group(1))
        if amount is not None:
            return amount

    # Barcodes and card numbers exceed MAX_TOTAL_AMOUNT and are skipped
    amounts = [to_amount(number) for number in NUMBER_RUN.findall(raw_text)]
    amounts = [amount for amount in amounts if amount is not None and amount > MIN_FALLBACK_AMOUNT]
    return max(amounts) if amounts else None


def _plausible_year(year: int, today: date) -> bool:
    return MIN_PLAUSIBLE_YEAR <= year <= today.year + 1


def _iso_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _year_first(match: re.Match, today: date) -> Optional[DateResult]:
    year, month, day, time = int(match.group(1)), int(match.group(2)), int(match.group(3)), match.group(4)
    if not _plausible_year(year, today):
        return None
    iso = _iso_date(year, month, day)
    return (iso, time) if iso else None


def _year_last(match: re.Match, today: date) -> Optional[DateResult]:
    month, day, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
    if not _plausible_year(year, today):
        return None
    iso = _iso_date(year, month, day)
    return (iso, None) if iso else None


def _short_year_first(match: re.Match, today: date) -> Optional[DateResult]:
    year, month, day = 2000 + int(match.group(1)), int(match.group(2)), int(match.group(3))
    iso = _iso_date(year, month, day)
    return (iso, None) if iso else None


# Tried in order; the first rule whose formatter accepts its match wins.
DATE_RULES: List[Tuple[re.Pattern, DateFormatter]] = [
    (re.compile(r"(?<!\d)(\d{4})[-./](\d{1,2})[-./](\d{1,2})(?!\d)(?:\s+(\d{1,2}:\d{2}:\d{2}))?"), _year_first),
    (re.compile(r"(?<!\d)(\d{1,2})[-./](\d{1,2})[-./](\d{4})(?!\d)"), _year_last),
    (re.compile(r"(?<!\d)(\d{2})[-./](\d{1,2})[-./](\d{1,2})(?!\d)"), _short_year_first),
]


def extract_transaction_date(raw_text: str, today: Optional[date] = None) -> DateResult:
    """Return ``(YYYY-MM-DD, HH:MM:SS or None)``, or ``(None, None)`` if no rule matches."""
    today = today or date.today()
    for pattern, formatter in DATE_RULES:
        for match in pattern.finditer(raw_text):
            result = formatter(match, today)
            if result:
                return result
    return None, None
