"""Backend-specific OCR payloads and their mapping onto a single OcrOutcome.

Each backend answers with its own JSON shape. The clients wrap the decoded
body in one of the response types below and ``normalize_response`` turns it
into an ``OcrOutcome``. A body that is missing, not JSON, or lacks the
expected structure normalizes to ``OcrOutcome.empty``.
"""
import logging
from dataclasses import dataclass
from datetime import date
from functools import singledispatch
from statistics import mean
from typing import Any, Dict, Iterator, List, Optional

from app.utils.date import parse_with_dateutil
from schemas.ocr import OcrHints, OcrOutcome
from utils.receipt_parser import DEFAULT_CONFIDENCE, to_amount

logger = logging.getLogger(__name__)

GOOGLE_VISION = "google_vision"
CLOVA_RECEIPT = "clova_receipt"


@dataclass(frozen=True)
class VisionTextResponse:
    """Google Cloud Vision ``images:annotate`` body (TEXT_DETECTION)."""
    payload: Optional[Dict[str, Any]]


@dataclass(frozen=True)
class ClovaReceiptResponse:
    """CLOVA OCR receipt-model body (V2)."""
    payload: Optional[Dict[str, Any]]


@singledispatch
def normalize_response(response: Any) -> OcrOutcome:
    raise TypeError(f"Unknown OCR response type: {type(response).__name__}")


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _percent(score: Any) -> Optional[int]:
    try:
        return max(0, min(100, round(float(score) * 100)))
    except (TypeError, ValueError):
        return None


@normalize_response.register
def _normalize_vision(response: VisionTextResponse) -> OcrOutcome:
    results = _as_list(_as_dict(response.payload).get("responses"))
    if not results:
        return OcrOutcome.empty(GOOGLE_VISION)

    first = _as_dict(results[0])
    full_text = _as_dict(first.get("fullTextAnnotation"))
    annotations = _as_list(first.get("textAnnotations"))
    text = full_text.get("text") or (_as_dict(annotations[0]).get("description") if annotations else None)
    if not isinstance(text, str) or not text.strip():
        return OcrOutcome.empty(GOOGLE_VISION)

    pages = _as_list(full_text.get("pages"))
    confidence = _percent(_as_dict(pages[0]).get("confidence")) if pages else None

    return OcrOutcome(
        raw_text=text,
        confidence=DEFAULT_CONFIDENCE if confidence is None else confidence,
        backend=GOOGLE_VISION,
    )


def _walk_texts(node: Any) -> Iterator[str]:
    if isinstance(node, dict):
        text = node.get("text")
        if isinstance(text, str) and text.strip():
            yield text.strip()
        for key, value in node.items():
            if key not in ("text", "formatted", "boundingPolys", "maskingPolys"):
                yield from _walk_texts(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_texts(item)


def _walk_scores(node: Any) -> Iterator[float]:
    if isinstance(node, dict):
        score = node.get("confidenceScore")
        if isinstance(score, (int, float)):
            yield float(score)
        for value in node.values():
            yield from _walk_scores(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_scores(item)


def _fields_text(fields: List[Any]) -> str:
    """Rebuild line structure from general-OCR fields (``lineBreak`` ends a line)."""
    lines = []
    current = []
    for field in fields:
        field = _as_dict(field)
        text = field.get("inferText")
        if isinstance(text, str) and text:
            current.append(text)
        if field.get("lineBreak"):
            lines.append(" ".join(current))
            current = []
    if current:
        lines.append(" ".join(current))
    return "\n".join(line for line in lines if line)


def _field_value(field: Dict[str, Any]) -> Optional[str]:
    value = _as_dict(field.get("formatted")).get("value") or field.get("text")
    return value.strip() if isinstance(value, str) and value.strip() else None


def _store_hint(result: Dict[str, Any]) -> Optional[str]:
    store_info = _as_dict(result.get("storeInfo"))
    name = _field_value(_as_dict(store_info.get("name")))
    if not name:
        return None
    branch = _field_value(_as_dict(store_info.get("subName")))
    return f"{name} {branch}" if branch and branch not in name else name


def _total_hint(result: Dict[str, Any]) -> Optional[int]:
    price = _as_dict(_as_dict(result.get("totalPrice")).get("price"))
    return to_amount(_field_value(price))


def _date_hint(result: Dict[str, Any]) -> Optional[str]:
    field = _as_dict(_as_dict(result.get("paymentInfo")).get("date"))
    formatted = _as_dict(field.get("formatted"))
    try:
        year, month, day = int(formatted["year"]), int(formatted["month"]), int(formatted["day"])
        if year < 100:
            year += 2000
        return date(year, month, day).isoformat()
    except (KeyError, TypeError, ValueError):
        parsed = parse_with_dateutil(field.get("text"))
        return parsed.date().isoformat() if parsed else None


def _time_hint(result: Dict[str, Any]) -> Optional[str]:
    formatted = _as_dict(_as_dict(_as_dict(result.get("paymentInfo")).get("time")).get("formatted"))
    try:
        hour, minute = int(formatted["hour"]), int(formatted["minute"])
        second = int(formatted.get("second") or 0)
    except (KeyError, TypeError, ValueError):
        return None
    if not (0 <= hour < 24 and 0 <= minute < 60 and 0 <= second < 60):
        return None
    return f"{hour:02d}:{minute:02d}:{second:02d}"


@normalize_response.register
def _normalize_clova(response: ClovaReceiptResponse) -> OcrOutcome:
    images = _as_list(_as_dict(response.payload).get("images"))
    if not images:
        return OcrOutcome.empty(CLOVA_RECEIPT)

    image = _as_dict(images[0])
    if image.get("inferResult") not in (None, "SUCCESS"):
        logger.warning(f"CLOVA OCR inference did not succeed: {image.get('inferResult')} {image.get('message')}")
        return OcrOutcome.empty(CLOVA_RECEIPT)

    fields = _as_list(image.get("fields"))
    result = _as_dict(_as_dict(image.get("receipt")).get("result"))

    raw_text = _fields_text(fields) if fields else "\n".join(_walk_texts(result))
    if not raw_text.strip():
        return OcrOutcome.empty(CLOVA_RECEIPT)

    scores = [_as_dict(field).get("inferConfidence") for field in fields]
    scores = [float(score) for score in scores if isinstance(score, (int, float))]
    if not scores:
        scores = list(_walk_scores(result))
    confidence = _percent(mean(scores)) if scores else None

    return OcrOutcome(
        raw_text=raw_text,
        confidence=DEFAULT_CONFIDENCE if confidence is None else confidence,
        hints=OcrHints(
            store_name=_store_hint(result),
            total_amount=_total_hint(result),
            date=_date_hint(result),
            time=_time_hint(result),
        ),
        backend=CLOVA_RECEIPT,
    )
