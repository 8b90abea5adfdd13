import logging
from datetime import date
from typing import Optional

import httpx

from app.core.errors import OcrBackendUnavailable, OcrNotConfigured
from schemas.ocr import OcrOutcome, ParsedReceipt
from utils.ocr.clova import ClovaReceiptClient
from utils.ocr.responses import normalize_response
from utils.ocr.vision import GoogleVisionClient
from utils.receipt_parser import parse_receipt_text

logger = logging.getLogger(__name__)


class ReceiptOcrService:
    """
    Sends a receipt image to exactly one OCR backend and normalizes the answer.

    The receipt-specialized backend is preferred when configured; the
    general-purpose backend is used when it is not, and as a fallback when
    it is unavailable.
    """

    def __init__(self, vision: Optional[GoogleVisionClient] = None, clova: Optional[ClovaReceiptClient] = None):
        self.vision = vision
        self.clova = clova

    @classmethod
    def from_settings(cls, http_client: httpx.AsyncClient, settings) -> "ReceiptOcrService":
        return cls(
            vision=GoogleVisionClient(http_client, settings.GOOGLE_VISION_API_KEY, settings.OCR_TIMEOUT_SECONDS),
            clova=ClovaReceiptClient(http_client, settings.CLOVA_OCR_API_URL, settings.CLOVA_OCR_SECRET_KEY,
                                     settings.OCR_TIMEOUT_SECONDS),
        )

    @property
    def vision_configured(self) -> bool:
        return self.vision is not None and self.vision.is_configured

    @property
    def clova_configured(self) -> bool:
        return self.clova is not None and self.clova.is_configured

    async def recognize(self, image: bytes, media_type: Optional[str] = None,
                        filename: Optional[str] = None) -> OcrOutcome:
        """
        Raises:
            OcrNotConfigured: If no backend has credentials; no request is made.
            OcrBackendUnavailable: If every configured backend failed.
        """
        if not self.vision_configured and not self.clova_configured:
            logger.error("No OCR backend is configured")
            raise OcrNotConfigured(
                "No OCR backend is configured. Set GOOGLE_VISION_API_KEY or CLOVA_OCR_API_URL and CLOVA_OCR_SECRET_KEY."
            )

        if self.clova_configured:
            try:
                return normalize_response(await self.clova.analyze(image, media_type, filename))
            except OcrBackendUnavailable as e:
                if not self.vision_configured:
                    raise
                logger.warning(f"CLOVA OCR unavailable ({e.message}), falling back to Google Vision")
        else:
            logger.info("CLOVA OCR not configured, using Google Vision")

        return normalize_response(await self.vision.annotate(image))


def extract_receipt(outcome: OcrOutcome, today: Optional[date] = None) -> ParsedReceipt:
    """
    Combine backend hints with fields parsed independently from the raw text.

    A hint wins for every field the backend supplied; the parser's value is
    used for every field the backend left out.
    """
    parsed = parse_receipt_text(outcome.raw_text, confidence=outcome.confidence, today=today)
    hints = outcome.hints

    return ParsedReceipt(
        store_name=hints.store_name if hints.store_name is not None else parsed.store_name,
        total_amount=hints.total_amount if hints.total_amount is not None else parsed.total_amount,
        transaction_date=hints.date if hints.date is not None else parsed.transaction_date,
        transaction_time=hints.time if hints.time is not None else parsed.transaction_time,
        raw_text=outcome.raw_text,
        confidence=parsed.confidence,
    )
