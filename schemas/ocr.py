from typing import Optional

from pydantic import BaseModel, Field

# Largest total the receipts table can hold (32-bit INTEGER column)
MAX_TOTAL_AMOUNT = 2_147_483_647


class OcrHints(BaseModel):
    """Fields a receipt-aware backend claims to have read on its own.

    Hints are advisory: every field is re-derived from the raw text and the
    hint only wins for fields the backend actually supplied.
    """
    store_name: Optional[str] = None
    total_amount: Optional[int] = Field(None, ge=0, le=MAX_TOTAL_AMOUNT)
    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM:SS


class OcrOutcome(BaseModel):
    raw_text: str = ""
    confidence: int = Field(0, ge=0, le=100)
    hints: OcrHints = Field(default_factory=OcrHints)
    backend: Optional[str] = None

    @classmethod
    def empty(cls, backend: Optional[str] = None) -> "OcrOutcome":
        """Result for a malformed or blank backend response."""
        return cls(raw_text="", confidence=0, hints=OcrHints(), backend=backend)


class ParsedReceipt(BaseModel):
    store_name: Optional[str] = None
    total_amount: Optional[int] = Field(None, ge=0, le=MAX_TOTAL_AMOUNT)
    transaction_date: Optional[str] = None  # YYYY-MM-DD
    transaction_time: Optional[str] = None  # HH:MM:SS
    raw_text: str = ""
    confidence: int = Field(0, ge=0, le=100)
