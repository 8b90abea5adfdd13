from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from schemas.ocr import MAX_TOTAL_AMOUNT


# Receipt Upload Response
class ReceiptUploadResponse(BaseModel):
    """What the review screen needs: extracted fields plus a link to the image.

    Serialized in camelCase (``imageUrl``, ``storeName``...).
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_path: str
    image_url: str  # signed, short-lived
    store_name: Optional[str] = None
    total_amount: Optional[int] = Field(None, ge=0, le=MAX_TOTAL_AMOUNT)
    date: Optional[str] = None
    time: Optional[str] = None
    text: str = ""
    confidence: int = 0


# Receipt Schema
class ReceiptBase(BaseModel):
    store_name: Optional[str] = None
    total_amount: Optional[int] = Field(None, ge=0, le=MAX_TOTAL_AMOUNT)
    receipt_date: Optional[date] = None
    category: Optional[str] = None
    description: Optional[str] = None


class ReceiptCreate(ReceiptBase):
    image_path: str
    raw_text: Optional[str] = None


class ReceiptUpdate(ReceiptBase):
    pass


class ReceiptInDB(ReceiptBase):
    receipt_id: UUID
    user_id: UUID
    image_path: str
    category: str
    raw_text: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReceiptResponse(ReceiptInDB):
    image_url: Optional[str] = None


class PaginationInfo(BaseModel):
    total_count: int
    page: int
    limit: int
    total_pages: int


class ReceiptListResponse(BaseModel):
    receipts: List[ReceiptResponse]
    pagination: PaginationInfo


class ReceiptCategoriesResponse(BaseModel):
    categories: List[str]


class ReceiptDeleteResponse(BaseModel):
    receipt_id: UUID
    status: str
    message: str


# Error Response Schema
class ErrorResponse(BaseModel):
    status: str = "error"
    error_code: str
    error: str
    details: Optional[Dict[str, Any]] = None
