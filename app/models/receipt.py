import uuid
from sqlalchemy import Column, Date, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.core.config import settings
from app.core.db import Base

DEFAULT_CATEGORY = settings.DEFAULT_CATEGORY


class Receipt(Base):
    """Model for a receipt the user has reviewed and confirmed.

    Rows are created once the user accepts (and possibly corrects) the fields
    extracted from an uploaded image, and change only through explicit edits.

    Columns:
        receipt_id (UUID): Unique identifier for the receipt.
        user_id (UUID): Owner, as issued by the external identity provider.
        image_path (str): Object-store key of the receipt image.
        store_name (str): Merchant name (nullable).
        total_amount (int): Total in whole currency units, e.g. won (nullable).
        receipt_date (date): Transaction date (nullable).
        category (str): Free-form tag, "misc" when not given.
        description (str): Optional free-text note.
        raw_text (str): Full OCR text kept for display and debugging (nullable).
        created_at (datetime): Timestamp when the receipt was created.
        updated_at (datetime): Timestamp when the receipt was last updated.
    """
    __tablename__ = "receipts"

    receipt_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    image_path = Column(String, nullable=False)
    store_name = Column(String, nullable=True)
    total_amount = Column(Integer, nullable=True)
    receipt_date = Column(Date, nullable=True)
    category = Column(String, nullable=False, default=DEFAULT_CATEGORY, server_default=DEFAULT_CATEGORY)
    description = Column(Text, nullable=True)
    raw_text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_receipts_user_id_receipt_date", "user_id", "receipt_date"),
    )
