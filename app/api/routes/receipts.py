import uuid
import logging
from typing import Optional
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, File, UploadFile, status, Path, Query, Body
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import and_, desc, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.api.dependencies import CurrentUser, get_current_user, get_ocr_service, get_storage
from app.core.config import settings
from app.core.db import get_db
from app.core.errors import OcrBackendUnavailable, OcrNotConfigured, StorageWriteFailed
from app.utils.date import calculate_date_range
from app.models.receipt import Receipt
from schemas.receipt import (
    ReceiptUploadResponse, ReceiptCreate, ReceiptUpdate, ReceiptResponse,
    ReceiptListResponse, ReceiptCategoriesResponse, ReceiptDeleteResponse, PaginationInfo, ErrorResponse
)
from utils.ocr.service import ReceiptOcrService, extract_receipt
from utils.s3 import ReceiptImageStorage

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "status": "error",
            "error_code": "resource_not_found",
            "error": "Receipt not found"
        }
    )


def _to_response(receipt: Receipt, storage: ReceiptImageStorage) -> ReceiptResponse:
    response = ReceiptResponse.model_validate(receipt)
    if receipt.image_path:
        response.image_url = storage.signed_url(receipt.image_path)
    return response


async def _get_owned_receipt(db: AsyncSession, receipt_id: uuid.UUID, user: CurrentUser) -> Receipt:
    query = select(Receipt).where(
        Receipt.receipt_id == receipt_id,
        Receipt.user_id == user.user_id
    )
    result = await db.execute(query)
    receipt = result.scalars().first()
    if not receipt:
        raise _not_found()
    return receipt


UPLOAD_ERRORS = {
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
    status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse, "description": "Storage write failed or OCR backend unavailable"},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse, "description": "No OCR backend configured"},
}


@router.post("/upload", response_model=ReceiptUploadResponse, response_model_by_alias=True, responses=UPLOAD_ERRORS)
async def upload_receipt(
    image: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: ReceiptImageStorage = Depends(get_storage),
    ocr_service: ReceiptOcrService = Depends(get_ocr_service),
) -> ReceiptUploadResponse:
    """Store a receipt image, run OCR and return the extracted fields for review"""
    file_content = await image.read()

    # 1. Store the image (rejects unsupported media types before writing)
    image_path = await run_in_threadpool(
        storage.upload_image, str(current_user.user_id), file_content, image.content_type, image.filename
    )

    # 2. OCR, then parse; OCR errors carry the stored image for manual entry
    try:
        outcome = await ocr_service.recognize(file_content, image.content_type, image.filename)
    except (OcrNotConfigured, OcrBackendUnavailable) as e:
        e.details = {
            **(e.details or {}),
            "imagePath": image_path,
            "imageUrl": storage.signed_url(image_path),
        }
        raise
    parsed = extract_receipt(outcome)
    logger.info(
        f"Receipt {image_path} recognized by {outcome.backend} "
        f"(confidence {parsed.confidence}, store={parsed.store_name is not None}, "
        f"amount={parsed.total_amount is not None}, date={parsed.transaction_date is not None})"
    )

    return ReceiptUploadResponse(
        image_path=image_path,
        image_url=storage.signed_url(image_path),
        store_name=parsed.store_name,
        total_amount=parsed.total_amount,
        date=parsed.transaction_date,
        time=parsed.transaction_time,
        text=parsed.raw_text,
        confidence=parsed.confidence,
    )


@router.post("", response_model=ReceiptResponse, status_code=status.HTTP_201_CREATED)
async def create_receipt(
    receipt_in: ReceiptCreate = Body(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: ReceiptImageStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db)
) -> ReceiptResponse:
    """Save a receipt after the user has reviewed the extracted fields"""
    if not receipt_in.image_path.startswith(f"{current_user.user_id}/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "status": "error",
                "error_code": "validation_error",
                "error": "Image does not belong to the current user"
            }
        )

    receipt = Receipt(
        user_id=current_user.user_id,
        image_path=receipt_in.image_path,
        store_name=receipt_in.store_name,
        total_amount=receipt_in.total_amount,
        receipt_date=receipt_in.receipt_date,
        category=receipt_in.category or settings.DEFAULT_CATEGORY,
        description=receipt_in.description,
        raw_text=receipt_in.raw_text,
    )
    db.add(receipt)
    await db.commit()
    await db.refresh(receipt)

    return _to_response(receipt, storage)


@router.get("", response_model=ReceiptListResponse)
async def list_receipts(
    year: Optional[int] = Query(None, ge=1900, le=9999, description="Restrict to a year (with month)"),
    month: Optional[int] = Query(None, ge=1, le=12, description="Restrict to a month (with year)"),
    text: Optional[str] = Query(None, description="Search raw OCR text and store name"),
    store_name: Optional[str] = Query(None, description="Filter by store name"),
    category: Optional[str] = Query(None, description="Filter by category"),
    min_amount: Optional[int] = Query(None, ge=0, description="Filter by minimum amount"),
    max_amount: Optional[int] = Query(None, ge=0, description="Filter by maximum amount"),
    from_date: Optional[date] = Query(None, description="Filter by start date (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, description="Filter by end date (YYYY-MM-DD)"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    current_user: CurrentUser = Depends(get_current_user),
    storage: ReceiptImageStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db)
) -> ReceiptListResponse:
    """List the caller's receipts, newest first, with optional search filters"""
    query_filters = [Receipt.user_id == current_user.user_id]

    if year and month:
        start_date, end_date = calculate_date_range(year, month)
        query_filters.append(Receipt.receipt_date >= start_date)
        query_filters.append(Receipt.receipt_date <= end_date)

    if text:
        query_filters.append(or_(Receipt.raw_text.ilike(f"%{text}%"), Receipt.store_name.ilike(f"%{text}%")))

    if store_name:
        query_filters.append(Receipt.store_name.ilike(f"%{store_name}%"))

    if category:
        query_filters.append(Receipt.category == category)

    if min_amount is not None:
        query_filters.append(Receipt.total_amount >= min_amount)

    if max_amount is not None:
        query_filters.append(Receipt.total_amount <= max_amount)

    if from_date:
        query_filters.append(Receipt.receipt_date >= from_date)

    if to_date:
        query_filters.append(Receipt.receipt_date <= to_date)

    count_query = select(func.count()).select_from(Receipt).where(and_(*query_filters))
    result = await db.execute(count_query)
    total_count = result.scalar() or 0

    query = (
        select(Receipt)
        .where(and_(*query_filters))
        .order_by(desc(Receipt.receipt_date), desc(Receipt.created_at))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(query)
    receipts = result.scalars().all()

    return ReceiptListResponse(
        receipts=[_to_response(receipt, storage) for receipt in receipts],
        pagination=PaginationInfo(
            total_count=total_count,
            page=page,
            limit=limit,
            total_pages=(total_count + limit - 1) // limit  # Ceiling division
        )
    )


@router.get("/categories", response_model=ReceiptCategoriesResponse)
async def list_categories(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> ReceiptCategoriesResponse:
    """Distinct categories the caller has used"""
    query = (
        select(Receipt.category)
        .where(Receipt.user_id == current_user.user_id, Receipt.category.isnot(None))
        .distinct()
        .order_by(Receipt.category)
    )
    result = await db.execute(query)
    return ReceiptCategoriesResponse(categories=list(result.scalars().all()))


@router.get("/{receipt_id}", response_model=ReceiptResponse)
async def get_receipt(
    receipt_id: uuid.UUID = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: ReceiptImageStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db)
) -> ReceiptResponse:
    receipt = await _get_owned_receipt(db, receipt_id, current_user)
    return _to_response(receipt, storage)


@router.put("/{receipt_id}", response_model=ReceiptResponse)
async def update_receipt(
    receipt_id: uuid.UUID = Path(...),
    receipt_in: ReceiptUpdate = Body(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: ReceiptImageStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db)
) -> ReceiptResponse:
    """Apply the user's corrections; only fields present in the body change"""
    receipt = await _get_owned_receipt(db, receipt_id, current_user)

    for field, value in receipt_in.model_dump(exclude_unset=True).items():
        if field == "category" and not value:
            value = settings.DEFAULT_CATEGORY
        setattr(receipt, field, value)

    await db.commit()
    await db.refresh(receipt)
    return _to_response(receipt, storage)


@router.delete("/{receipt_id}", response_model=ReceiptDeleteResponse)
async def delete_receipt(
    receipt_id: uuid.UUID = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    storage: ReceiptImageStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db)
) -> ReceiptDeleteResponse:
    receipt = await _get_owned_receipt(db, receipt_id, current_user)
    image_path = receipt.image_path

    await db.delete(receipt)
    await db.commit()

    try:
        await run_in_threadpool(storage.delete_image, image_path)
    except StorageWriteFailed as e:
        # The record is gone; the image is left for out-of-band cleanup
        logger.warning(f"Receipt {receipt_id} deleted but image {image_path} was not: {e.message}")

    return ReceiptDeleteResponse(
        receipt_id=receipt_id,
        status="success",
        message="Receipt deleted successfully"
    )

