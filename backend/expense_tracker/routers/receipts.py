"""
Receipt API endpoints for upload, manual entry, editing and retrieval.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile, Response, status

from expense_tracker.config import settings
from expense_tracker.dependencies import get_file_store, get_receipt_service
from expense_tracker.exceptions import ValidationError
from expense_tracker.schemas import ReceiptResponse, ReceiptListResponse
from expense_tracker.services.receipt_service import ReceiptService
from expense_tracker.services.storage_service import FileStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ReceiptResponse, status_code=status.HTTP_201_CREATED)
async def upload_receipt(
    receipt: UploadFile = File(...),
    service: ReceiptService = Depends(get_receipt_service),
    file_store: FileStore = Depends(get_file_store),
):
    """
    Upload a receipt image or PDF and run the full pipeline on it.

    The stored receipt is returned once OCR, extraction and persistence
    have finished.
    """
    filename = receipt.filename or ""
    file_ext = Path(filename).suffix.lower()
    if file_ext not in settings.ALLOWED_EXTENSIONS:
        raise ValidationError.for_field(
            "receipt", f"Invalid file type. Allowed: {', '.join(settings.ALLOWED_EXTENSIONS)}"
        )

    file_content = await receipt.read()
    if not file_content:
        raise ValidationError.for_field("receipt", "Uploaded file is empty")
    if len(file_content) > settings.MAX_UPLOAD_SIZE:
        raise ValidationError.for_field(
            "receipt", f"File too large. Max size: {settings.MAX_UPLOAD_SIZE / 1024 / 1024} MB"
        )

    file_path = file_store.save_upload(file_content, filename)
    try:
        return await service.ingest_from_image(file_path)
    except Exception:
        file_store.discard(file_store.url_for(file_path))
        raise


@router.post("/manual", response_model=ReceiptResponse, status_code=status.HTTP_201_CREATED)
async def create_manual_receipt(
    payload: dict,
    service: ReceiptService = Depends(get_receipt_service),
):
    """Create a receipt from manually entered data."""
    return service.ingest_manual(payload)


@router.get("", response_model=ReceiptListResponse)
async def list_receipts(
    skip: int = 0,
    limit: int = 50,
    shop_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    service: ReceiptService = Depends(get_receipt_service),
):
    """
    List receipts with optional filters.
    """
    receipts, total = service.list_receipts(
        skip=skip, limit=limit, shop_id=shop_id, start_date=start_date, end_date=end_date
    )
    return {
        "receipts": receipts,
        "total": total,
        "skip": skip,
        "limit": limit,
    }


@router.get("/{receipt_id}", response_model=ReceiptResponse)
async def get_receipt(
    receipt_id: int,
    service: ReceiptService = Depends(get_receipt_service),
):
    """Get receipt details with items."""
    return service.get_receipt(receipt_id)


@router.put("/{receipt_id}", response_model=ReceiptResponse)
async def update_receipt(
    receipt_id: int,
    payload: dict,
    service: ReceiptService = Depends(get_receipt_service),
):
    """
    Replace a receipt's header and items.

    Items with a stored id are updated, items with a ``temp-`` id (or none)
    are created, and stored items missing from the payload are deleted.
    """
    return service.update_receipt(receipt_id, payload)


@router.post("/{receipt_id}/recalculate", response_model=ReceiptResponse)
async def recalculate_receipt(
    receipt_id: int,
    service: ReceiptService = Depends(get_receipt_service),
):
    """Re-run OCR and extraction on the original image, replacing all items."""
    return await service.recalculate_receipt(receipt_id)


@router.delete("/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_receipt(
    receipt_id: int,
    service: ReceiptService = Depends(get_receipt_service),
):
    service.delete_receipt(receipt_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
