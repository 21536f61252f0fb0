"""
Shared API dependencies.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from expense_tracker.database import get_db
from expense_tracker.services.llm_service import LLMProvider, get_llm_provider
from expense_tracker.services.ocr_service import OCRService
from expense_tracker.services.receipt_extractor import ReceiptExtractor
from expense_tracker.services.receipt_service import ReceiptService
from expense_tracker.services.storage_service import FileStore


@lru_cache
def get_ocr_service() -> OCRService:
    return OCRService()


@lru_cache
def get_llm() -> LLMProvider:
    """Configured model provider, created once per process."""
    return get_llm_provider()


@lru_cache
def get_file_store() -> FileStore:
    return FileStore()


def get_receipt_service(
    db: Session = Depends(get_db),
    ocr: OCRService = Depends(get_ocr_service),
    llm: LLMProvider = Depends(get_llm),
    file_store: FileStore = Depends(get_file_store),
) -> ReceiptService:
    """Pipeline bound to the request's database session."""
    return ReceiptService(db, ocr=ocr, extractor=ReceiptExtractor(llm), file_store=file_store)
