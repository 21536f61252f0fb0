"""
Pytest configuration - shared fixtures
"""
import sys
import os
import json
import tempfile
from typing import Generator
from unittest.mock import Mock

# Keep imports of the app away from the real data directory
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="expense-tracker-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TEST_DATA_DIR, "uploads"))
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_DATA_DIR, "logs"))

# Add backend directory to sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../backend"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from expense_tracker.database import Base, init_db
from expense_tracker.models.category import Category
from expense_tracker.services.llm_service import LLMProvider
from expense_tracker.services.ocr_service import OCRService
from expense_tracker.services.receipt_extractor import ReceiptExtractor
from expense_tracker.services.receipt_service import ReceiptService
from expense_tracker.services.storage_service import FileStore

SAMPLE_OCR_TEXT = "SHOP X\nMilk 2.50\nBread 3.00\nTOTAL 5.50"


def model_response(**overrides) -> str:
    """JSON answer of the model for SAMPLE_OCR_TEXT, with optional field overrides."""
    data = {
        "date": "2024-03-15",
        "totalAmount": 5.50,
        "shop": {"name": "Shop X", "address": "1 Main St"},
        "items": [
            {"name": "Milk", "price": 2.50, "quantity": 1, "category": "Groceries"},
            {"name": "Bread", "price": 3.00, "quantity": 1, "category": "Groceries"},
        ],
    }
    data.update(overrides)
    return json.dumps(data)


@pytest.fixture
def test_db() -> Generator[Session, None, None]:
    """Create in-memory SQLite database for testing"""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def db_session(test_db):
    """Alias for test_db for clarity"""
    return test_db


@pytest.fixture
def mock_ocr():
    """OCR service returning SAMPLE_OCR_TEXT"""
    ocr = Mock(spec=OCRService)
    ocr.recognize.return_value = SAMPLE_OCR_TEXT
    return ocr


@pytest.fixture
def make_model_response():
    return model_response


@pytest.fixture
def mock_llm():
    """Model provider answering with model_response()"""
    llm = Mock(spec=LLMProvider)
    llm.name = "mock"
    llm.complete.return_value = model_response()
    return llm


@pytest.fixture
def file_store(tmp_path) -> FileStore:
    return FileStore(base_dir=str(tmp_path / "uploads"), url_prefix="/uploads")


@pytest.fixture
def uploaded_image(file_store):
    """A stored upload, as the upload endpoint leaves it"""
    return file_store.save_upload(b"fake image content", "receipt.jpg")


@pytest.fixture
def receipt_service(test_db, mock_ocr, mock_llm, file_store) -> ReceiptService:
    return ReceiptService(
        test_db,
        ocr=mock_ocr,
        extractor=ReceiptExtractor(mock_llm),
        file_store=file_store,
    )


@pytest.fixture
def populated_db(test_db):
    """Database with the default categories"""
    for name in ("Groceries", "Household", "Miscellaneous"):
        test_db.add(Category(name=name))
    test_db.commit()
    return test_db
