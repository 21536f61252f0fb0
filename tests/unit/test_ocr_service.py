"""
Tests for the OCR service with pytesseract and pdf2image mocked
"""
from unittest.mock import patch

import pytest
import pytesseract
from PIL import Image

from expense_tracker.config import settings
from expense_tracker.exceptions import ExtractionError
from expense_tracker.services.ocr_service import OCRService, extract_from_image

CONFIDENCE_DATA = {"conf": ["91", "-1", "83"]}


@pytest.fixture
def receipt_png(tmp_path):
    path = tmp_path / "receipt.png"
    Image.new("L", (60, 120), color=255).save(path)
    return path


@pytest.mark.unit
class TestOCRService:

    @patch("expense_tracker.services.ocr_service.pytesseract.image_to_data", return_value=CONFIDENCE_DATA)
    @patch("expense_tracker.services.ocr_service.pytesseract.image_to_string")
    def test_recognize_image(self, mock_to_string, mock_to_data, receipt_png):
        mock_to_string.return_value = "  SHOP X\nMilk 2.50\n"

        text = OCRService().recognize(str(receipt_png))

        assert text == "SHOP X\nMilk 2.50"
        image = mock_to_string.call_args[0][0]
        assert image.mode == "RGB"
        assert mock_to_string.call_args.kwargs["lang"] == settings.OCR_LANGUAGES

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ExtractionError, match="not found"):
            OCRService().recognize(str(tmp_path / "nope.jpg"))

    def test_unreadable_image_raises(self, tmp_path):
        broken = tmp_path / "broken.jpg"
        broken.write_bytes(b"definitely not a jpeg")

        with pytest.raises(ExtractionError):
            OCRService().recognize(str(broken))

    @patch("expense_tracker.services.ocr_service.pytesseract.image_to_string")
    def test_missing_tesseract_raises(self, mock_to_string, receipt_png):
        mock_to_string.side_effect = pytesseract.TesseractNotFoundError()

        with pytest.raises(ExtractionError, match="Tesseract"):
            OCRService().recognize(str(receipt_png))

    @patch("expense_tracker.services.ocr_service.pytesseract.image_to_data", return_value=CONFIDENCE_DATA)
    @patch("expense_tracker.services.ocr_service.pytesseract.image_to_string", return_value="")
    def test_blank_image_gives_empty_text(self, mock_to_string, mock_to_data, receipt_png):
        assert OCRService().recognize(str(receipt_png)) == ""

    @patch("expense_tracker.services.ocr_service.pytesseract.image_to_data", return_value=CONFIDENCE_DATA)
    @patch("expense_tracker.services.ocr_service.pytesseract.image_to_string", return_value="PAGE TEXT")
    @patch("expense_tracker.services.ocr_service.convert_from_path")
    def test_pdf_pages_are_stitched(self, mock_convert, mock_to_string, mock_to_data, tmp_path):
        pdf = tmp_path / "receipt.pdf"
        pdf.write_bytes(b"%PDF-1.4 fake")
        mock_convert.return_value = [
            Image.new("RGB", (80, 100), color="white"),
            Image.new("RGB", (60, 50), color="white"),
        ]

        text = OCRService().recognize(str(pdf))

        assert text == "PAGE TEXT"
        assert mock_to_string.call_args[0][0].size == (80, 150)

    @patch("expense_tracker.services.ocr_service.convert_from_path", return_value=[])
    def test_empty_pdf_raises(self, mock_convert, tmp_path):
        pdf = tmp_path / "empty.pdf"
        pdf.write_bytes(b"%PDF-1.4 fake")

        with pytest.raises(ExtractionError, match="Failed to convert PDF"):
            OCRService().recognize(str(pdf))


@pytest.mark.unit
@patch("expense_tracker.services.ocr_service.pytesseract.image_to_data", return_value=CONFIDENCE_DATA)
@patch("expense_tracker.services.ocr_service.pytesseract.image_to_string", return_value="TEXT")
def test_extract_from_image_confidence(mock_to_string, mock_to_data, receipt_png):
    result = extract_from_image(str(receipt_png))

    assert result.error is None
    assert result.engine == "tesseract"
    assert result.confidence == pytest.approx(0.87)
