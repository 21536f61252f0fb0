"""
OCR Service for extracting text from receipt images and PDFs.

Supports Tesseract and EasyOCR engines with light image preprocessing.
Any failure to read the file surfaces as ExtractionError.
"""

import os
import logging
import tempfile
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError
import pytesseract
from pdf2image import convert_from_path

from expense_tracker.config import settings
from expense_tracker.exceptions import ExtractionError

logger = logging.getLogger(__name__)


class OCRResult:
    """Structured OCR result with text and confidence scores."""

    def __init__(
        self,
        text: str,
        confidence: float = 0.0,
        engine: str = "tesseract",
        error: Optional[str] = None,
    ):
        self.text = text
        self.confidence = confidence
        self.engine = engine
        self.error = error


def preprocess_image(image_path: str) -> Image.Image:
    """
    Preprocess image for better OCR accuracy.

    Args:
        image_path: Path to image file

    Returns:
        Preprocessed PIL Image
    """
    img = Image.open(image_path)

    # Phone photos carry their rotation in EXIF
    img = ImageOps.exif_transpose(img)

    # Convert to RGB if necessary
    if img.mode != "RGB":
        img = img.convert("RGB")

    return img


def extract_from_pdf(file_path: str) -> OCRResult:
    """
    Extract text from PDF file by rasterizing it and running OCR.

    Args:
        file_path: Path to PDF file

    Returns:
        OCRResult with extracted text
    """
    temp_image_path = None
    try:
        images = convert_from_path(file_path, poppler_path=settings.POPPLER_PATH)

        if not images:
            return OCRResult(
                text="",
                engine=settings.OCR_ENGINE,
                error="Failed to convert PDF to images",
            )

        if len(images) == 1:
            image = images[0]
        else:
            # Stitch pages vertically so long receipts stay one text block
            total_width = max(img.width for img in images)
            total_height = sum(img.height for img in images)

            merged_image = Image.new("RGB", (total_width, total_height), (255, 255, 255))
            y_offset = 0
            for img in images:
                merged_image.paste(img, (0, y_offset))
                y_offset += img.height
            image = merged_image

        temp_fd, temp_image_path = tempfile.mkstemp(suffix=".jpg")
        os.close(temp_fd)
        image.save(temp_image_path, "JPEG")

        return extract_from_image(temp_image_path)

    except Exception as e:
        return OCRResult(
            text="",
            engine=settings.OCR_ENGINE,
            error=f"Error processing PDF: {str(e)}",
        )
    finally:
        if temp_image_path and os.path.exists(temp_image_path):
            try:
                os.unlink(temp_image_path)
            except OSError as e:
                logger.warning(f"Could not remove temporary file {temp_image_path}: {e}")


def extract_from_image(file_path: str) -> OCRResult:
    """
    Extract text from image file using configured OCR engine.

    Args:
        file_path: Path to image file

    Returns:
        OCRResult with extracted text
    """
    try:
        img = preprocess_image(file_path)
    except (FileNotFoundError, UnidentifiedImageError, OSError) as e:
        return OCRResult(
            text="",
            engine=settings.OCR_ENGINE,
            error=f"Error processing image: {str(e)}",
        )

    if settings.OCR_ENGINE.lower() == "easyocr":
        return _extract_with_easyocr(file_path)
    return _extract_with_tesseract(img)


def _extract_with_tesseract(img: Image.Image) -> OCRResult:
    """
    Extract text using Tesseract OCR.

    Args:
        img: PIL Image object

    Returns:
        OCRResult with extracted text
    """
    pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD
    try:
        text = pytesseract.image_to_string(img, lang=settings.OCR_LANGUAGES)
    except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as e:
        return OCRResult(
            text="",
            engine="tesseract",
            error=f"Tesseract error: {str(e)}",
        )

    # Confidence is informative only
    try:
        data = pytesseract.image_to_data(
            img, lang=settings.OCR_LANGUAGES, output_type=pytesseract.Output.DICT
        )
        confidences = [float(conf) for conf in data["conf"] if float(conf) > 0]
        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0
    except (pytesseract.TesseractError, KeyError, ValueError):
        avg_confidence = 0.0

    return OCRResult(
        text=text.strip(),
        confidence=avg_confidence / 100.0,  # Normalize to 0-1
        engine="tesseract",
    )


def _extract_with_easyocr(file_path: str) -> OCRResult:
    """
    Extract text using EasyOCR (GPU/CPU).

    Args:
        file_path: Path to image file

    Returns:
        OCRResult with extracted text
    """
    try:
        import easyocr
        import torch
    except ImportError:
        return OCRResult(
            text="",
            engine="easyocr",
            error="EasyOCR not installed. Install with: pip install expense-tracker[easyocr]",
        )

    try:
        use_gpu = settings.USE_GPU_OCR and torch.cuda.is_available()
        reader = easyocr.Reader(["en"], gpu=use_gpu, verbose=False)
        result = reader.readtext(file_path, detail=0, paragraph=True)
    except Exception as e:
        return OCRResult(
            text="",
            engine="easyocr",
            error=f"EasyOCR error: {str(e)}",
        )

    return OCRResult(
        text="\n".join(result).strip(),
        confidence=0.8,  # EasyOCR doesn't provide easy confidence access
        engine="easyocr",
    )


class OCRService:
    """Text extractor handed to the ingestion pipeline."""

    def recognize(self, image_path: str) -> str:
        """
        Run OCR over a receipt image or PDF.

        Args:
            image_path: Path to the file on disk

        Returns:
            Extracted text, possibly empty or noisy

        Raises:
            ExtractionError: the file is missing, unreadable or the engine failed
        """
        path = Path(image_path)
        if not path.is_file():
            raise ExtractionError(f"Receipt image not found: {image_path}")

        if path.suffix.lower() == ".pdf":
            result = extract_from_pdf(str(path))
        else:
            result = extract_from_image(str(path))

        if result.error:
            logger.error(f"OCR failed for {path.name}: {result.error}")
            raise ExtractionError(result.error)

        logger.info(
            f"OCR extracted {len(result.text)} characters from {path.name} "
            f"(engine={result.engine}, confidence={result.confidence:.2f})"
        )
        return result.text
