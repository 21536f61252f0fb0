"""
Structured extraction of receipts from OCR text.

The model's answer is untrusted. It goes through two phases:

1. ``apply_fallbacks`` builds a complete candidate from whatever the model
   returned, filling missing or falsy fields with fixed defaults.
2. ``validate_receipt`` checks the candidate against ``ExtractedReceipt`` and
   returns a tagged ``ExtractionResult``.

``ReceiptExtractor.extract`` ties both to an LLM provider and raises
ParseError when the result is a failure.
"""

import json
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from expense_tracker.exceptions import ParseError
from expense_tracker.schemas import ExtractedReceipt
from expense_tracker.services.llm_service import LLMProvider

logger = logging.getLogger(__name__)

UNKNOWN_SHOP = "Unknown Shop"
UNKNOWN_ITEM = "Unknown Item"
DEFAULT_CATEGORY = "Miscellaneous"
DEFAULT_CATEGORY_HINTS = ["Groceries", "Electronics", "Clothing", "Restaurant", "Household", "Miscellaneous"]

DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d-%m-%Y", "%Y/%m/%d", "%d/%m/%Y", "%Y.%m.%d")

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)
_ISO_PREFIX_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})[T\s]")


class ExtractionResult:
    """Outcome of validating a model response: a receipt or an error."""

    def __init__(
        self,
        receipt: Optional[ExtractedReceipt] = None,
        error: Optional[str] = None,
        raw_response: Optional[str] = None,
    ):
        self.receipt = receipt
        self.error = error
        self.raw_response = raw_response

    @property
    def ok(self) -> bool:
        return self.receipt is not None and self.error is None

    def unwrap(self) -> ExtractedReceipt:
        if not self.ok:
            raise ParseError(self.error or "Failed to parse receipt data", raw_response=self.raw_response)
        return self.receipt


def create_receipt_parsing_prompt(
    ocr_text: str,
    category_names: Iterable[str] = (),
    shop_names: Iterable[str] = (),
) -> str:
    """
    Create the structuring prompt, listing the known taxonomy so the model
    reuses existing names instead of inventing near-duplicates.

    Args:
        ocr_text: Raw OCR text
        category_names: Names of existing categories
        shop_names: Names of existing shops

    Returns:
        Formatted prompt string
    """
    categories = ", ".join(category_names) or ", ".join(DEFAULT_CATEGORY_HINTS)
    shops = ", ".join(shop_names) or "None yet"

    return f"""Extract the following information from this receipt text in JSON format:

Receipt schema:
{{
  "date": "YYYY-MM-DD",
  "totalAmount": 123.45,
  "shop": {{
    "name": "Shop Name",
    "address": "Shop Address"
  }},
  "items": [
    {{
      "name": "Item name",
      "price": 12.34,
      "quantity": 1,
      "category": "Category name"
    }}
  ]
}}

Field rules:
- date: required, a valid date string
- totalAmount: required, a number
- shop.name: required; shop.address: optional
- items: required array; quantity is optional and defaults to 1
- category: required, matching one of our existing categories when possible

Existing categories in our system: {categories}
Existing shops in our system: {shops}

If you cannot determine a specific field, use a reasonable default:
- For missing date, use today's date
- For missing total, sum the prices of all items
- For missing shop name, use "{UNKNOWN_SHOP}"
- For missing category, classify based on the item name using one of our existing categories
- Always include all required fields

Receipt text:
{ocr_text}

Return ONLY valid JSON matching the schema above.
Do not include any markdown formatting, explanations, or additional text."""


def strip_code_fences(response_text: str) -> str:
    """Remove markdown code fences the model may wrap its JSON in."""
    return _FENCE_PATTERN.sub("", response_text or "").strip()


def load_json_object(response_text: str) -> Dict[str, Any]:
    """
    Parse the model response into a JSON object.

    Raises:
        ParseError: no JSON object could be read
    """
    json_str = strip_code_fences(response_text)
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError:
        # Models sometimes add a sentence around the object
        match = re.search(r"\{.*\}", json_str, re.DOTALL)
        if not match:
            raise ParseError("Model response is not valid JSON", raw_response=response_text)
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ParseError(f"Model response is not valid JSON: {e}", raw_response=response_text) from e

    if not isinstance(data, dict):
        raise ParseError("Model response is not a JSON object", raw_response=response_text)
    return data


def _coerce_number(value: Any) -> Any:
    """
    Turn numeric strings like '2,50', '$3.00' or '1,234.56' into floats.

    When both separators appear, the last one is the decimal point and the
    other groups thousands. Anything else is left as is.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d,.\-]", "", value)
        if "," in cleaned and "." in cleaned:
            grouping = "," if cleaned.rfind(".") > cleaned.rfind(",") else "."
            cleaned = cleaned.replace(grouping, "")
        cleaned = cleaned.replace(",", ".")
        try:
            return float(cleaned)
        except ValueError:
            return value
    return value


def _clean_text(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def normalize_date(value: Any) -> Any:
    """Normalize common receipt date layouts to YYYY-MM-DD; unknown layouts pass through."""
    if not isinstance(value, str):
        return value
    value = value.strip()
    match = _ISO_PREFIX_PATTERN.match(value)
    if match:
        return match.group(1)
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return value


def _normalize_item(raw_item: Dict[str, Any]) -> Dict[str, Any]:
    price = _coerce_number(raw_item.get("price")) or 0
    quantity = _coerce_number(raw_item.get("quantity")) or 1

    # Whole units only: fold weights like 0.5 kg into the line price
    if isinstance(quantity, (int, float)) and isinstance(price, (int, float)):
        if quantity < 1 or not float(quantity).is_integer():
            price = round(price * quantity, 2)
            quantity = 1
        else:
            quantity = int(quantity)

    return {
        "name": _clean_text(raw_item.get("name")) or UNKNOWN_ITEM,
        "price": price,
        "quantity": quantity,
        "category": _clean_text(raw_item.get("category")) or DEFAULT_CATEGORY,
    }


def apply_fallbacks(data: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """
    Fill every required field of a parsed model response.

    Args:
        data: JSON object returned by the model
        today: Date used when the receipt has none (defaults to date.today())

    Returns:
        Candidate dict shaped like ExtractedReceipt

    Raises:
        ParseError: the items list is missing, not an array, or holds non-objects
    """
    raw_items = data.get("items")
    if raw_items is None:
        raise ParseError("Model response has no items array")
    if not isinstance(raw_items, list):
        raise ParseError(f"Model response items is {type(raw_items).__name__}, not an array")

    items: List[Dict[str, Any]] = []
    for index, raw_item in enumerate(raw_items):
        if not isinstance(raw_item, dict):
            raise ParseError(f"Item {index} is not an object")
        items.append(_normalize_item(raw_item))

    raw_shop = data.get("shop")
    if isinstance(raw_shop, str):
        raw_shop = {"name": raw_shop}
    elif not isinstance(raw_shop, dict):
        raw_shop = {}

    total_amount = _coerce_number(data.get("totalAmount"))
    if not total_amount:
        # Same rule the prompt gives the model: sum of the item prices
        total_amount = sum(
            item["price"] for item in items if isinstance(item["price"], (int, float))
        )

    return {
        "date": normalize_date(data.get("date")) or (today or date.today()).isoformat(),
        "totalAmount": total_amount,
        "shop": {
            "name": _clean_text(raw_shop.get("name")) or UNKNOWN_SHOP,
            "address": _clean_text(raw_shop.get("address")) or None,
        },
        "items": items,
    }


def validate_receipt(candidate: Dict[str, Any], raw_response: Optional[str] = None) -> ExtractionResult:
    """Validate a fallback-applied candidate against the receipt schema."""
    try:
        receipt = ExtractedReceipt.model_validate(candidate)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        return ExtractionResult(error=f"Receipt data does not match schema: {problems}", raw_response=raw_response)
    return ExtractionResult(receipt=receipt, raw_response=raw_response)


def parse_model_response(response_text: str, today: Optional[date] = None) -> ExtractionResult:
    """
    Turn raw model output into a tagged extraction result.

    Never raises; failures are reported through ``ExtractionResult.error``.
    """
    try:
        data = load_json_object(response_text)
        candidate = apply_fallbacks(data, today=today)
    except ParseError as e:
        return ExtractionResult(error=e.message, raw_response=response_text)
    return validate_receipt(candidate, raw_response=response_text)


class ReceiptExtractor:
    """Structures OCR text into an ExtractedReceipt using an LLM provider."""

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    def extract(
        self,
        ocr_text: str,
        category_names: Iterable[str] = (),
        shop_names: Iterable[str] = (),
        today: Optional[date] = None,
    ) -> ExtractedReceipt:
        """
        Ask the model to structure the receipt and validate its answer.

        Raises:
            ParseError: the model failed or its answer could not be repaired
        """
        prompt = create_receipt_parsing_prompt(ocr_text, category_names, shop_names)
        response_text = self.llm.complete(prompt)
        logger.debug(f"Model response ({self.llm.name}): {response_text[:300]}")

        result = parse_model_response(response_text, today=today)
        if not result.ok:
            logger.error(f"Could not parse model response: {result.error}. Raw: {response_text[:200]}")
        receipt = result.unwrap()

        logger.info(
            f"Extracted receipt: shop='{receipt.shop.name}', date={receipt.date}, "
            f"{len(receipt.items)} items"
        )
        return receipt
