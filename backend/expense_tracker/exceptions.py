"""
Error taxonomy for the receipt-ingestion pipeline.

Every failure that leaves the pipeline is one of these kinds. The API layer
maps each kind to an HTTP status in ``expense_tracker.main``.
"""

from typing import Any, Dict, List, Optional


class ExpenseTrackerError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"error": self.message}


class ExtractionError(ExpenseTrackerError):
    """OCR could not process the image."""


class ParseError(ExpenseTrackerError):
    """Model output could not be coerced into a receipt."""

    def __init__(self, message: str, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response


class ValidationError(ExpenseTrackerError):
    """Caller-supplied payload failed schema checks."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"Invalid {field}: {message}", [{"field": field, "message": message}])

    @classmethod
    def from_pydantic(cls, exc, message: str = "Invalid receipt data") -> "ValidationError":
        """Build from a ``pydantic.ValidationError``, keeping field-level detail."""
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return cls(message, errors)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "details": self.errors}


class NotFoundError(ExpenseTrackerError):
    """Referenced receipt, category or shop does not exist."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(f"{resource} {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class ConflictError(ExpenseTrackerError):
    """Unique-constraint violation or a restricted delete."""


class StorageError(ExpenseTrackerError):
    """Database transaction failed; nothing was persisted."""
