"""
Database models for the Expense Tracker backend.

All SQLAlchemy models are imported here so they register on Base.metadata.
"""

from expense_tracker.models.receipt import Receipt, Item
from expense_tracker.models.category import Category
from expense_tracker.models.shop import Shop

__all__ = [
    "Receipt",
    "Item",
    "Category",
    "Shop",
]
