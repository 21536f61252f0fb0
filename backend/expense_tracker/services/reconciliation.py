"""
Reconciliation of extracted names onto stored shops and categories.

Runs inside the caller's transaction: new rows are flushed, never committed.
"""

import logging
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from expense_tracker.models.category import Category
from expense_tracker.models.shop import Shop
from expense_tracker.services.receipt_extractor import DEFAULT_CATEGORY, UNKNOWN_SHOP

logger = logging.getLogger(__name__)


def find_category_by_name(db: Session, name: str) -> Optional[Category]:
    """Case-insensitive category lookup."""
    return (
        db.query(Category)
        .filter(func.lower(Category.name) == name.strip().lower())
        .first()
    )


def find_or_create_category(db: Session, name: str) -> Category:
    """Return the category matching ``name`` (any casing), creating it if absent."""
    category = find_category_by_name(db, name)
    if category:
        return category

    category = Category(name=name.strip())
    db.add(category)
    db.flush()
    logger.info(f"Created new category: {category.name}")
    return category


def resolve_shop(db: Session, name: str, address: Optional[str] = None) -> Optional[Shop]:
    """
    Map an extracted shop onto a stored Shop.

    The "Unknown Shop" sentinel attaches no shop. An existing shop only gets
    its address filled when the stored one is empty.

    Returns:
        The Shop, or None for the sentinel
    """
    name = (name or "").strip()
    address = (address or "").strip() or None

    if not name or name == UNKNOWN_SHOP:
        return None

    shop = db.query(Shop).filter(Shop.name == name).first()
    if not shop:
        shop = Shop(name=name, address=address)
        db.add(shop)
        db.flush()
        logger.info(f"Created new shop: {shop.name}")
    elif address and not shop.address:
        shop.address = address
        db.flush()
        logger.info(f"Filled missing address for shop {shop.name}")

    return shop


class CategoryResolver:
    """
    Resolves item category names to ids for one pipeline run.

    Existing categories are loaded once into a lowercase name -> id map;
    categories created during the run are added to it, so items later in the
    same receipt reuse them.
    """

    def __init__(self, db: Session):
        self.db = db
        self.category_ids: Dict[str, Optional[int]] = {
            category.name.lower(): category.id for category in db.query(Category).all()
        }

    def resolve(self, name: Optional[str]) -> int:
        """
        Return the category id for ``name``, creating the category if needed.

        Args:
            name: Category name as extracted; empty means Miscellaneous
        """
        name = (name or "").strip() or DEFAULT_CATEGORY
        key = name.lower()

        if key in self.category_ids:
            category_id = self.category_ids[key]
            if category_id:
                return category_id
            logger.warning(f"Category '{name}' has no usable id, using {DEFAULT_CATEGORY}")
            return self._fallback_id()

        category = Category(name=name)
        self.db.add(category)
        self.db.flush()
        self.category_ids[key] = category.id
        logger.info(f"Created new category: {category.name}")
        return category.id

    def _fallback_id(self) -> int:
        category = find_or_create_category(self.db, DEFAULT_CATEGORY)
        self.category_ids[DEFAULT_CATEGORY.lower()] = category.id
        return category.id
