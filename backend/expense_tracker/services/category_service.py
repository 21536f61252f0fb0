"""
Category management: listing, lookup, create, rename and restricted delete.
"""

import logging
from typing import Dict, List, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session

from expense_tracker.database import atomic
from expense_tracker.exceptions import ConflictError, NotFoundError, ValidationError
from expense_tracker.models.category import Category
from expense_tracker.models.receipt import Item
from expense_tracker.schemas import CategoryCreate, CategoryUpdate
from expense_tracker.services.reconciliation import find_category_by_name

logger = logging.getLogger(__name__)


def list_categories(db: Session) -> List[Tuple[Category, int]]:
    """All categories ordered by name, each with the number of items using it."""
    rows = (
        db.query(Category, func.count(Item.id))
        .outerjoin(Item, Item.category_id == Category.id)
        .group_by(Category.id)
        .order_by(Category.name)
        .all()
    )
    return [(category, count) for category, count in rows]


def get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise NotFoundError("Category", category_id)
    return category


def _parse(schema, payload: Dict):
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, message="Invalid category data") from e


def create_category(db: Session, payload: Dict) -> Category:
    """
    Create a category.

    Raises:
        ValidationError: name missing or blank
        ConflictError: a category with the same name (any casing) exists
    """
    data = _parse(CategoryCreate, payload)

    with atomic(db):
        if find_category_by_name(db, data.name):
            raise ConflictError(f"Category '{data.name}' already exists")
        category = Category(name=data.name)
        db.add(category)
        db.flush()

    logger.info(f"Created category {category.id}: {category.name}")
    return category


def rename_category(db: Session, category_id: int, payload: Dict) -> Category:
    data = _parse(CategoryUpdate, payload)

    with atomic(db):
        category = get_category(db, category_id)
        existing = find_category_by_name(db, data.name)
        if existing and existing.id != category.id:
            raise ConflictError(f"Category '{data.name}' already exists")
        old_name = category.name
        category.name = data.name
        db.flush()

    logger.info(f"Renamed category {category_id}: {old_name} -> {data.name}")
    return category


def delete_category(db: Session, category_id: int) -> None:
    """
    Delete a category that no item references.

    Raises:
        NotFoundError: unknown category
        ConflictError: items still use the category
    """
    with atomic(db):
        category = get_category(db, category_id)
        item_count = db.query(func.count(Item.id)).filter(Item.category_id == category.id).scalar()
        if item_count:
            raise ConflictError(
                f"Category '{category.name}' is used by {item_count} items and cannot be deleted"
            )
        db.delete(category)

    logger.info(f"Deleted category {category_id}")
