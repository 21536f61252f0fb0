"""
Category database model.
"""

from sqlalchemy import Column, Integer, String, Index, func
from sqlalchemy.orm import relationship

from expense_tracker.database import Base


class Category(Base):
    """Expense category, unique by name regardless of case."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)

    # Relationships
    items = relationship("Item", back_populates="category")


# Backs the case-insensitive lookups done during reconciliation
Index("uq_category_name_lower", func.lower(Category.name), unique=True)
