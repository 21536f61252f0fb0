"""
Receipt and Item database models.
"""

from sqlalchemy import Column, Integer, String, Date, Numeric, ForeignKey, DateTime, Index, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from expense_tracker.database import Base


class Receipt(Base):
    """Receipt model representing one purchase event."""

    __tablename__ = "receipts"
    __table_args__ = (
        Index("idx_receipt_shop_date", "shop_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=True, index=True)
    date = Column(Date, nullable=False, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    image_url = Column(String, nullable=False, default="")  # Served URL of the processed image
    raw_image_path = Column(String, nullable=False, default="")  # Untouched copy used by recalculate
    ocr_text = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    shop = relationship("Shop", back_populates="receipts")
    items = relationship(
        "Item",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="Item.id",
    )


class Item(Base):
    """One line entry on a receipt."""

    __tablename__ = "items"
    __table_args__ = (
        Index("idx_item_receipt_category", "receipt_id", "category_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    receipt_id = Column(Integer, ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    # Relationships
    receipt = relationship("Receipt", back_populates="items")
    category = relationship("Category", back_populates="items")
