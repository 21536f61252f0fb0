from typing import List, Optional, Union
from datetime import datetime, date

from pydantic import BaseModel, Field, field_validator

TEMP_ID_PREFIX = "temp-"


# --- Shared ---
class PaginatedResponse(BaseModel):
    total: int
    skip: int
    limit: int


# --- Extraction (model output after fallbacks) ---
class ExtractedShop(BaseModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None


class ExtractedItem(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    category: str = Field(..., min_length=1)


class ExtractedReceipt(BaseModel):
    """Receipt candidate produced by the structured extractor."""

    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    total_amount: float = Field(..., alias="totalAmount")
    shop: ExtractedShop
    items: List[ExtractedItem]

    class Config:
        populate_by_name = True

    @field_validator("date")
    @classmethod
    def date_must_exist(cls, value: str) -> str:
        datetime.strptime(value, "%Y-%m-%d")
        return value

    @property
    def purchase_date(self):
        return datetime.strptime(self.date, "%Y-%m-%d").date()


# --- Category ---
class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name is required")
        return value


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(CategoryBase):
    pass


class CategoryResponse(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class CategoryWithCountResponse(CategoryResponse):
    item_count: int = 0


# --- Shop ---
class ShopResponse(BaseModel):
    id: int
    name: str
    address: Optional[str] = None

    class Config:
        from_attributes = True


class ShopUpdate(BaseModel):
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = None


# --- Item ---
class ItemResponse(BaseModel):
    id: int
    name: str
    price: float
    quantity: int
    category_id: int
    category: Optional[CategoryResponse] = None

    class Config:
        from_attributes = True


class CategoryItemResponse(BaseModel):
    id: int
    name: str
    price: float
    quantity: int
    receipt_id: int

    class Config:
        from_attributes = True


class CategoryDetailResponse(CategoryResponse):
    items: List[CategoryItemResponse] = []


class ManualItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    category_id: Optional[int] = Field(None, alias="categoryId")
    category: Optional[str] = None

    class Config:
        populate_by_name = True


class ItemUpdate(BaseModel):
    """
    Desired state of one item in an update.

    ``id`` is a stored item id, or a client-side marker starting with
    ``temp-`` (or nothing) for items that should be created.
    """

    id: Optional[Union[int, str]] = None
    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    category_id: int = Field(..., alias="categoryId")

    class Config:
        populate_by_name = True

    @field_validator("id")
    @classmethod
    def id_must_be_stored_or_temporary(cls, value):
        if isinstance(value, str) and not value.startswith(TEMP_ID_PREFIX) and not value.isdigit():
            raise ValueError(f"must be an item id or start with '{TEMP_ID_PREFIX}'")
        return value

    @property
    def is_new(self) -> bool:
        return self.id is None or (isinstance(self.id, str) and self.id.startswith(TEMP_ID_PREFIX))

    @property
    def stored_id(self) -> Optional[int]:
        if self.is_new:
            return None
        return int(self.id)


# --- Receipt ---
class ManualReceiptCreate(BaseModel):
    date: date
    shop_name: str = Field(..., alias="shopName", min_length=1, max_length=200)
    shop_address: Optional[str] = Field(None, alias="shopAddress")
    items: List[ManualItemCreate]
    # Accepted for compatibility; the stored total is always recomputed
    total_amount: Optional[float] = Field(None, alias="totalAmount")

    class Config:
        populate_by_name = True


class ReceiptUpdate(BaseModel):
    date: date
    shop_id: Optional[int] = Field(None, alias="shopId")
    shop: Optional[ShopUpdate] = None
    items: List[ItemUpdate]
    total_amount: Optional[float] = Field(None, alias="totalAmount")

    class Config:
        populate_by_name = True


class ReceiptResponse(BaseModel):
    id: int
    date: date
    total_amount: float
    image_url: str
    raw_image_path: str
    shop_id: Optional[int] = None
    shop: Optional[ShopResponse] = None
    items: List[ItemResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReceiptListResponse(PaginatedResponse):
    receipts: List[ReceiptResponse]
