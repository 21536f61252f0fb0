"""
Receipt ingestion pipeline and persistence.

OCR -> structured extraction -> reconciliation -> one transaction per write.
Stored totals are always recomputed from the items (price x quantity).
"""

import asyncio
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import desc
from sqlalchemy.orm import Session

from expense_tracker.database import atomic
from expense_tracker.exceptions import ExtractionError, NotFoundError, ValidationError
from expense_tracker.models.category import Category
from expense_tracker.models.receipt import Receipt, Item
from expense_tracker.models.shop import Shop
from expense_tracker.schemas import ExtractedReceipt, ItemUpdate, ManualReceiptCreate, ReceiptUpdate
from expense_tracker.services.ocr_service import OCRService
from expense_tracker.services.receipt_extractor import ReceiptExtractor
from expense_tracker.services.reconciliation import CategoryResolver, resolve_shop
from expense_tracker.services.storage_service import FileStore

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_total(items: Iterable[Item]) -> Decimal:
    """Sum of price x quantity over the given items."""
    total = sum((to_money(item.price) * (item.quantity or 1) for item in items), Decimal("0"))
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


class ItemDiffPlan:
    """Item operations needed to turn the stored items into the desired list."""

    def __init__(self, to_delete: List[int], to_create: List[ItemUpdate], to_update: List[ItemUpdate]):
        self.to_delete = to_delete
        self.to_create = to_create
        self.to_update = to_update

    def __repr__(self):
        return (
            f"<ItemDiffPlan(delete={len(self.to_delete)}, create={len(self.to_create)}, "
            f"update={len(self.to_update)})>"
        )


def plan_item_diff(stored_ids: Iterable[int], desired: List[ItemUpdate]) -> ItemDiffPlan:
    """
    Three-way diff between stored item ids and the desired item list.

    Raises:
        ValidationError: a desired id is not a temporary marker and not a
            stored item of this receipt, or appears twice
    """
    stored = set(stored_ids)
    kept = set()
    to_create: List[ItemUpdate] = []
    to_update: List[ItemUpdate] = []

    for index, item in enumerate(desired):
        if item.is_new:
            to_create.append(item)
            continue

        item_id = item.stored_id
        if item_id not in stored:
            raise ValidationError.for_field(f"items.{index}.id", f"item {item_id} does not belong to this receipt")
        if item_id in kept:
            raise ValidationError.for_field(f"items.{index}.id", f"item {item_id} is listed more than once")
        kept.add(item_id)
        to_update.append(item)

    return ItemDiffPlan(sorted(stored - kept), to_create, to_update)


class ReceiptService:
    """
    Entry points of the receipt pipeline.

    All collaborators are injected so the pipeline can run against fakes.
    """

    def __init__(
        self,
        db: Session,
        ocr: Optional[OCRService] = None,
        extractor: Optional[ReceiptExtractor] = None,
        file_store: Optional[FileStore] = None,
    ):
        self.db = db
        self.ocr = ocr
        self.extractor = extractor
        self.file_store = file_store

    # --- Reads ---

    def get_receipt(self, receipt_id: int) -> Receipt:
        receipt = self.db.get(Receipt, receipt_id)
        if not receipt:
            raise NotFoundError("Receipt", receipt_id)
        return receipt

    def list_receipts(
        self,
        skip: int = 0,
        limit: int = 50,
        shop_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Tuple[List[Receipt], int]:
        """List receipts, newest purchase first, with the unpaginated count."""
        query = self.db.query(Receipt)

        if shop_id:
            query = query.filter(Receipt.shop_id == shop_id)
        if start_date:
            query = query.filter(Receipt.date >= start_date)
        if end_date:
            query = query.filter(Receipt.date <= end_date)

        total = query.count()
        receipts = (
            query.order_by(desc(Receipt.date), desc(Receipt.id)).offset(skip).limit(limit).all()
        )
        return receipts, total

    # --- Pipeline ---

    async def ingest_from_image(self, image_path) -> Receipt:
        """
        Create a receipt from an uploaded image.

        A raw backup of the image is kept for recalculation. If any stage
        fails, the backup is removed and nothing is written to the database.
        """
        image_path = Path(image_path)
        try:
            raw_url = self.file_store.backup_raw(image_path)
        except OSError as e:
            raise ExtractionError(f"Could not read receipt image {image_path.name}: {e}") from e

        try:
            ocr_text, extracted = await self._extract(str(image_path))

            with atomic(self.db):
                receipt = Receipt(
                    image_url=self.file_store.url_for(image_path),
                    raw_image_path=raw_url,
                    ocr_text=ocr_text,
                )
                # Reconciliation flushes, so the receipt joins the session only once complete
                self._apply_extraction(receipt, extracted)
                self.db.add(receipt)
                self.db.flush()
                receipt_id = receipt.id
        except Exception:
            self.file_store.discard(raw_url)
            raise

        logger.info(f"Receipt {receipt_id} created from {image_path.name}")
        return receipt

    def ingest_manual(self, fields: dict) -> Receipt:
        """Create a receipt from manually entered fields."""
        try:
            data = ManualReceiptCreate.model_validate(fields)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        with atomic(self.db):
            self._require_categories(
                item.category_id for item in data.items if item.category_id is not None
            )
            shop = resolve_shop(self.db, data.shop_name, data.shop_address)
            resolver = CategoryResolver(self.db)

            items = [
                Item(
                    name=item.name.strip(),
                    price=to_money(item.price),
                    quantity=item.quantity,
                    category_id=(
                        item.category_id if item.category_id is not None else resolver.resolve(item.category)
                    ),
                )
                for item in data.items
            ]
            receipt = Receipt(
                date=data.date,
                shop=shop,
                image_url="",  # No image for manual entries
                raw_image_path="",
                items=items,
                total_amount=compute_total(items),
            )
            self.db.add(receipt)
            self.db.flush()
            receipt_id = receipt.id

        logger.info(f"Receipt {receipt_id} created manually with {len(items)} items")
        return receipt

    def update_receipt(self, receipt_id: int, desired: dict) -> Receipt:
        """
        Replace a receipt's header and items with the desired state.

        Items are diffed against storage (delete / create / update) and the
        total is recomputed; everything happens in one transaction.
        """
        try:
            data = ReceiptUpdate.model_validate(desired)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        with atomic(self.db):
            receipt = self.get_receipt(receipt_id)
            stored = {item.id: item for item in receipt.items}
            plan = plan_item_diff(stored.keys(), data.items)
            self._require_categories(item.category_id for item in data.items)

            receipt.date = data.date
            receipt.shop_id = self._resolve_update_shop(receipt, data)

            for item_id in plan.to_delete:
                receipt.items.remove(stored[item_id])

            for wanted in plan.to_update:
                row = stored[wanted.stored_id]
                row.name = wanted.name.strip()
                row.price = to_money(wanted.price)
                row.quantity = wanted.quantity
                row.category_id = wanted.category_id

            for wanted in plan.to_create:
                receipt.items.append(
                    Item(
                        name=wanted.name.strip(),
                        price=to_money(wanted.price),
                        quantity=wanted.quantity,
                        category_id=wanted.category_id,
                    )
                )

            receipt.total_amount = compute_total(receipt.items)
            self.db.flush()

        logger.info(
            f"Receipt {receipt_id} updated: {len(plan.to_create)} created, "
            f"{len(plan.to_update)} updated, {len(plan.to_delete)} deleted"
        )
        return receipt

    async def recalculate_receipt(self, receipt_id: int) -> Receipt:
        """
        Re-run OCR and extraction on the stored raw image and replace all items.

        Manual edits made since ingestion are discarded.
        """
        receipt = self.get_receipt(receipt_id)
        if not receipt.raw_image_path:
            raise ValidationError.for_field("raw_image_path", "receipt has no stored source image")

        raw_path = self.file_store.path_for(receipt.raw_image_path)
        ocr_text, extracted = await self._extract(str(raw_path))

        with atomic(self.db):
            receipt.items.clear()
            self.db.flush()
            receipt.ocr_text = ocr_text
            self._apply_extraction(receipt, extracted)
            self.db.flush()

        logger.info(f"Receipt {receipt_id} recalculated with {len(extracted.items)} items")
        return receipt

    def delete_receipt(self, receipt_id: int) -> None:
        """
        Delete a receipt with its items, then remove its image files.

        File removal is best effort: the database is the source of truth.
        """
        with atomic(self.db):
            receipt = self.get_receipt(receipt_id)
            file_urls = [receipt.image_url, receipt.raw_image_path]
            item_count = len(receipt.items)
            # Items go with the receipt through the delete-orphan cascade
            self.db.delete(receipt)

        logger.info(f"Receipt {receipt_id} deleted with {item_count} items")
        if self.file_store:
            self.file_store.discard(*[url for url in file_urls if url])

    # --- Helpers ---

    async def _extract(self, image_path: str) -> Tuple[str, ExtractedReceipt]:
        """OCR the image and structure the text; blocking calls run in worker threads."""
        ocr_text = await asyncio.to_thread(self.ocr.recognize, image_path)
        if not ocr_text or not ocr_text.strip():
            raise ExtractionError("No text extracted from receipt")

        category_names = [name for (name,) in self.db.query(Category.name).order_by(Category.name)]
        shop_names = [name for (name,) in self.db.query(Shop.name).order_by(Shop.name)]

        extracted = await asyncio.to_thread(
            self.extractor.extract, ocr_text, category_names, shop_names
        )
        return ocr_text, extracted

    def _apply_extraction(self, receipt: Receipt, extracted: ExtractedReceipt) -> None:
        """Reconcile an extracted receipt onto ``receipt`` (header, shop, items, total)."""
        receipt.date = extracted.purchase_date
        receipt.shop = resolve_shop(self.db, extracted.shop.name, extracted.shop.address)

        resolver = CategoryResolver(self.db)
        for extracted_item in extracted.items:
            receipt.items.append(
                Item(
                    name=extracted_item.name,
                    price=to_money(extracted_item.price),
                    quantity=extracted_item.quantity,
                    category_id=resolver.resolve(extracted_item.category),
                )
            )

        receipt.total_amount = compute_total(receipt.items)
        if abs(receipt.total_amount - to_money(extracted.total_amount)) > CENTS:
            logger.warning(
                f"Extracted total {extracted.total_amount} differs from itemized sum "
                f"{receipt.total_amount}; storing the itemized sum"
            )

    def _require_categories(self, category_ids: Iterable[int]) -> None:
        wanted = set(category_ids)
        if not wanted:
            return
        found = {cid for (cid,) in self.db.query(Category.id).filter(Category.id.in_(wanted))}
        missing = sorted(wanted - found)
        if missing:
            raise NotFoundError("Category", missing[0])

    def _resolve_update_shop(self, receipt: Receipt, data: ReceiptUpdate) -> Optional[int]:
        """Shop id after an update; only an explicit null shopId detaches the shop."""
        if data.shop:
            if data.shop.id:
                shop = self.db.get(Shop, data.shop.id)
                if not shop:
                    raise NotFoundError("Shop", data.shop.id)
                shop.name = data.shop.name.strip()
                shop.address = (data.shop.address or "").strip() or None
                return shop.id
            shop = resolve_shop(self.db, data.shop.name, data.shop.address)
            return shop.id if shop else None

        if "shop_id" not in data.model_fields_set:
            return receipt.shop_id
        if data.shop_id is not None and not self.db.get(Shop, data.shop_id):
            raise NotFoundError("Shop", data.shop_id)
        return data.shop_id
