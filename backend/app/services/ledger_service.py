"""Purchase ledger: upload batches and their line items.

WHAT:
    - Turn uploaded logistics spreadsheets into a purchase batch, matching
      each SKU against the owner's synced products.
    - Save hand-edited entries (received quantities, done/partial flags).
    - Browse, edit, export and delete batches.

WHY:
    Independent of Shopify at request time; the product table is only used to
    attach a shop name and title to each uploaded SKU.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from app.models import Product, Purchase, PurchaseBatch, PurchaseTypeEnum
from app.services.shop_name_resolver import UNKNOWN_SHOP_NAME
from app.services.spreadsheet import first_value, read_spreadsheet, write_xlsx

logger = logging.getLogger(__name__)

UNKNOWN_PRODUCT_TITLE = "Unknown Product"
MANUAL_ENTRY_FILE_NAME = "manual_entry"

SKU_COLUMNS = ("Product SKU", "SKU", "sku")
QUANTITY_COLUMNS = ("Product Quantity", "Quantity", "quantity")
EXPORT_COLUMNS = ["Product SKU", "Product Quantity", "Shop Name", "Date", "Type", "Notes"]

PURCHASE_TYPES = {t.value for t in PurchaseTypeEnum}


class LedgerValidationError(ValueError):
    """Rejected ledger input; nothing was written."""


class LedgerNotFound(LookupError):
    """Batch or purchase does not exist for this user."""


@dataclass
class PurchaseEntry:
    """An uploaded SKU line before it is stored."""
    sku: str
    shop_name: str
    title: str
    quantity: int
    received_quantity: int = 0
    is_done: bool = False
    is_partial: bool = False

    @property
    def stored_quantity(self) -> int:
        return self.received_quantity if self.is_partial else self.quantity

    @property
    def stored_notes(self) -> str:
        if self.is_done:
            return "Completed"
        if self.is_partial:
            return f"Partial: {self.received_quantity}/{self.quantity}"
        return ""


@dataclass
class UploadResult:
    batch: PurchaseBatch
    entries: List[PurchaseEntry] = field(default_factory=list)

    @property
    def matched(self) -> int:
        return sum(1 for entry in self.entries if entry.shop_name != UNKNOWN_SHOP_NAME)

    @property
    def unmatched(self) -> int:
        return sum(1 for entry in self.entries if entry.shop_name == UNKNOWN_SHOP_NAME)


def _cell_text(value: Any) -> str:
    # Excel hands numeric SKUs back as floats (1001.0)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip() if value is not None else ""


def parse_quantity(value: Any) -> int:
    """Integer quantity from a cell; 1 when missing, unparseable or not positive."""
    try:
        quantity = int(float(_cell_text(value)))
    except (ValueError, OverflowError):
        return 1
    return quantity if quantity > 0 else 1


def read_purchase_rows(rows: Sequence[Dict[str, Any]]) -> List[Tuple[str, int]]:
    """Extract (sku, quantity) pairs, dropping rows without a SKU."""
    items: List[Tuple[str, int]] = []
    for row in rows:
        sku = _cell_text(first_value(row, *SKU_COLUMNS))
        if not sku:
            continue
        items.append((sku, parse_quantity(first_value(row, *QUANTITY_COLUMNS))))
    return items


def match_entries(db: Session, user_id: UUID, items: Sequence[Tuple[str, int]]) -> List[PurchaseEntry]:
    """Attach shop name and title from synced products and merge duplicates.

    Entries are merged on (sku, shop_name), summing quantities. SKUs with no
    synced product land under the "Unknown" shop.
    """
    skus = {sku for sku, _ in items}
    products: Dict[str, Product] = {}
    if skus:
        for product in (
            db.query(Product)
            .filter(Product.user_id == user_id, Product.sku.in_(skus))
            .order_by(Product.shop_name, Product.title)
            .all()
        ):
            products.setdefault(product.sku, product)

    entries: Dict[Tuple[str, str], PurchaseEntry] = {}
    for sku, quantity in items:
        product = products.get(sku)
        shop_name = product.shop_name if product else UNKNOWN_SHOP_NAME
        key = (sku, shop_name)
        if key in entries:
            entries[key].quantity += quantity
            continue
        entries[key] = PurchaseEntry(
            sku=sku,
            shop_name=shop_name,
            title=product.title if product else UNKNOWN_PRODUCT_TITLE,
            quantity=quantity,
        )

    return list(entries.values())


def _create_batch(
    db: Session,
    user_id: UUID,
    file_names: List[str],
    entries: Sequence[PurchaseEntry],
    today: date,
    notes: Optional[str] = None,
) -> PurchaseBatch:
    batch = PurchaseBatch(
        user_id=user_id,
        upload_date=today,
        file_names=file_names,
        total_items=len(entries),
        notes=notes,
    )
    batch.purchases = [
        Purchase(
            user_id=user_id,
            date=today,
            shop_name=entry.shop_name,
            sku=entry.sku,
            type=PurchaseTypeEnum.purchase.value,
            quantity=entry.stored_quantity,
            notes=entry.stored_notes,
        )
        for entry in entries
    ]
    db.add(batch)
    db.commit()
    db.refresh(batch)
    return batch


def upload_purchase_files(
    db: Session,
    user_id: UUID,
    files: Sequence[Tuple[str, bytes]],
    today: Optional[date] = None,
) -> UploadResult:
    """Create a purchase batch from one or more uploaded spreadsheets.

    Args:
        files: (filename, content) pairs
        today: Batch and purchase date (defaults to today)

    Raises:
        LedgerValidationError: If no file was uploaded
        SpreadsheetError: If a file cannot be parsed
    """
    if not files:
        raise LedgerValidationError("Please upload at least one file")

    items: List[Tuple[str, int]] = []
    file_names: List[str] = []
    for filename, content in files:
        file_names.append(filename)
        items.extend(read_purchase_rows(read_spreadsheet(filename, content)))

    entries = match_entries(db, user_id, items)
    batch = _create_batch(db, user_id, file_names, entries, today or date.today())
    result = UploadResult(batch=batch, entries=entries)

    logger.info(
        f"[LEDGER] Uploaded {len(files)} file(s) for user {user_id}: "
        f"{result.matched} matched SKUs, {result.unmatched} unmatched"
    )
    return result


def save_manual_entries(
    db: Session,
    user_id: UUID,
    entries: Sequence[PurchaseEntry],
    today: Optional[date] = None,
) -> PurchaseBatch:
    """Store edited upload entries as a new `manual_entry` batch.

    Raises:
        LedgerValidationError: If there are no entries
    """
    if not entries:
        raise LedgerValidationError("No entries to save. Please upload a file first")

    batch = _create_batch(db, user_id, [MANUAL_ENTRY_FILE_NAME], entries, today or date.today())
    logger.info(f"[LEDGER] Saved {len(entries)} manual entries for user {user_id}")
    return batch


def list_batches(db: Session, user_id: UUID) -> List[PurchaseBatch]:
    return (
        db.query(PurchaseBatch)
        .filter(PurchaseBatch.user_id == user_id)
        .order_by(PurchaseBatch.upload_date.desc(), PurchaseBatch.created_at.desc())
        .all()
    )


def get_batch(db: Session, user_id: UUID, batch_id: UUID) -> PurchaseBatch:
    batch = (
        db.query(PurchaseBatch)
        .options(selectinload(PurchaseBatch.purchases))
        .filter(PurchaseBatch.id == batch_id, PurchaseBatch.user_id == user_id)
        .first()
    )
    if not batch:
        raise LedgerNotFound(f"Batch {batch_id} not found")
    return batch


def get_latest_batch(db: Session, user_id: UUID) -> Optional[PurchaseBatch]:
    return (
        db.query(PurchaseBatch)
        .options(selectinload(PurchaseBatch.purchases))
        .filter(PurchaseBatch.user_id == user_id)
        .order_by(PurchaseBatch.created_at.desc())
        .first()
    )


def delete_batch(db: Session, user_id: UUID, batch_id: UUID) -> int:
    """Delete a batch and its purchases. Returns the number of purchases removed."""
    batch = get_batch(db, user_id, batch_id)
    removed = len(batch.purchases)
    db.delete(batch)
    db.commit()
    logger.info(f"[LEDGER] Deleted batch {batch_id} with {removed} purchases")
    return removed


def update_purchases(db: Session, user_id: UUID, updates: Sequence[Dict[str, Any]]) -> List[Purchase]:
    """Apply quantity/type/notes edits to several purchases at once.

    All edits are validated before anything is written.

    Raises:
        LedgerValidationError: Unknown type or negative quantity
        LedgerNotFound: An id does not belong to the user
    """
    for update in updates:
        if update["type"] not in PURCHASE_TYPES:
            raise LedgerValidationError(f"Invalid purchase type: {update['type']}")
        if update["quantity"] < 0:
            raise LedgerValidationError("Quantity cannot be negative")

    ids = [update["id"] for update in updates]
    purchases = {
        purchase.id: purchase
        for purchase in db.query(Purchase).filter(Purchase.user_id == user_id, Purchase.id.in_(ids)).all()
    } if ids else {}

    missing = [str(purchase_id) for purchase_id in ids if purchase_id not in purchases]
    if missing:
        raise LedgerNotFound(f"Purchases not found: {', '.join(missing)}")

    for update in updates:
        purchase = purchases[update["id"]]
        purchase.quantity = update["quantity"]
        purchase.type = update["type"]
        purchase.notes = update.get("notes")

    db.commit()
    logger.info(f"[LEDGER] Updated {len(updates)} purchases for user {user_id}")
    return [purchases[purchase_id] for purchase_id in ids]


def export_batch(db: Session, user_id: UUID, batch_id: UUID) -> Tuple[str, bytes]:
    """Render a batch's purchases as an .xlsx download.

    Returns:
        (filename, content)
    """
    batch = get_batch(db, user_id, batch_id)
    content = write_xlsx(
        EXPORT_COLUMNS,
        (
            [p.sku, p.quantity, p.shop_name, p.date, p.type, p.notes or ""]
            for p in batch.purchases
        ),
        sheet_title="Purchases",
    )
    return f"batch_{batch.upload_date.isoformat()}_{str(batch.id)[:8]}.xlsx", content
