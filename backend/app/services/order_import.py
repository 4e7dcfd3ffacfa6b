"""Order export import.

Maps a logistics order export (one row per order line) onto `Order` rows.
Column names follow the courier aggregator's export; anything missing falls
back to a default so a partial export still imports.
"""

import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import Order
from app.services.spreadsheet import read_spreadsheet

logger = logging.getLogger(__name__)

# DD-MM-YYYY with an optional HH:mm[:ss] time part
_DMY_PATTERN = re.compile(
    r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})(?:[ T](\d{1,2}):(\d{1,2})(?::(\d{1,2}))?)?$"
)

# Column -> Order attribute, for the plain text columns
TEXT_COLUMNS = {
    "Sub Order Number": "sub_order_number",
    "Customer Name": "customer_name",
    "Customer Email": "customer_email",
    "Customer Mobile No": "customer_mobile",
    "Customer City": "customer_city",
    "Customer State": "customer_state",
    "Customer Pincode": "customer_pincode",
    "Courier Company": "courier_company",
    "AWB No": "awb_no",
    "Warehouse ID": "warehouse_id",
    "Warehouse Nick Name": "warehouse_name",
    "Zone": "zone",
    "Store Name": "store_name",
}

DATE_COLUMNS = {
    "AWB Assigned Date": "awb_assigned_date",
    "Order Pickup Date": "order_pickup_date",
    "Order Delivered Date": "order_delivered_date",
    "Store Order Date": "store_order_date",
}

AMOUNT_COLUMNS = {
    "Product Price": "product_price",
    "Product Discount": "product_discount",
    "Order Total": "order_total",
    "Billed Weight": "billed_weight",
    "FWD Charges": "fwd_charges",
    "RTO Charges": "rto_charges",
    "COD Charges": "cod_charges",
    "GST Charges": "gst_charges",
    "Total Freight Charge": "total_freight_charge",
}


class OrderImportError(ValueError):
    """The upload held no importable orders."""


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_order_date(value: Any) -> Optional[datetime]:
    """Parse an export date.

    `DD-MM-YYYY[ HH:mm[:ss]]` is tried first, then ISO 8601. Blank, `N/A`
    and unparseable values give None.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = _text(value)
    if not text or text.upper() == "N/A":
        return None

    match = _DMY_PATTERN.match(text)
    if match:
        day, month, year, hour, minute, second = match.groups()
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0), int(second or 0),
            )
        except ValueError:
            logger.warning(f"[ORDER_IMPORT] Invalid date: {text}")
            return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"[ORDER_IMPORT] Unparseable date: {text}")
        return None
    # Stored naive, like every other timestamp column
    return parsed.replace(tzinfo=None)


def parse_amount(value: Any) -> Decimal:
    """Numeric cell as Decimal; 0 when blank or not a number."""
    text = _text(value)
    if not text:
        return Decimal("0")
    try:
        amount = Decimal(text.replace(",", ""))
    except InvalidOperation:
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def parse_order_quantity(value: Any) -> int:
    try:
        quantity = int(parse_amount(value))
    except (ValueError, OverflowError):
        return 1
    return quantity or 1


def build_order(row: Dict[str, Any], user_id: UUID) -> Optional[Order]:
    """Map one export row to an Order, or None when it has no order number."""
    order_number = _text(row.get("Order Number"))
    if not order_number:
        return None

    order = Order(
        user_id=user_id,
        order_number=order_number,
        order_date=parse_order_date(row.get("Order Date")) or datetime.utcnow(),
        channel=_text(row.get("Channel")) or "Shopify",
        product_name=_text(row.get("Product Name")) or "",
        product_sku=_text(row.get("Product SKU")) or "",
        product_quantity=parse_order_quantity(row.get("Product Quantity")),
        payment_method=_text(row.get("Payment Method")) or "COD",
        order_status=_text(row.get("Order Status")) or "Pending",
    )
    for column, attribute in TEXT_COLUMNS.items():
        setattr(order, attribute, _text(row.get(column)))
    for column, attribute in DATE_COLUMNS.items():
        setattr(order, attribute, parse_order_date(row.get(column)))
    for column, attribute in AMOUNT_COLUMNS.items():
        setattr(order, attribute, parse_amount(row.get(column)))
    return order


def build_orders(rows: Sequence[Dict[str, Any]], user_id: UUID) -> List[Order]:
    return [order for order in (build_order(row, user_id) for row in rows) if order is not None]


def import_orders(db: Session, user_id: UUID, filename: str, content: bytes) -> int:
    """Insert every valid order line from an uploaded export.

    Returns:
        Number of orders inserted

    Raises:
        OrderImportError: If the file is empty or has no valid orders
        SpreadsheetError: If the file cannot be parsed
    """
    rows = read_spreadsheet(filename, content)
    if not rows:
        raise OrderImportError("CSV file is empty or invalid")

    orders = build_orders(rows, user_id)
    if not orders:
        raise OrderImportError("No valid orders found in file")

    db.add_all(orders)
    db.commit()
    logger.info(f"[ORDER_IMPORT] Imported {len(orders)} orders for user {user_id} from {filename}")
    return len(orders)
