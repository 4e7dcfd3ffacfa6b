"""Customer returns recorded by hand."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.database import LIKE_ESCAPE, contains_pattern
from app.models import Return
from app.services.ledger_service import LedgerNotFound, LedgerValidationError

logger = logging.getLogger(__name__)


@dataclass
class ReturnFilters:
    search: Optional[str] = None
    return_date: Optional[date] = None
    shop_name: Optional[str] = None
    min_quantity: Optional[int] = None


def create_return(
    db: Session,
    user_id: UUID,
    shop_name: str,
    sku: str,
    quantity: int = 1,
    return_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> Return:
    """Record a return.

    Raises:
        LedgerValidationError: Blank shop name or SKU, or quantity below 1
    """
    shop_name = (shop_name or "").strip()
    sku = (sku or "").strip()
    if not shop_name or not sku:
        raise LedgerValidationError("Please fill in required fields (Shop Name and SKU)")
    if quantity < 1:
        raise LedgerValidationError("Quantity must be at least 1")

    item = Return(
        user_id=user_id,
        return_date=return_date or date.today(),
        shop_name=shop_name,
        sku=sku,
        quantity=quantity,
        notes=(notes or "").strip() or None,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"[LEDGER] Recorded return of {quantity} x {sku} ({shop_name}) for user {user_id}")
    return item


def list_returns(db: Session, user_id: UUID, filters: Optional[ReturnFilters] = None) -> List[Return]:
    """Owner's returns, newest first, narrowed by `filters`."""
    filters = filters or ReturnFilters()
    query = db.query(Return).filter(Return.user_id == user_id)

    if filters.search:
        pattern = contains_pattern(filters.search)
        query = query.filter(or_(
            Return.shop_name.ilike(pattern, escape=LIKE_ESCAPE),
            Return.sku.ilike(pattern, escape=LIKE_ESCAPE),
            Return.notes.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    if filters.return_date:
        query = query.filter(Return.return_date == filters.return_date)
    if filters.shop_name:
        query = query.filter(Return.shop_name == filters.shop_name)
    if filters.min_quantity is not None:
        query = query.filter(Return.quantity >= filters.min_quantity)

    return query.order_by(Return.return_date.desc(), Return.created_at.desc()).all()


def return_shop_names(db: Session, user_id: UUID) -> List[str]:
    rows = db.query(Return.shop_name).filter(Return.user_id == user_id).distinct().all()
    return sorted(name for (name,) in rows if name)


def delete_return(db: Session, user_id: UUID, return_id: UUID) -> None:
    item = db.query(Return).filter(Return.id == return_id, Return.user_id == user_id).first()
    if not item:
        raise LedgerNotFound(f"Return {return_id} not found")
    db.delete(item)
    db.commit()
    logger.info(f"[LEDGER] Deleted return {return_id}")
