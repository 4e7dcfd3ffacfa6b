"""Order import and analytics endpoints."""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import get_current_user
from ..models import User
from ..services.analytics_service import (
    DEFAULT_DELIVERY_STATUSES,
    OrderFilters,
    compute_analytics,
    filter_options,
    query_orders,
)
from ..services.order_import import OrderImportError, import_orders
from ..services.spreadsheet import SpreadsheetError

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/orders",
    tags=["Orders"],
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Invalid upload"},
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
    }
)


def order_filters(
    start_date: Optional[date] = Query(None, description="Inclusive, by order date"),
    end_date: Optional[date] = Query(None, description="Inclusive, by order date"),
    payment_method: Optional[str] = Query(None),
    order_status: Optional[str] = Query(None),
    customer_state: Optional[str] = Query(None),
    courier_company: Optional[str] = Query(None),
) -> OrderFilters:
    return OrderFilters(
        start_date=start_date,
        end_date=end_date,
        payment_method=payment_method,
        order_status=order_status,
        customer_state=customer_state,
        courier_company=courier_company,
    )


@router.post("/upload", response_model=schemas.OrderUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_orders(
    file: UploadFile = File(..., description="Order export (.csv or .xlsx)"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    content = await file.read()
    try:
        count = import_orders(db, current_user.id, file.filename or "orders.csv", content)
    except (OrderImportError, SpreadsheetError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return schemas.OrderUploadResponse(success=True, count=count)


@router.get("", response_model=List[schemas.OrderOut])
def list_orders(
    filters: OrderFilters = Depends(order_filters),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return query_orders(db, current_user.id, filters)


@router.get("/filters", response_model=schemas.OrderFilterOptions)
def get_filter_options(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return filter_options(db, current_user.id)


@router.get("/analytics", response_model=schemas.OrderAnalytics)
def get_order_analytics(
    filters: OrderFilters = Depends(order_filters),
    delivery_statuses: Optional[str] = Query(
        None,
        description="Comma-separated statuses counted as delivery attempts (default: Delivered,RTO)",
    ),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    statuses = [s.strip() for s in (delivery_statuses or "").split(",") if s.strip()]
    orders = query_orders(db, current_user.id, filters)
    return compute_analytics(orders, statuses or DEFAULT_DELIVERY_STATUSES)
