"""Customer returns endpoints."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import get_current_user
from ..models import User
from ..services import returns_service
from ..services.ledger_service import LedgerNotFound, LedgerValidationError
from ..services.returns_service import ReturnFilters


router = APIRouter(
    prefix="/returns",
    tags=["Returns"],
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Missing required fields"},
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
    }
)


@router.post("", response_model=schemas.ReturnOut, status_code=status.HTTP_201_CREATED)
def create_return(
    payload: schemas.ReturnCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return returns_service.create_return(
            db,
            current_user.id,
            shop_name=payload.shop_name,
            sku=payload.sku,
            quantity=payload.quantity,
            return_date=payload.return_date,
            notes=payload.notes,
        )
    except LedgerValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=List[schemas.ReturnOut])
def list_returns(
    search: Optional[str] = Query(None, description="Substring of shop name, SKU or notes"),
    return_date: Optional[date] = Query(None),
    shop_name: Optional[str] = Query(None),
    min_quantity: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    filters = ReturnFilters(
        search=search,
        return_date=return_date,
        shop_name=shop_name,
        min_quantity=min_quantity,
    )
    return returns_service.list_returns(db, current_user.id, filters)


@router.get("/shops", response_model=schemas.ShopNamesResponse)
def list_return_shops(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return schemas.ShopNamesResponse(shops=returns_service.return_shop_names(db, current_user.id))


@router.delete("/{return_id}", response_model=schemas.SuccessResponse)
def delete_return(
    return_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        returns_service.delete_return(db, current_user.id, return_id)
    except LedgerNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return schemas.SuccessResponse(detail="Return deleted")
