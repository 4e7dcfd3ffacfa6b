"""Read-only access to the synced product catalogue."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import schemas
from ..database import LIKE_ESCAPE, contains_pattern, get_db
from ..deps import get_current_user
from ..models import Product, User


router = APIRouter(
    prefix="/products",
    tags=["Products"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
    }
)


@router.get("", response_model=List[schemas.ProductOut])
def list_products(
    search: Optional[str] = Query(None, description="Substring of title, SKU or shop name"),
    shop_name: Optional[str] = Query(None, description="Exact shop name"),
    sku: Optional[str] = Query(None, description="Substring of SKU"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Products from the last successful sync, ordered by shop then title."""
    query = db.query(Product).filter(Product.user_id == current_user.id)

    if search:
        pattern = contains_pattern(search)
        query = query.filter(or_(
            Product.title.ilike(pattern, escape=LIKE_ESCAPE),
            Product.sku.ilike(pattern, escape=LIKE_ESCAPE),
            Product.shop_name.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    if shop_name:
        query = query.filter(Product.shop_name == shop_name)
    if sku:
        query = query.filter(Product.sku.ilike(contains_pattern(sku), escape=LIKE_ESCAPE))

    return query.order_by(Product.shop_name, Product.title).all()


@router.get("/shops", response_model=schemas.ShopNamesResponse)
def list_product_shops(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = db.query(Product.shop_name).filter(Product.user_id == current_user.id).distinct().all()
    return schemas.ShopNamesResponse(shops=sorted(name for (name,) in rows if name))
