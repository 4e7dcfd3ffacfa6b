"""Shopify synchronization endpoints.

WHAT:
    Thin HTTP wrappers for the product sync and shop listing services.

WHY:
    - Routers handle auth + request parsing only
    - Upstream failures are reported once here (Sentry) and mapped to HTTP

REFERENCES:
    - backend/app/services/shopify_sync_service.py
    - backend/app/services/shopify_client.py
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app import schemas
from app.database import get_db
from app.deps import Settings, get_current_user, get_settings
from app.models import User
from app.services.credentials_service import CredentialsError, ShopifyCredentials, resolve_credentials
from app.services.shopify_client import ShopifyAPIError, ShopifyClient
from app.services.shopify_sync_service import (
    ProductSyncResult,
    ProductSyncSuperseded,
    get_sync_state,
    list_shops,
    sync_products,
)
from app.telemetry import capture_exception

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/shopify",
    tags=["Shopify Sync"],
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Missing credentials"},
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        500: {"model": schemas.ErrorResponse, "description": "Shopify API failure"},
    },
)


# =============================================================================
# Helpers
# =============================================================================

def _to_api_response(result: ProductSyncResult) -> schemas.ProductSyncResponse:
    """Convert internal dataclass to API response model."""
    return schemas.ProductSyncResponse(
        success=result.success,
        count=result.count,
        generation=result.generation,
        resolved_from_nodes=result.resolved_from_nodes,
        resolved_from_history=result.resolved_from_history,
        unresolved=result.unresolved,
        duration_seconds=round(result.duration_seconds, 3),
    )


def _credentials(db: Session, user: User, payload: Optional[schemas.ShopifySyncRequest]) -> ShopifyCredentials:
    payload = payload or schemas.ShopifySyncRequest()
    try:
        return resolve_credentials(
            db,
            user.id,
            store_url=payload.shopify_store_url,
            access_token=payload.shopify_token,
        )
    except CredentialsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _client(credentials: ShopifyCredentials, settings: Settings) -> ShopifyClient:
    return ShopifyClient(
        shop_domain=credentials.store_url,
        access_token=credentials.access_token,
        api_version=settings.SHOPIFY_API_VERSION,
        max_retries=settings.SHOPIFY_MAX_RETRIES,
        timeout=settings.SHOPIFY_REQUEST_TIMEOUT,
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/sync-products", response_model=schemas.ProductSyncResponse)
async def sync_products_endpoint(
    payload: Optional[schemas.ShopifySyncRequest] = Body(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> schemas.ProductSyncResponse:
    """Replace the user's product catalogue with the current Shopify catalogue.

    Every variant with a SKU becomes one product row, named by its shop. The
    previous rows survive untouched if the sync fails.
    """
    credentials = _credentials(db, current_user, payload)

    try:
        result = await sync_products(
            db,
            current_user.id,
            credentials.store_url,
            credentials.access_token,
            client=_client(credentials, settings),
        )
    except ProductSyncSuperseded as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ShopifyAPIError as e:
        capture_exception(e, extra={"user_id": str(current_user.id), "store": credentials.store_url})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return _to_api_response(result)


@router.post("/shops", response_model=schemas.ShopsResponse)
async def list_shops_endpoint(
    payload: Optional[schemas.ShopifySyncRequest] = Body(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> schemas.ShopsResponse:
    """List the store's `shop_name` metaobjects. Nothing is stored."""
    credentials = _credentials(db, current_user, payload)

    try:
        shops = await list_shops(
            credentials.store_url,
            credentials.access_token,
            client=_client(credentials, settings),
        )
    except ShopifyAPIError as e:
        capture_exception(e, extra={"user_id": str(current_user.id), "store": credentials.store_url})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return schemas.ShopsResponse(success=True, shops=shops)


@router.get("/sync-status", response_model=schemas.SyncStatusResponse)
def get_sync_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> schemas.SyncStatusResponse:
    """Latest product sync state; empty when the user has never synced."""
    state = get_sync_state(db, current_user.id)
    if not state:
        return schemas.SyncStatusResponse()
    return schemas.SyncStatusResponse.model_validate(state)
