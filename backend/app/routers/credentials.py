"""Settings endpoints for the user's Shopify credentials."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import get_current_user
from ..models import User, UserCredential
from ..services.credentials_service import CredentialsError, get_credentials, save_credentials


logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/settings",
    tags=["Settings"],
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Invalid credentials"},
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
    }
)


def _to_out(credential: UserCredential | None) -> schemas.CredentialsOut:
    if not credential:
        return schemas.CredentialsOut()
    return schemas.CredentialsOut(
        shopify_store_url=credential.shopify_store_url,
        has_token=bool(credential.shopify_admin_token_enc),
        updated_at=credential.updated_at,
    )


@router.get("/credentials", response_model=schemas.CredentialsOut)
def read_credentials(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Stored store URL and whether a token is saved. The token is never returned."""
    return _to_out(get_credentials(db, current_user.id))


@router.put("/credentials", response_model=schemas.CredentialsOut)
def update_credentials(
    payload: schemas.CredentialsIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        credential = save_credentials(
            db,
            current_user.id,
            payload.shopify_store_url,
            payload.shopify_admin_token,
        )
    except CredentialsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _to_out(credential)
