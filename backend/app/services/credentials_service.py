"""Shopify credential storage.

WHAT:
    Save and read a user's Shopify store URL and admin token, and pick the
    credentials a sync request should run with.

WHY:
    The token is encrypted at rest; only the sync path ever sees plaintext.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import UserCredential
from app.security import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)

SHOPIFY_DOMAIN_SUFFIX = ".myshopify.com"


class CredentialsError(ValueError):
    """Missing or malformed Shopify credentials."""


@dataclass
class ShopifyCredentials:
    store_url: str
    access_token: str


def get_credentials(db: Session, user_id: UUID) -> Optional[UserCredential]:
    return db.query(UserCredential).filter(UserCredential.user_id == user_id).first()


def save_credentials(db: Session, user_id: UUID, store_url: str, admin_token: str) -> UserCredential:
    """Create or update the user's Shopify credentials.

    Raises:
        CredentialsError: If a field is blank or the store URL is not a
            `*.myshopify.com` domain
    """
    store_url = (store_url or "").strip()
    admin_token = (admin_token or "").strip()

    if not store_url or not admin_token:
        raise CredentialsError("Please fill in both the store URL and the admin token")
    if SHOPIFY_DOMAIN_SUFFIX not in store_url:
        raise CredentialsError("Store URL must be in format: your-store.myshopify.com")

    encrypted = encrypt_secret(admin_token, context=f"shopify:{store_url}")

    credential = get_credentials(db, user_id)
    if credential:
        credential.shopify_store_url = store_url
        credential.shopify_admin_token_enc = encrypted
    else:
        credential = UserCredential(
            user_id=user_id,
            shopify_store_url=store_url,
            shopify_admin_token_enc=encrypted,
        )
        db.add(credential)

    db.commit()
    db.refresh(credential)
    logger.info(f"[CREDENTIALS] Saved Shopify credentials for user {user_id} ({store_url})")
    return credential


def resolve_credentials(
    db: Session,
    user_id: UUID,
    store_url: Optional[str] = None,
    access_token: Optional[str] = None,
) -> ShopifyCredentials:
    """Credentials for a sync call: explicit values first, then the stored ones.

    Raises:
        CredentialsError: If neither source provides both values
    """
    if store_url and access_token:
        return ShopifyCredentials(store_url=store_url, access_token=access_token)

    stored = get_credentials(db, user_id)
    if stored:
        token = decrypt_secret(stored.shopify_admin_token_enc, context=f"shopify:{stored.shopify_store_url}")
        return ShopifyCredentials(
            store_url=store_url or stored.shopify_store_url,
            access_token=access_token or token,
        )

    raise CredentialsError("Shopify credentials are required")
