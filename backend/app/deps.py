"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, status
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .security import JWTError, decode_token
from .telemetry.sentry import set_user_context


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    # Cookie domain must NOT include protocol (https://)
    # Set to None for same-origin cookies
    COOKIE_DOMAIN: Optional[str] = None
    COOKIE_SECURE: bool = False

    # Shopify Admin GraphQL
    SHOPIFY_API_VERSION: str = "2025-01"
    SHOPIFY_MAX_RETRIES: int = 6
    SHOPIFY_REQUEST_TIMEOUT: float = 30.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def _strip_bearer(value: str) -> str:
    if value.startswith("Bearer "):
        return value[len("Bearer ") :]
    return value


def get_current_user(
    db: Session = Depends(get_db),
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
    authorization: Optional[str] = Header(default=None),
) -> User:
    """Resolve the current user from the `access_token` cookie.

    The cookie value is expected to be in the form: "Bearer <jwt>". An
    `Authorization: Bearer <jwt>` header is accepted when no cookie is sent.
    """
    raw = access_token or authorization
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        payload = decode_token(_strip_bearer(raw))
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = (
        db.query(User)
        .filter(User.email == subject)
        .first()
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    set_user_context(user_id=str(user.id), email=user.email)
    return user
