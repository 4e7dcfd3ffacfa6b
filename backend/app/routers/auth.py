"""Authentication endpoints: register, login, me, logout."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import get_current_user, get_settings
from ..models import User, AuthCredential
from ..security import create_access_token, get_password_hash, verify_password
from ..telemetry import set_user_context, clear_user_context


logger = logging.getLogger(__name__)

COOKIE_NAME = "access_token"
COOKIE_MAX_AGE = 7 * 24 * 3600


router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Bad Request"},
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        500: {"model": schemas.ErrorResponse, "description": "Internal Server Error"},
    }
)


def _cookie_kwargs(request: Request) -> dict:
    """Cookie settings that work for both local dev and production."""
    settings = get_settings()
    cookie_kwargs = {
        "key": COOKIE_NAME,
        "httponly": True,
        "samesite": "none",
        "secure": True,
        "path": "/",
    }
    # Browsers drop SameSite=None cookies over plain HTTP
    if request.url.scheme == "http" and not settings.COOKIE_SECURE:
        cookie_kwargs["samesite"] = "lax"
        cookie_kwargs["secure"] = False
    if settings.COOKIE_DOMAIN:
        cookie_kwargs["domain"] = settings.COOKIE_DOMAIN
    return cookie_kwargs


@router.post(
    "/register",
    response_model=schemas.UserOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    responses={
        400: {
            "model": schemas.ErrorResponse,
            "description": "Email already registered",
        }
    }
)
def register_user(payload: schemas.UserCreate, db: Session = Depends(get_db)):
    """Register a new user with local credentials.

    - If email already exists, respond with 400.
    - Create `AuthCredential` storing the password hash.
    - Do not auto-login.
    """
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    user = User(email=payload.email, name=payload.name.strip() or payload.email.split("@")[0])
    db.add(user)
    db.flush()

    db.add(AuthCredential(user_id=user.id, password_hash=get_password_hash(payload.password)))
    db.commit()
    db.refresh(user)

    logger.info(f"[AUTH] Registered user {user.id}")
    return user


@router.post(
    "/login",
    response_model=schemas.LoginResponse,
    summary="Log in",
)
def login_user(
    payload: schemas.UserLogin,
    response: Response,
    request: Request,
    db: Session = Depends(get_db),
):
    """Authenticate a user and set an HTTP-only JWT cookie.

    Cookie:
    - name: access_token
    - value: "Bearer <jwt>"
    - max_age: 7 days
    """
    user = db.query(User).filter(User.email == payload.email).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    cred = db.query(AuthCredential).filter(AuthCredential.user_id == user.id).first()
    if not cred or not verify_password(payload.password, cred.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(subject=user.email)
    response.set_cookie(value=f"Bearer {token}", max_age=COOKIE_MAX_AGE, **_cookie_kwargs(request))

    set_user_context(user_id=str(user.id), email=user.email)
    return schemas.LoginResponse(user=schemas.UserOut.model_validate(user))


@router.get(
    "/me",
    response_model=schemas.UserOut,
    summary="Current user",
)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post(
    "/logout",
    response_model=schemas.SuccessResponse,
    summary="Log out",
)
def logout_user(response: Response, request: Request):
    """Clear the auth cookie by overwriting it with an expired one."""
    response.set_cookie(value="", max_age=0, **_cookie_kwargs(request))
    clear_user_context()
    return schemas.SuccessResponse(detail="logged out")
