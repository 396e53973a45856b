"""Authentication API: dashboard login and session check."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlmodel import Session, select

from backend.api.deps import get_current_user
from backend.database import get_session
from backend.models.user import User
from backend.services.auth import verify_password, verify_totp, create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str
    totp_code: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeResponse(BaseModel):
    username: str
    is_active: bool


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.username == body.username)).first()

    if not user or not user.is_active or not verify_password(body.password, user.hashed_password):
        logger.warning(f"Failed login for {body.username!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    if not verify_totp(user.totp_secret, body.totp_code):
        logger.warning(f"Invalid TOTP code for {body.username!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid TOTP code",
        )

    user.last_login_at = datetime.now(timezone.utc)
    session.add(user)
    session.commit()
    logger.info(f"User {user.username!r} logged in")

    token = create_access_token(subject=user.username)
    return LoginResponse(access_token=token)


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return MeResponse(username=user.username, is_active=user.is_active)
