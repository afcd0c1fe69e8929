from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from ..auth import (
    SESSION_COOKIE,
    LoginThrottle,
    get_auth_settings,
    get_current_user,
    issue_access_token,
    session_cookie_options,
    verify_password,
)
from ..content_models import User
from ..content_schemas import AuthLoginIn, AuthLoginOut, AuthLogoutOut, UserOut
from ..db import get_db

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("content_backend.auth")

login_throttle = LoginThrottle()


def _client_ip(request: Request) -> str:
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    host = request.client.host if request.client else ""
    return host or "unknown"


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        is_active=user.is_active,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _reject(throttle_key: str, ip: str, email: str, reason: str, status_code: int, detail: str) -> HTTPException:
    login_throttle.record_failure(throttle_key)
    logger.warning("auth.login_failed email=%s ip=%s reason=%s", email, ip, reason)
    return HTTPException(status_code=status_code, detail=detail)


@router.post("/login", response_model=AuthLoginOut)
def login(
    payload: AuthLoginIn,
    response: Response,
    request: Request,
    db: Session = Depends(get_db),
) -> AuthLoginOut:
    ip = _client_ip(request)
    throttle_key = f"{ip}:{payload.email}"
    login_throttle.check(throttle_key)

    user = db.query(User).filter(User.email == payload.email).first()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise _reject(
            throttle_key, ip, payload.email, "invalid_credentials",
            status.HTTP_401_UNAUTHORIZED, "Invalid email or password.",
        )
    if not user.is_active:
        raise _reject(throttle_key, ip, payload.email, "inactive", status.HTTP_403_FORBIDDEN, "Account is inactive.")

    settings = get_auth_settings()
    token = issue_access_token(user, settings)
    response.set_cookie(key=SESSION_COOKIE, value=f"Bearer {token}", **session_cookie_options(settings))
    login_throttle.reset(throttle_key)
    logger.info("auth.login_succeeded user_id=%s role=%s ip=%s", user.id, user.role, ip)
    return AuthLoginOut(access_token=token, user=_user_out(user))


@router.post("/logout", response_model=AuthLogoutOut)
def logout(response: Response) -> AuthLogoutOut:
    response.delete_cookie(key=SESSION_COOKIE, path="/")
    return AuthLogoutOut()


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)) -> UserOut:
    return _user_out(current_user)
