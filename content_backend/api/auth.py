from __future__ import annotations

import os
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from time import monotonic
from typing import Any, Deque, Dict, Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .content_models import User
from .db import get_db
from .settings import env_flag, read_int_env

SESSION_COOKIE = "access_token"
_SAMESITE_VALUES = ("lax", "strict", "none")

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(raw_password: str) -> str:
    return _pwd_context.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    return _pwd_context.verify(raw_password, hashed_password)


@dataclass(frozen=True)
class AuthSettings:
    secret: str
    algorithm: str
    ttl_minutes: int
    cookie_secure: bool
    cookie_samesite: str


def get_auth_settings() -> AuthSettings:
    """Read token and cookie settings; a missing AUTH_JWT_SECRET is fatal."""
    secret = (os.getenv("AUTH_JWT_SECRET") or "").strip()
    if not secret:
        raise RuntimeError("AUTH_JWT_SECRET is not set.")
    samesite = (os.getenv("AUTH_COOKIE_SAMESITE") or "lax").strip().lower()
    return AuthSettings(
        secret=secret,
        algorithm=(os.getenv("AUTH_JWT_ALGORITHM") or "HS256").strip(),
        ttl_minutes=max(read_int_env("AUTH_ACCESS_TOKEN_TTL_MINUTES", 720), 15),
        cookie_secure=env_flag("AUTH_COOKIE_SECURE", False),
        cookie_samesite=samesite if samesite in _SAMESITE_VALUES else "lax",
    )


def issue_access_token(user: User, settings: Optional[AuthSettings] = None) -> str:
    settings = settings or get_auth_settings()
    issued_at = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": str(user.id),
        "email": (user.email or "").strip().lower(),
        "role": (user.role or "").strip().lower(),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(minutes=settings.ttl_minutes)).timestamp()),
    }
    return jwt.encode(claims, settings.secret, algorithm=settings.algorithm)


def session_cookie_options(settings: AuthSettings) -> Dict[str, Any]:
    return {
        "max_age": settings.ttl_minutes * 60,
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "path": "/",
    }


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _bearer_value(raw: Optional[str]) -> Optional[str]:
    value = (raw or "").strip()
    scheme, _, token = value.partition(" ")
    if scheme.lower() == "bearer":
        value = token.strip()
    return value or None


def token_from_request(request: Request) -> Optional[str]:
    """Authorization header first, then the session cookie."""
    header = (request.headers.get("authorization") or "").strip()
    if header.lower().startswith("bearer "):
        token = _bearer_value(header)
        if token:
            return token
    return _bearer_value(request.cookies.get(SESSION_COOKIE))


def _subject_id(token: str) -> UUID:
    settings = get_auth_settings()
    try:
        claims = jwt.decode(token, settings.secret, algorithms=[settings.algorithm])
        return UUID(str(claims["sub"]))
    except (jwt.PyJWTError, KeyError, ValueError) as exc:
        raise _unauthorized("Invalid authentication token.") from exc


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = token_from_request(request)
    if not token:
        raise _unauthorized("Authentication required.")
    user = db.get(User, _subject_id(token))
    if user is None or not user.is_active:
        raise _unauthorized("Account is not active.")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required.")
    return current_user


class LoginThrottle:
    """Sliding-window counter of failed logins keyed by ``ip:email``."""

    def __init__(self) -> None:
        self._failures: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()

    @staticmethod
    def window_seconds() -> int:
        return max(read_int_env("AUTH_LOGIN_RATE_LIMIT_WINDOW_SECONDS", 300), 30)

    @staticmethod
    def max_attempts() -> int:
        return max(read_int_env("AUTH_LOGIN_RATE_LIMIT_MAX_ATTEMPTS", 8), 1)

    def _recent(self, key: str, now: float) -> Deque[float]:
        failures = self._failures[key]
        horizon = now - self.window_seconds()
        while failures and failures[0] < horizon:
            failures.popleft()
        return failures

    def check(self, key: str) -> None:
        with self._lock:
            if len(self._recent(key, monotonic())) >= self.max_attempts():
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Too many login attempts. Try again later.",
                )

    def record_failure(self, key: str) -> None:
        now = monotonic()
        with self._lock:
            self._recent(key, now).append(now)

    def reset(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)
