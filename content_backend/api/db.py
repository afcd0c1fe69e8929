from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from .settings import read_int_env


def database_url() -> str:
    url = (os.getenv("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    # Heroku-style URLs still use the removed "postgres" dialect name.
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"pool_pre_ping": True}
    if make_url(url).get_backend_name() == "postgresql":
        options["pool_size"] = max(read_int_env("DATABASE_POOL_SIZE", 5), 1)
        options["max_overflow"] = max(read_int_env("DATABASE_MAX_OVERFLOW", 10), 0)
    return options


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    url = database_url()
    return create_engine(url, **_engine_options(url))


@lru_cache(maxsize=1)
def get_sessionmaker() -> sessionmaker:
    return sessionmaker(bind=get_engine(), autoflush=False)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; uncommitted work is rolled back on error."""
    session = get_sessionmaker()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
