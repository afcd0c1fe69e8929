#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.orm import Session

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from content_backend.api.auth import hash_password  # noqa: E402
from content_backend.api.content_models import User, utcnow  # noqa: E402
from content_backend.api.db import get_sessionmaker  # noqa: E402

MIN_PASSWORD_LENGTH = 8


def upsert_admin(
    session: Session,
    *,
    email: str,
    password: str,
    full_name: Optional[str] = None,
    reset_password: bool = False,
) -> str:
    """Create the admin account, or promote and reactivate an existing one."""
    normalized_email = email.strip().lower()
    user = session.query(User).filter(User.email == normalized_email).first()

    if user is None:
        session.add(
            User(
                email=normalized_email,
                full_name=full_name,
                password_hash=hash_password(password),
                role="admin",
                is_active=True,
            )
        )
        session.commit()
        return f"admin.created email={normalized_email}"

    updates = []
    if user.role != "admin":
        user.role = "admin"
        updates.append("role")
    if not user.is_active:
        user.is_active = True
        updates.append("is_active")
    if full_name and user.full_name != full_name:
        user.full_name = full_name
        updates.append("full_name")
    if reset_password:
        user.password_hash = hash_password(password)
        updates.append("password")

    if not updates:
        return f"admin.unchanged email={normalized_email}"
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    return f"admin.updated email={normalized_email} fields={','.join(updates)}"


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Create or update an admin account for the content pipeline API.")
    parser.add_argument("--email", required=True, help="Admin email.")
    parser.add_argument("--password", required=True, help="Admin password.")
    parser.add_argument("--full-name", default=None, help="Display name for the account.")
    parser.add_argument(
        "--reset-password",
        action="store_true",
        help="Replace the stored password hash when the account already exists.",
    )
    args = parser.parse_args(argv)

    email = args.email.strip()
    if not email:
        parser.error("--email must not be empty.")
    password = args.password.strip()
    if len(password) < MIN_PASSWORD_LENGTH:
        parser.error(f"--password must be at least {MIN_PASSWORD_LENGTH} characters.")

    load_dotenv()
    session = get_sessionmaker()()
    try:
        print(
            upsert_admin(
                session,
                email=email,
                password=password,
                full_name=(args.full_name or "").strip() or None,
                reset_password=args.reset_password,
            )
        )
        return 0
    finally:
        session.close()


if __name__ == "__main__":
    raise SystemExit(main())
