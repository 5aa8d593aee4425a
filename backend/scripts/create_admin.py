#!/usr/bin/env python3
"""
Create the first admin account.

Usage:
    python scripts/create_admin.py --email admin@example.com --name "Cafe Admin"

The password is read from --password, the ADMIN_PASSWORD environment variable,
or prompted for interactively.
"""

import argparse
import getpass
import os
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cafe_api.core.security import get_password_hash
from cafe_api.db.base import Base
from cafe_api.db.session import SessionLocal, engine, ensure_sqlite_directory
from cafe_api.models import StaffAccount, StaffRole

MIN_PASSWORD_LENGTH = 8


def create_admin(email: str, password: str, name: str) -> int:
    """Insert an active, verified admin. Returns the process exit code."""
    ensure_sqlite_directory()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        existing = db.query(StaffAccount).filter(StaffAccount.email == email.strip().lower()).first()
        if existing:
            print(f"Admin already exists: {existing.email} (role: {existing.role.value})")
            return 0

        admin = StaffAccount(
            email=email,
            password_hash=get_password_hash(password),
            name=name,
            role=StaffRole.ADMIN,
            is_active=True,
            is_email_verified=True,
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)
        print(f"Admin created: {admin.email} (ID: {admin.id})")
        print("Change the password after first login.")
        return 0
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create the initial admin account")
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL", "admin@cafe.local"))
    parser.add_argument("--name", default="Cafe Admin")
    parser.add_argument("--password", default=os.environ.get("ADMIN_PASSWORD"))
    args = parser.parse_args()

    password = args.password or getpass.getpass("Admin password: ")
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"Error: password must be at least {MIN_PASSWORD_LENGTH} characters")
        sys.exit(1)

    sys.exit(create_admin(args.email, password, args.name))


if __name__ == "__main__":
    main()
