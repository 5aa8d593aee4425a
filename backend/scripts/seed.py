#!/usr/bin/env python3
"""
Seed a development database with tables, a small menu and one account per role.

Usage:
    python scripts/seed.py
    python scripts/seed.py --tables 12 --lat 19.0760 --lng 72.8777 --radius 75

Existing rows are left alone, so the script can be run repeatedly.
"""

import argparse
import sys
from decimal import Decimal
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cafe_api.core.security import get_password_hash
from cafe_api.db.base import Base
from cafe_api.db.session import SessionLocal, engine, ensure_sqlite_directory
from cafe_api.models import MenuItem, StaffAccount, StaffRole, Table
from cafe_api.services.venue_service import VenueService

MENU = [
    ("Masala Chai", "40.00", "beverages"),
    ("Cold Coffee", "120.00", "beverages"),
    ("Cappuccino", "140.00", "beverages"),
    ("Veg Sandwich", "110.00", "snacks"),
    ("Paneer Wrap", "160.00", "snacks"),
    ("French Fries", "90.00", "snacks"),
    ("Chocolate Brownie", "130.00", "desserts"),
]

STAFF = [
    ("admin@cafe.local", "Admin@123456", "Cafe Admin", StaffRole.ADMIN),
    ("chef@cafe.local", "Chef@123456", "Head Chef", StaffRole.CHEF),
    ("staff@cafe.local", "Staff@123456", "Floor Staff", StaffRole.STAFF),
]


def seed(table_count: int, lat=None, lng=None, radius=None) -> None:
    ensure_sqlite_directory()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        existing_tables = {n for (n,) in db.query(Table.number).all()}
        for number in range(1, table_count + 1):
            if number not in existing_tables:
                db.add(Table(number=number, is_active=True))

        existing_items = {n for (n,) in db.query(MenuItem.name).all()}
        for name, price, category in MENU:
            if name not in existing_items:
                db.add(MenuItem(name=name, price=Decimal(price), category=category, available=True))

        existing_staff = {e for (e,) in db.query(StaffAccount.email).all()}
        for email, password, name, role in STAFF:
            if email not in existing_staff:
                db.add(StaffAccount(
                    email=email,
                    password_hash=get_password_hash(password),
                    name=name,
                    role=role,
                    is_active=True,
                    is_email_verified=True,
                ))
        db.commit()

        if lat is not None and lng is not None:
            VenueService(db).update_config(latitude=lat, longitude=lng, radius_meters=radius)

        print(f"Seeded {table_count} tables, {len(MENU)} menu items, {len(STAFF)} staff accounts")
        for email, password, _, role in STAFF:
            print(f"  {role.value:<6} {email} / {password}")
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Seed development data")
    parser.add_argument("--tables", type=int, default=10)
    parser.add_argument("--lat", type=float, help="Venue latitude")
    parser.add_argument("--lng", type=float, help="Venue longitude")
    parser.add_argument("--radius", type=int, help="Geofence radius in meters")
    args = parser.parse_args()

    if (args.lat is None) != (args.lng is None):
        parser.error("--lat and --lng must be given together")
    seed(args.tables, args.lat, args.lng, args.radius)


if __name__ == "__main__":
    main()
