"""Pytest configuration and fixtures."""

import os

# Settings are read once at import time; point them at throwaway values first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

from decimal import Decimal
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cafe_api.core.security import get_password_hash
from cafe_api.db.base import Base
from cafe_api.db.session import get_db
from cafe_api.main import app
# Import all models to ensure they're registered with Base.metadata
from cafe_api.models import MenuItem, StaffAccount, StaffRole, Table, VenueConfig
from cafe_api.services.order_service import OrderLifecycleService
from cafe_api.services.session_service import SessionManager, StaffIdentity

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_PASSWORD = "testpass123"
TEST_CLIENT_IP = "testclient"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiters during tests to avoid flaky failures
    from cafe_api.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


# ============== Staff ==============

@pytest.fixture
def make_staff(db_session: Session) -> Callable[..., StaffAccount]:
    """Factory for staff accounts; all share TEST_PASSWORD unless given one."""
    def _make(
        role: StaffRole = StaffRole.STAFF,
        email: str = None,
        password: str = TEST_PASSWORD,
        is_active: bool = True,
        is_email_verified: bool = True,
    ) -> StaffAccount:
        staff = StaffAccount(
            email=email or f"{role.value}@example.com",
            password_hash=get_password_hash(password),
            name=f"Test {role.value.title()}",
            role=role,
            is_active=is_active,
            is_email_verified=is_email_verified,
        )
        db_session.add(staff)
        db_session.commit()
        db_session.refresh(staff)
        return staff

    return _make


@pytest.fixture
def admin(make_staff) -> StaffAccount:
    return make_staff(StaffRole.ADMIN)


@pytest.fixture
def chef(make_staff) -> StaffAccount:
    return make_staff(StaffRole.CHEF)


@pytest.fixture
def waiter(make_staff) -> StaffAccount:
    return make_staff(StaffRole.STAFF)


@pytest.fixture
def login_headers(db_session: Session) -> Callable[[StaffAccount], dict]:
    """Log a staff member in through the session manager and return auth headers."""
    def _login(staff: StaffAccount) -> dict:
        pair = SessionManager(db_session).login(staff.email, TEST_PASSWORD, ip_address="fixture")
        return {"Authorization": f"Bearer {pair.access_token}"}

    return _login


@pytest.fixture
def admin_headers(admin, login_headers) -> dict:
    return login_headers(admin)


@pytest.fixture
def chef_headers(chef, login_headers) -> dict:
    return login_headers(chef)


@pytest.fixture
def staff_headers(waiter, login_headers) -> dict:
    return login_headers(waiter)


def identity_for(staff: StaffAccount, session_id: int = 0) -> StaffIdentity:
    return StaffIdentity(
        staff_id=staff.id,
        email=staff.email,
        name=staff.name,
        role=staff.role,
        session_id=session_id,
    )


@pytest.fixture
def admin_identity(admin) -> StaffIdentity:
    return identity_for(admin)


@pytest.fixture
def chef_identity(chef) -> StaffIdentity:
    return identity_for(chef)


@pytest.fixture
def staff_identity(waiter) -> StaffIdentity:
    return identity_for(waiter)


# ============== Venue, tables, menu ==============

@pytest.fixture
def tables(db_session: Session) -> list:
    """Tables 1-5 active, table 9 retired."""
    rows = [Table(number=n, is_active=True) for n in range(1, 6)]
    rows.append(Table(number=9, is_active=False))
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture
def menu(db_session: Session) -> dict:
    items = {
        "coffee": MenuItem(name="Cold Coffee", price=Decimal("120.00"), category="beverages"),
        "sandwich": MenuItem(name="Veg Sandwich", price=Decimal("110.50"), category="snacks"),
        "brownie": MenuItem(name="Brownie", price=Decimal("99.99"), category="desserts"),
        "sold_out": MenuItem(name="Seasonal Shake", price=Decimal("150.00"), available=False),
    }
    db_session.add_all(items.values())
    db_session.commit()
    for item in items.values():
        db_session.refresh(item)
    return items


@pytest.fixture
def configured_venue(db_session: Session) -> VenueConfig:
    venue = VenueConfig(name="Test Cafe", latitude=0.0, longitude=0.0, radius_meters=50)
    db_session.add(venue)
    db_session.commit()
    db_session.refresh(venue)
    return venue


# ============== Orders ==============

@pytest.fixture
def orders(db_session: Session) -> OrderLifecycleService:
    return OrderLifecycleService(db_session)


@pytest.fixture
def place_order(orders, tables, menu) -> Callable:
    """Place a small valid order, overridable per call."""
    def _place(table_number: int = 1, phone: str = "9876543210", items=None, **kwargs):
        if items is None:
            items = [
                {"menu_item_id": menu["coffee"].id, "quantity": 2},
                {"menu_item_id": menu["sandwich"].id, "quantity": 1},
            ]
        return orders.place_order(
            table_number=table_number,
            customer_name=kwargs.pop("customer_name", "Asha"),
            customer_phone=phone,
            items=items,
            **kwargs,
        )

    return _place
