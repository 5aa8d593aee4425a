"""Venue configuration, tables and the menu catalog.

Tables and menu items are maintained elsewhere; ordering only reads them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Float, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from cafe_api.db.base import Base, TimestampMixin
from cafe_api.models.validators import non_negative, positive


class VenueConfig(Base, TimestampMixin):
    """Single-row cafe configuration. Unconfigured until a centre is set."""

    __tablename__ = "venue_config"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), default="Cafe", nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    radius_meters: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    address: Mapped[str] = mapped_column(Text, default="", nullable=False)

    @property
    def is_configured(self) -> bool:
        return self.latitude is not None and self.longitude is not None and self.radius_meters > 0


class Table(Base, TimestampMixin):
    """A physical table customers order from."""

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    number: Mapped[int] = mapped_column(Integer, unique=True, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("number")
    def _validate_number(self, key, value):
        return positive(key, value)


class MenuItem(Base, TimestampMixin):
    """Catalog entry. Prices here are the only source for order totals."""

    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(50), default="other", nullable=False)
    available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("price")
    def _validate_price(self, key, value):
        return non_negative(key, value)
