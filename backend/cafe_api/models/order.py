"""Customer order model and its lifecycle enums."""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, DateTime, Enum, Integer, Numeric, String, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, validates

from cafe_api.db.base import Base, utcnow
from cafe_api.models.validators import non_negative, order_lines, positive


class OrderStatus(str, enum.Enum):
    """Order status."""

    PENDING = "pending"
    PREPARING = "preparing"
    COMPLETED = "completed"
    PAID = "paid"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.PAID, OrderStatus.CANCELLED)


class OrderEvent(str, enum.Enum):
    """Staff-driven events that move an order between statuses."""

    START_PREPARING = "start_preparing"
    MARK_COMPLETE = "mark_complete"
    MARK_PAID = "mark_paid"
    CANCEL = "cancel"


# (from, event) -> to
TRANSITIONS: dict[tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (OrderStatus.PENDING, OrderEvent.START_PREPARING): OrderStatus.PREPARING,
    (OrderStatus.PREPARING, OrderEvent.MARK_COMPLETE): OrderStatus.COMPLETED,
    (OrderStatus.COMPLETED, OrderEvent.MARK_PAID): OrderStatus.PAID,
    (OrderStatus.PENDING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.PREPARING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
}

# Milestone column stamped when an order enters a status
MILESTONE_COLUMNS = {
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.PAID: "paid_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def next_status(current: OrderStatus, event: OrderEvent) -> Optional[OrderStatus]:
    """Target status for ``event`` from ``current``, or None if not allowed."""
    return TRANSITIONS.get((current, event))


class Order(Base):
    """An order placed from a table. Never deleted; paid/cancelled are kept as history."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    table_number: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), index=True, nullable=False)

    # Snapshot of each line at order time: menu_item_id, name, price, quantity,
    # special_instructions, line_total
    items: Mapped[list] = mapped_column(JSON, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus), default=OrderStatus.PENDING, index=True, nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True, nullable=False,
    )
    status_changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False,
    )
    preparing_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    last_actor_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("staff_accounts.id"), nullable=True,
    )

    @validates("total")
    def _validate_total(self, key, value):
        return non_negative(key, value)

    @validates("table_number")
    def _validate_table_number(self, key, value):
        return positive(key, value)

    @validates("items")
    def _validate_items(self, key, value):
        return order_lines(key, value)

    @property
    def item_count(self) -> int:
        return sum(int(line.get("quantity", 0)) for line in self.items or [])
