"""Order lifecycle engine.

Customers place orders from a verified table; staff then drive each order
through ``pending -> preparing -> completed -> paid`` (or cancel it early).
Several staff devices may act on the same order at once, so every transition
is a compare-and-set: the UPDATE only matches while the order is still in the
status the transition was decided from. Losing that race raises
``StaleOrderState`` and leaves the order untouched.

"Today" always means the current business day in ``settings.timezone``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cafe_api.core.config import settings
from cafe_api.core.errors import (
    EmptyOrder,
    Forbidden,
    InvalidPhone,
    InvalidQuantity,
    InvalidTransition,
    MenuItemUnavailable,
    OrderNotFound,
    StaleOrderState,
    TableNotFound,
)
from cafe_api.core.rbac_policy import can_perform
from cafe_api.db.base import utcnow
from cafe_api.models.order import (
    MILESTONE_COLUMNS,
    Order,
    OrderEvent,
    OrderStatus,
    next_status,
)
from cafe_api.models.venue import MenuItem, Table
from cafe_api.services.session_service import StaffIdentity

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10
ORDER_NUMBER_ATTEMPTS = 3
CENTS = Decimal("0.01")

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: Optional[str]) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", phone or "")


def business_day(now: Optional[datetime] = None) -> date:
    """Calendar date of ``now`` in the cafe's timezone."""
    return (now or utcnow()).astimezone(ZoneInfo(settings.timezone)).date()


def business_day_bounds(day: date) -> Tuple[datetime, datetime]:
    """UTC [start, end) of a business day."""
    tz = ZoneInfo(settings.timezone)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


@dataclass
class OrderHistory:
    orders: List[Order]
    earnings: Decimal


@dataclass
class DailyStats:
    """Aggregate figures for one business day."""

    day: date
    total_orders: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    earnings: Decimal = Decimal("0.00")
    outstanding_amount: Decimal = Decimal("0.00")


class OrderLifecycleService:
    """Order placement, staff transitions and the read-side partitions."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def verify_table(self, table_number: int) -> Table:
        table = (
            self.db.query(Table)
            .filter(Table.number == table_number, Table.is_active == True)  # noqa: E712
            .first()
        )
        if table is None:
            raise TableNotFound(table_number)
        return table

    def place_order(
        self,
        table_number: int,
        customer_name: str,
        customer_phone: str,
        items: Iterable[Mapping[str, Any]],
        notes: Optional[str] = None,
    ) -> Order:
        """Create a pending order, pricing every line from the catalog.

        ``items`` are ``{"menu_item_id", "quantity", "special_instructions"}``
        mappings. Any client-side price or total is never read.
        """
        self.verify_table(table_number)

        items = list(items)
        if not items:
            raise EmptyOrder()

        lines = self._price_lines(items)

        phone = normalize_phone(customer_phone)
        if len(phone) < MIN_PHONE_DIGITS:
            raise InvalidPhone()

        total = sum((Decimal(line["line_total"]) for line in lines), Decimal("0.00"))

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            now = self.clock()
            order = Order(
                order_number=self._next_order_number(now),
                table_number=table_number,
                customer_name=customer_name.strip(),
                customer_phone=phone,
                items=lines,
                total=total.quantize(CENTS),
                notes=(notes or "").strip(),
                status=OrderStatus.PENDING,
                created_at=now,
                status_changed_at=now,
            )
            self.db.add(order)
            try:
                self.db.commit()
            except IntegrityError:
                # Another order took this number first
                self.db.rollback()
                logger.warning(f"Order number collision on attempt {attempt} for table {table_number}")
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise
                continue
            self.db.refresh(order)
            logger.info(
                f"Order placed: {order.order_number} (ID: {order.id}) table {table_number}, "
                f"{order.item_count} item(s), total {order.total}"
            )
            return order

    def _price_lines(self, items: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        ids = set()
        for raw in items:
            quantity = raw.get("quantity")
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise InvalidQuantity(raw.get("menu_item_id"), quantity)
            ids.add(raw.get("menu_item_id"))

        catalog = {
            item.id: item
            for item in self.db.query(MenuItem).filter(MenuItem.id.in_(ids)).all()
        }

        lines = []
        for raw in items:
            menu_item_id = raw.get("menu_item_id")
            item = catalog.get(menu_item_id)
            if item is None:
                raise MenuItemUnavailable(menu_item_id)
            if not item.available:
                raise MenuItemUnavailable(menu_item_id, item.name)
            price = Decimal(item.price).quantize(CENTS)
            quantity = raw["quantity"]
            lines.append({
                "menu_item_id": item.id,
                "name": item.name,
                "price": str(price),
                "quantity": quantity,
                "special_instructions": (raw.get("special_instructions") or "").strip(),
                "line_total": str((price * quantity).quantize(CENTS, rounding=ROUND_HALF_UP)),
            })
        return lines

    def _next_order_number(self, now: datetime) -> str:
        day = business_day(now)
        start, end = business_day_bounds(day)
        count = (
            self.db.query(func.count(Order.id))
            .filter(Order.created_at >= start, Order.created_at < end)
            .scalar()
        ) or 0
        return f"ORD-{day:%Y%m%d}-{count + 1:04d}"

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        order_id: int,
        event: OrderEvent,
        actor: StaffIdentity,
        expected_status: Optional[OrderStatus] = None,
        reason: Optional[str] = None,
    ) -> Order:
        """Apply a staff event to an order.

        Raises OrderNotFound, StaleOrderState (the caller's view is out of
        date), InvalidTransition (event not legal from the current status) or
        Forbidden (the actor's role may not fire it). The status write is a
        single conditional UPDATE.
        """
        event = OrderEvent(event)
        order = self.db.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)

        current = order.status
        if expected_status is not None and OrderStatus(expected_status) != current:
            raise StaleOrderState(current.value, event.value, OrderStatus(expected_status).value)

        target = next_status(current, event)
        if target is None:
            raise InvalidTransition(current.value, event.value)

        if not can_perform(actor.role, event, current):
            logger.warning(
                f"Transition refused: {actor.email} (role: {actor.role.value}) "
                f"tried {event.value} on order {order.id} ({current.value})"
            )
            raise Forbidden(actor.role.value, f"{event.value} an order that is {current.value}")

        now = self.clock()
        values: Dict[str, Any] = {
            "status": target,
            "status_changed_at": now,
            "last_actor_id": actor.staff_id,
            MILESTONE_COLUMNS[target]: now,
        }
        if target == OrderStatus.CANCELLED:
            values["cancel_reason"] = (reason or "").strip() or None

        result = self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            # rollback expired the instance; this reloads the winner's status
            latest = self.db.get(Order, order_id)
            latest_status = latest.status.value if latest is not None else "unknown"
            logger.info(
                f"Stale transition: {event.value} on order {order_id} lost the race "
                f"({current.value} -> {latest_status})"
            )
            raise StaleOrderState(latest_status, event.value, current.value)

        self.db.commit()
        self.db.refresh(order)
        logger.info(
            f"Order {order.order_number} (ID: {order.id}): {current.value} -> {target.value} "
            f"by {actor.email} (ID: {actor.staff_id}, role: {actor.role.value})"
        )
        return order

    def cancel_order(
        self,
        order_id: int,
        actor: StaffIdentity,
        reason: Optional[str] = None,
        expected_status: Optional[OrderStatus] = None,
    ) -> Order:
        return self.transition(
            order_id, OrderEvent.CANCEL, actor,
            expected_status=expected_status, reason=reason,
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_order(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_order_by_number(self, order_number: str) -> Order:
        order = self.db.query(Order).filter(Order.order_number == order_number).first()
        if order is None:
            raise OrderNotFound(order_number)
        return order

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        table_number: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        """Filtered orders, newest first, with the unpaginated count."""
        query = self.db.query(Order)
        if status is not None:
            query = query.filter(Order.status == OrderStatus(status))
        if table_number is not None:
            query = query.filter(Order.table_number == table_number)
        if start is not None:
            query = query.filter(Order.created_at >= start)
        if end is not None:
            query = query.filter(Order.created_at < end)
        total = query.count()
        orders = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return orders, total

    def todays_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        start, end = business_day_bounds(business_day(self.clock()))
        query = self.db.query(Order).filter(Order.created_at >= start, Order.created_at < end)
        if status is not None:
            query = query.filter(Order.status == OrderStatus(status))
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    def pending_queue(self) -> List[Order]:
        """Kitchen queue: pending orders, oldest first."""
        return (
            self.db.query(Order)
            .filter(Order.status == OrderStatus.PENDING)
            .order_by(Order.created_at.asc(), Order.id.asc())
            .all()
        )

    def completed_unpaid(self) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.status == OrderStatus.COMPLETED)
            .order_by(Order.completed_at.asc(), Order.id.asc())
            .all()
        )

    def history(self, day: Optional[date] = None) -> OrderHistory:
        """Paid and cancelled orders, optionally for one business day."""
        query = self.db.query(Order).filter(
            Order.status.in_([OrderStatus.PAID, OrderStatus.CANCELLED])
        )
        if day is not None:
            start, end = business_day_bounds(day)
            query = query.filter(Order.created_at >= start, Order.created_at < end)
        orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
        earnings = sum(
            (Decimal(o.total) for o in orders if o.status == OrderStatus.PAID),
            Decimal("0.00"),
        )
        return OrderHistory(orders=orders, earnings=earnings.quantize(CENTS))

    def todays_stats(self) -> DailyStats:
        day = business_day(self.clock())
        start, end = business_day_bounds(day)
        rows = (
            self.db.query(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.total), 0))
            .filter(Order.created_at >= start, Order.created_at < end)
            .group_by(Order.status)
            .all()
        )
        stats = DailyStats(day=day, by_status={s.value: 0 for s in OrderStatus})
        outstanding = (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.COMPLETED)
        for status, count, amount in rows:
            amount = Decimal(str(amount))
            stats.by_status[status.value] = count
            stats.total_orders += count
            if status == OrderStatus.PAID:
                stats.earnings += amount
            elif status in outstanding:
                stats.outstanding_amount += amount
        stats.earnings = stats.earnings.quantize(CENTS)
        stats.outstanding_amount = stats.outstanding_amount.quantize(CENTS)
        return stats

    def table_orders(self, table_number: int, phone: str) -> List[Order]:
        """A customer's own orders at a table during the current business day."""
        digits = normalize_phone(phone)
        if not digits:
            return []
        start, end = business_day_bounds(business_day(self.clock()))
        return (
            self.db.query(Order)
            .filter(
                Order.table_number == table_number,
                Order.customer_phone == digits,
                Order.created_at >= start,
                Order.created_at < end,
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )
