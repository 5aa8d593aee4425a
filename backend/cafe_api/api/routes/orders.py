"""Order routes.

Placement, table verification and the customer's own lookup are public (the
customer device gates them behind the venue geofence). Everything else needs
a staff session; the lifecycle service decides which role may fire which
event.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from cafe_api.core.rate_limit import limiter
from cafe_api.core.rbac import CurrentStaff
from cafe_api.core.responses import list_response
from cafe_api.db.session import DbSession
from cafe_api.models.order import OrderEvent, OrderStatus
from cafe_api.schemas.order import (
    CancelRequest,
    CustomerOrderListResponse,
    CustomerOrderResponse,
    DailyStatsResponse,
    OrderCreate,
    OrderHistoryResponse,
    OrderListResponse,
    OrderResponse,
    TableVerification,
    TransitionRequest,
)
from cafe_api.services.order_service import OrderLifecycleService, business_day_bounds

router = APIRouter()


def _staff_view(orders) -> list:
    return [OrderResponse.model_validate(o) for o in orders]


# ===== Public (customer) =====

@router.post("", response_model=CustomerOrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def place_order(request: Request, body: OrderCreate, db: DbSession):
    """Place an order from a table. Prices come from the menu, not the client."""
    order = OrderLifecycleService(db).place_order(
        table_number=body.table_number,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        items=[line.model_dump() for line in body.items],
        notes=body.notes,
    )
    return order


@router.get("/verify-table/{table_number}", response_model=TableVerification)
@limiter.limit("60/minute")
def verify_table(request: Request, table_number: int, db: DbSession):
    """Check that a scanned table exists and is active."""
    table = OrderLifecycleService(db).verify_table(table_number)
    return TableVerification(table_number=table.number)


@router.get("/table/{table_number}", response_model=CustomerOrderListResponse)
@limiter.limit("30/minute")
def table_orders(
    request: Request,
    table_number: int,
    db: DbSession,
    phone: str = Query(..., min_length=1, max_length=20),
):
    """Today's orders for a table, matched on the customer's phone number."""
    orders = OrderLifecycleService(db).table_orders(table_number, phone)
    return list_response([CustomerOrderResponse.model_validate(o) for o in orders])


# ===== Staff: read side =====

@router.get("", response_model=OrderListResponse)
def list_orders(
    current_staff: CurrentStaff,
    db: DbSession,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    table_number: Optional[int] = Query(None, ge=1),
    start: Optional[date] = Query(None, description="First business day, inclusive"),
    end: Optional[date] = Query(None, description="Last business day, inclusive"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """List orders, newest first."""
    start_at = business_day_bounds(start)[0] if start else None
    end_at = business_day_bounds(end)[1] if end else None
    orders, total = OrderLifecycleService(db).list_orders(
        status=status_filter,
        table_number=table_number,
        start=start_at,
        end=end_at,
        limit=limit,
        offset=offset,
    )
    return list_response(_staff_view(orders), total=total)


@router.get("/today", response_model=OrderListResponse)
def todays_orders(
    current_staff: CurrentStaff,
    db: DbSession,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
):
    return list_response(_staff_view(OrderLifecycleService(db).todays_orders(status_filter)))


@router.get("/pending", response_model=OrderListResponse)
def pending_queue(current_staff: CurrentStaff, db: DbSession):
    """Kitchen queue, oldest first."""
    return list_response(_staff_view(OrderLifecycleService(db).pending_queue()))


@router.get("/completed", response_model=OrderListResponse)
def completed_unpaid(current_staff: CurrentStaff, db: DbSession):
    """Orders served but not yet paid."""
    return list_response(_staff_view(OrderLifecycleService(db).completed_unpaid()))


@router.get("/history", response_model=OrderHistoryResponse)
def order_history(
    current_staff: CurrentStaff,
    db: DbSession,
    day: Optional[date] = Query(None, alias="date"),
):
    """Paid and cancelled orders with the day's earnings."""
    history = OrderLifecycleService(db).history(day)
    return list_response(_staff_view(history.orders), earnings=history.earnings)


@router.get("/stats", response_model=DailyStatsResponse)
def todays_stats(current_staff: CurrentStaff, db: DbSession):
    stats = OrderLifecycleService(db).todays_stats()
    return DailyStatsResponse(
        day=stats.day.isoformat(),
        total_orders=stats.total_orders,
        by_status=stats.by_status,
        earnings=stats.earnings,
        outstanding_amount=stats.outstanding_amount,
    )


@router.get("/number/{order_number}", response_model=OrderResponse)
def get_order_by_number(order_number: str, current_staff: CurrentStaff, db: DbSession):
    return OrderLifecycleService(db).get_order_by_number(order_number)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, current_staff: CurrentStaff, db: DbSession):
    return OrderLifecycleService(db).get_order(order_id)


# ===== Staff: lifecycle =====

@router.post("/{order_id}/start", response_model=OrderResponse)
def start_preparing(
    order_id: int,
    current_staff: CurrentStaff,
    db: DbSession,
    expected_status: Optional[OrderStatus] = None,
):
    """pending -> preparing."""
    return OrderLifecycleService(db).transition(
        order_id, OrderEvent.START_PREPARING, current_staff, expected_status=expected_status,
    )


@router.post("/{order_id}/complete", response_model=OrderResponse)
def mark_complete(
    order_id: int,
    current_staff: CurrentStaff,
    db: DbSession,
    expected_status: Optional[OrderStatus] = None,
):
    """preparing -> completed."""
    return OrderLifecycleService(db).transition(
        order_id, OrderEvent.MARK_COMPLETE, current_staff, expected_status=expected_status,
    )


@router.post("/{order_id}/paid", response_model=OrderResponse)
def mark_paid(
    order_id: int,
    current_staff: CurrentStaff,
    db: DbSession,
    expected_status: Optional[OrderStatus] = None,
):
    """completed -> paid. Payment itself happens at the counter."""
    return OrderLifecycleService(db).transition(
        order_id, OrderEvent.MARK_PAID, current_staff, expected_status=expected_status,
    )


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    current_staff: CurrentStaff,
    db: DbSession,
    body: Optional[CancelRequest] = None,
    expected_status: Optional[OrderStatus] = None,
):
    """pending/preparing -> cancelled."""
    return OrderLifecycleService(db).cancel_order(
        order_id,
        current_staff,
        reason=body.reason if body else None,
        expected_status=expected_status,
    )


@router.post("/{order_id}/transition", response_model=OrderResponse)
def transition_order(
    order_id: int,
    body: TransitionRequest,
    current_staff: CurrentStaff,
    db: DbSession,
):
    """Fire any lifecycle event by name."""
    return OrderLifecycleService(db).transition(
        order_id,
        body.event,
        current_staff,
        expected_status=body.expected_status,
        reason=body.reason,
    )
