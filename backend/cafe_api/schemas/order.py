"""Order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from cafe_api.db.base import as_utc
from cafe_api.models.order import OrderEvent, OrderStatus


class OrderLineCreate(BaseModel):
    """One requested line. Quantity is checked by the order service."""

    menu_item_id: int
    quantity: int
    special_instructions: Optional[str] = Field(default=None, max_length=200)


class OrderCreate(BaseModel):
    """Customer order placement body.

    ``total`` is accepted for compatibility with older clients and ignored;
    the server always prices from the catalog.
    """

    model_config = {"str_strip_whitespace": True}

    table_number: int = Field(..., ge=1)
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_phone: str = Field(..., min_length=1, max_length=20)
    items: List[OrderLineCreate] = []
    notes: Optional[str] = Field(default=None, max_length=500)
    total: Optional[Decimal] = None


class OrderLineResponse(BaseModel):
    menu_item_id: int
    name: str
    price: Decimal
    quantity: int
    special_instructions: str = ""
    line_total: Decimal


class OrderResponse(BaseModel):
    """Order as seen by staff."""

    id: int
    order_number: str
    table_number: int
    customer_name: str
    customer_phone: str
    items: List[OrderLineResponse]
    total: Decimal
    notes: str = ""
    status: OrderStatus
    created_at: datetime
    status_changed_at: datetime
    preparing_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    last_actor_id: Optional[int] = None

    model_config = {"from_attributes": True}

    @field_validator(
        "created_at", "status_changed_at", "preparing_at",
        "completed_at", "paid_at", "cancelled_at",
    )
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class CustomerOrderResponse(BaseModel):
    """Order as seen by the customer who placed it."""

    id: int
    order_number: str
    table_number: int
    customer_name: str
    items: List[OrderLineResponse]
    total: Decimal
    notes: str = ""
    status: OrderStatus
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class TransitionRequest(BaseModel):
    event: OrderEvent
    expected_status: Optional[OrderStatus] = None
    reason: Optional[str] = Field(default=None, max_length=255)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class TableVerification(BaseModel):
    table_number: int
    valid: bool = True


class OrderHistoryResponse(BaseModel):
    items: List[OrderResponse]
    total: int
    earnings: Decimal


class DailyStatsResponse(BaseModel):
    """Today's figures for the staff dashboard."""

    day: str
    total_orders: int
    by_status: Dict[str, int]
    earnings: Decimal
    outstanding_amount: Decimal


class OrderListResponse(BaseModel):
    items: List[OrderResponse]
    total: int


class CustomerOrderListResponse(BaseModel):
    items: List[CustomerOrderResponse]
    total: int
