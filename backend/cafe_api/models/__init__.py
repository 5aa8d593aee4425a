"""Database models."""

from cafe_api.models.order import Order, OrderEvent, OrderStatus
from cafe_api.models.session import LoginFailure, StaffSession
from cafe_api.models.staff import StaffAccount, StaffRole
from cafe_api.models.venue import MenuItem, Table, VenueConfig

__all__ = [
    "LoginFailure",
    "MenuItem",
    "Order",
    "OrderEvent",
    "OrderStatus",
    "StaffAccount",
    "StaffRole",
    "StaffSession",
    "Table",
    "VenueConfig",
]
