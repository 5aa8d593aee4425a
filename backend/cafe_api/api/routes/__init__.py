"""API routes."""

from fastapi import APIRouter

from cafe_api.api.routes import auth, orders, venue

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(venue.router, prefix="/venue", tags=["venue"])
