"""Venue configuration routes."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from cafe_api.core.rate_limit import limiter
from cafe_api.core.rbac import RequireAdmin
from cafe_api.db.session import DbSession
from cafe_api.models.venue import VenueConfig
from cafe_api.schemas.venue import (
    LocationCheckRequest,
    LocationCheckResponse,
    VenuePublic,
    VenueUpdate,
)
from cafe_api.services.venue_service import VenueService

logger = logging.getLogger(__name__)

router = APIRouter()


def _public(config: VenueConfig) -> VenuePublic:
    return VenuePublic(
        name=config.name,
        latitude=config.latitude,
        longitude=config.longitude,
        radius_meters=config.radius_meters,
        address=config.address,
        configured=config.is_configured,
    )


@router.get("/public", response_model=VenuePublic)
@limiter.limit("60/minute")
def get_public_venue(request: Request, db: DbSession):
    """Geofence centre and radius for customer devices."""
    return _public(VenueService(db).get_config())


@router.put("", response_model=VenuePublic)
def update_venue(body: VenueUpdate, current_staff: RequireAdmin, db: DbSession):
    """Update venue name, location or radius (admin only)."""
    config = VenueService(db).update_config(**body.model_dump(exclude_unset=True))
    logger.info(f"Venue updated by {current_staff.email} (ID: {current_staff.staff_id})")
    return _public(config)


@router.post("/validate-location", response_model=LocationCheckResponse)
@limiter.limit("30/minute")
def validate_location(request: Request, body: LocationCheckRequest, db: DbSession):
    """Server-side distance check against the venue fence."""
    result = VenueService(db).validate_location(body.latitude, body.longitude)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cafe location is not configured",
        )
    return result
