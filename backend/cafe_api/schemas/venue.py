"""Venue configuration schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from cafe_api.core.config import settings


class VenuePublic(BaseModel):
    """What a customer device needs to run the geofence gate."""

    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_meters: int
    address: str = ""
    configured: bool

    model_config = {"from_attributes": True}


class VenueUpdate(BaseModel):
    """Venue configuration update schema."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_meters: Optional[int] = Field(
        default=None, ge=settings.min_radius_meters, le=settings.max_radius_meters,
    )
    address: Optional[str] = Field(default=None, max_length=300)

    @model_validator(mode="after")
    def coordinates_together(self):
        """A centre is only meaningful with both coordinates."""
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be set together")
        return self


class LocationCheckRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class LocationCheckResponse(BaseModel):
    is_valid: bool
    distance_meters: float
    radius_meters: int
    message: str

    model_config = {"from_attributes": True}
