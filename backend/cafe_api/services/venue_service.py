"""Venue configuration and server-side location checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from cafe_api.core.config import settings
from cafe_api.core.geo import within_radius
from cafe_api.models.venue import VenueConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationCheck:
    is_valid: bool
    distance_meters: float
    radius_meters: int
    message: str


class VenueService:
    """Reads and updates the single venue configuration row."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_config(self) -> VenueConfig:
        """The venue row, created unconfigured on first access."""
        config = self.db.query(VenueConfig).order_by(VenueConfig.id).first()
        if config is None:
            config = VenueConfig(radius_meters=settings.default_radius_meters)
            self.db.add(config)
            self.db.commit()
            self.db.refresh(config)
            logger.info("Created default venue configuration (no location set)")
        return config

    def update_config(
        self,
        name: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius_meters: Optional[int] = None,
        address: Optional[str] = None,
    ) -> VenueConfig:
        """Partial update. Coordinates and radius are validated by the schema layer."""
        config = self.get_config()
        if name is not None:
            config.name = name
        if latitude is not None:
            config.latitude = latitude
        if longitude is not None:
            config.longitude = longitude
        if radius_meters is not None:
            config.radius_meters = radius_meters
        if address is not None:
            config.address = address
        self.db.commit()
        self.db.refresh(config)
        logger.info(
            f"Venue configuration updated: centre=({config.latitude}, {config.longitude}) "
            f"radius={config.radius_meters}m"
        )
        return config

    def validate_location(self, latitude: float, longitude: float) -> Optional[LocationCheck]:
        """Check a device position against the fence. None while unconfigured."""
        config = self.get_config()
        if not config.is_configured:
            return None
        inside, distance = within_radius(
            latitude, longitude, config.latitude, config.longitude, config.radius_meters,
        )
        distance = round(distance)
        if inside:
            message = "Location verified successfully"
        else:
            message = (
                f"You are {distance}m away from the cafe. "
                f"Please come within {config.radius_meters}m to view the menu."
            )
        return LocationCheck(
            is_valid=inside,
            distance_meters=distance,
            radius_meters=config.radius_meters,
            message=message,
        )
