"""Customer-side geofence gate.

A customer device may browse the menu and order only while it is physically
at the cafe. The gate walks through these states:

    loading -> not_configured | prompt
    prompt --consent()--> checking -> granted | out_of_range | denied | error

While ``granted`` the position is silently re-measured on a timer; leaving the
radius (or failing to get a fix) ends the admission. Nothing here is cached
beyond the current gate instance.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from cafe_api.core.config import settings
from cafe_api.core.geo import distance_meters, is_valid_coordinate

logger = logging.getLogger(__name__)

CONFIG_LOAD_FAILED = "Failed to load cafe configuration"
NOT_CONFIGURED = "Location verification is not set up for this cafe yet"
PERMISSION_DENIED = "Location permission was denied. Enable it in your browser settings and retry."
GPS_TIMEOUT = "Failed to get your location. Please ensure GPS is enabled."
LOCATION_FAILED = "Something went wrong while checking your location."


class GateStatus(str, enum.Enum):
    LOADING = "loading"
    NOT_CONFIGURED = "not_configured"
    PROMPT = "prompt"
    CHECKING = "checking"
    GRANTED = "granted"
    DENIED = "denied"
    OUT_OF_RANGE = "out_of_range"
    ERROR = "error"


RETRYABLE = frozenset({
    GateStatus.OUT_OF_RANGE,
    GateStatus.ERROR,
    GateStatus.DENIED,
    GateStatus.NOT_CONFIGURED,
})


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy_meters: Optional[float] = None


@dataclass(frozen=True)
class VenueGeofence:
    """Fence published by the venue. Missing centre or radius means unconfigured."""

    latitude: Optional[float]
    longitude: Optional[float]
    radius_meters: Optional[float]
    name: str = ""

    @property
    def is_configured(self) -> bool:
        return (
            self.latitude is not None
            and self.longitude is not None
            and bool(self.radius_meters)
            and self.radius_meters > 0
            and is_valid_coordinate(self.latitude, self.longitude)
        )


@dataclass(frozen=True)
class GateState:
    status: GateStatus
    message: str = ""
    distance_meters: Optional[float] = None
    radius_meters: Optional[float] = None


class LocationError(Exception):
    """Position could not be determined."""


class LocationPermissionDenied(LocationError):
    pass


class LocationTimeout(LocationError):
    pass


class LocationUnsupported(LocationError):
    pass


class GateStateError(Exception):
    """An operation was called from a state that does not allow it."""


class LocationProvider(ABC):
    """Port to the device's positioning system."""

    @abstractmethod
    async def current_position(
        self,
        *,
        high_accuracy: bool,
        timeout: float,
        maximum_age: float,
    ) -> Position:
        """Return a fresh fix or raise a LocationError subclass."""


VenueLoader = Callable[[], Awaitable[VenueGeofence]]


class GeofenceGate:
    """Admission state machine for one customer device."""

    def __init__(
        self,
        load_venue: VenueLoader,
        locator: LocationProvider,
        recheck_interval: float = settings.geofence_recheck_seconds,
        location_timeout: float = settings.location_timeout_seconds,
        on_change: Optional[Callable[[GateState], None]] = None,
    ) -> None:
        self._load_venue = load_venue
        self._locator = locator
        self.recheck_interval = recheck_interval
        self.location_timeout = location_timeout
        self.on_change = on_change

        self._state = GateState(GateStatus.LOADING)
        self._venue: Optional[VenueGeofence] = None
        self._recheck_task: Optional[asyncio.Task] = None
        self._config_failed = False

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def status(self) -> GateStatus:
        return self._state.status

    @property
    def allows_ordering(self) -> bool:
        return self._state.status == GateStatus.GRANTED

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load(self) -> GateState:
        """Fetch the venue fence and wait for the customer's consent."""
        self._set(GateState(GateStatus.LOADING))
        try:
            venue = await self._load_venue()
        except Exception as e:
            logger.warning(f"Venue configuration load failed: {e}")
            self._config_failed = True
            return self._set(GateState(GateStatus.ERROR, CONFIG_LOAD_FAILED))

        self._config_failed = False
        self._venue = venue
        if not venue.is_configured:
            return self._set(GateState(GateStatus.NOT_CONFIGURED, NOT_CONFIGURED))
        return self._set(GateState(GateStatus.PROMPT, radius_meters=venue.radius_meters))

    async def consent(self) -> GateState:
        """The customer agreed to share their location."""
        if self.status != GateStatus.PROMPT:
            raise GateStateError(f"consent() is only valid while prompting, not {self.status.value}")
        return await self._check()

    async def retry(self) -> GateState:
        if self.status not in RETRYABLE:
            raise GateStateError(f"retry() is not valid while {self.status.value}")
        if self.status == GateStatus.NOT_CONFIGURED or self._config_failed or self._venue is None:
            return await self.load()
        return await self._check()

    async def close(self) -> None:
        """Stop re-verification (logout, navigating away).

        An admitted device goes back to ``prompt``; ordering needs a fresh
        ``consent()``.
        """
        await self._stop_rechecks()
        if self.status in (GateStatus.GRANTED, GateStatus.CHECKING):
            radius = self._venue.radius_meters if self._venue is not None else None
            self._set(GateState(GateStatus.PROMPT, radius_meters=radius))

    # ------------------------------------------------------------------
    # Measuring
    # ------------------------------------------------------------------

    async def _check(self) -> GateState:
        await self._stop_rechecks()
        self._set(GateState(GateStatus.CHECKING, radius_meters=self._venue.radius_meters))
        state = await self._measure()
        self._set(state)
        if state.status == GateStatus.GRANTED:
            self._recheck_task = asyncio.create_task(self._recheck_loop())
        return state

    async def _measure(self) -> GateState:
        venue = self._venue
        try:
            position = await asyncio.wait_for(
                self._locator.current_position(
                    high_accuracy=True,
                    timeout=self.location_timeout,
                    maximum_age=0,
                ),
                timeout=self.location_timeout,
            )
        except LocationPermissionDenied:
            return GateState(GateStatus.DENIED, PERMISSION_DENIED, radius_meters=venue.radius_meters)
        except (LocationTimeout, asyncio.TimeoutError):
            return GateState(GateStatus.ERROR, GPS_TIMEOUT, radius_meters=venue.radius_meters)
        except LocationUnsupported:
            return GateState(
                GateStatus.ERROR,
                "Geolocation is not supported by this device",
                radius_meters=venue.radius_meters,
            )
        except LocationError as e:
            logger.info(f"Location acquisition failed: {e}")
            return GateState(GateStatus.ERROR, LOCATION_FAILED, radius_meters=venue.radius_meters)
        except Exception as e:
            # CancelledError is not an Exception and still propagates
            logger.warning(f"Location provider error: {e!r}")
            return GateState(GateStatus.ERROR, LOCATION_FAILED, radius_meters=venue.radius_meters)

        if not is_valid_coordinate(position.latitude, position.longitude):
            return GateState(GateStatus.ERROR, LOCATION_FAILED, radius_meters=venue.radius_meters)

        distance = distance_meters(
            position.latitude, position.longitude, venue.latitude, venue.longitude,
        )
        if distance <= venue.radius_meters:
            return GateState(
                GateStatus.GRANTED,
                distance_meters=distance,
                radius_meters=venue.radius_meters,
            )
        return GateState(
            GateStatus.OUT_OF_RANGE,
            f"You are {round(distance)}m away from the cafe. "
            f"Please come within {round(venue.radius_meters)}m to view the menu.",
            distance_meters=distance,
            radius_meters=venue.radius_meters,
        )

    async def _recheck_loop(self) -> None:
        while True:
            await asyncio.sleep(self.recheck_interval)
            if self.status != GateStatus.GRANTED:
                return
            state = await self._measure()
            if state.status == GateStatus.GRANTED:
                # Silent: stay granted, only the distance moves
                self._set(replace(self._state, distance_meters=state.distance_meters))
                continue
            logger.info(f"Re-verification ended admission: {state.status.value}")
            self._recheck_task = None
            self._set(state)
            return

    async def _stop_rechecks(self) -> None:
        task, self._recheck_task = self._recheck_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _set(self, state: GateState) -> GateState:
        changed = state != self._state
        self._state = state
        if changed and self.on_change is not None:
            self.on_change(state)
        return state
