"""Async clients for customer and staff devices."""

from cafe_api.client.api import CafeApiClient
from cafe_api.client.geofence import (
    GateState,
    GateStateError,
    GateStatus,
    GeofenceGate,
    LocationError,
    LocationPermissionDenied,
    LocationProvider,
    LocationTimeout,
    LocationUnsupported,
    Position,
    VenueGeofence,
)
from cafe_api.client.http import ApiError
from cafe_api.client.session import (
    SessionContext,
    SessionExpiredError,
    StaffApiClient,
    retry_on_unauthorized,
)
from cafe_api.client.token_store import (
    InMemoryTokenStore,
    JsonFileTokenStore,
    StoredTokens,
    TokenStore,
)

__all__ = [
    "ApiError",
    "CafeApiClient",
    "GateState",
    "GateStateError",
    "GateStatus",
    "GeofenceGate",
    "InMemoryTokenStore",
    "JsonFileTokenStore",
    "LocationError",
    "LocationPermissionDenied",
    "LocationProvider",
    "LocationTimeout",
    "LocationUnsupported",
    "Position",
    "SessionContext",
    "SessionExpiredError",
    "StaffApiClient",
    "StoredTokens",
    "TokenStore",
    "VenueGeofence",
]
