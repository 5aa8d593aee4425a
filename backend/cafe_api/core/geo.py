"""Great-circle distance helpers for the venue geofence."""

import math

EARTH_RADIUS_METERS = 6371000  # mean Earth radius


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two coordinates, in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = (math.sin(dphi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2)
    # Rounding can push a slightly above 1 for near-antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def is_valid_coordinate(lat, lon) -> bool:
    """Check that lat/lon are finite numbers inside the WGS84 ranges."""
    if isinstance(lat, bool) or isinstance(lon, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def within_radius(lat: float, lon: float, center_lat: float, center_lon: float,
                  radius_meters: float) -> tuple[bool, float]:
    """Return (inside, distance) for a point against a circular fence."""
    distance = distance_meters(lat, lon, center_lat, center_lon)
    return distance <= radius_meters, distance
