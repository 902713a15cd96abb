#Purpose: Straight-line geodesic helpers.
#Matching only needs great-circle distance between a donation pickup point and
#an organization's base; no road-network routing is involved.
#Coordinates are (lat, lon) tuples internally.

import math
from typing import Tuple

LatLon = Tuple[float, float]

# Mean Earth radius used by the geo index the candidate query mirrors.
EARTH_RADIUS_KM = 6378.1


def haversine_km(origin: LatLon, destination: LatLon) -> float:
    """
    Great-circle distance in kilometres between two (lat, lon) points.
    """
    lat1, lon1 = origin
    lat2, lon2 = destination

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def validate_point(point: LatLon) -> LatLon:
    """Reject coordinates outside the valid lat/lon ranges."""
    lat, lon = point
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"Latitude must be between -90 and 90, got {lat}")
    if not -180.0 <= lon <= 180.0:
        raise ValueError(f"Longitude must be between -180 and 180, got {lon}")
    return (float(lat), float(lon))
