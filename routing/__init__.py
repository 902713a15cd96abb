#Marks routing as a package.
#Re-exports the geodesic helpers so other modules import from routing
#without knowing internal file names.
#No business logic.

from .geo import EARTH_RADIUS_KM, LatLon, haversine_km, validate_point

__all__ = [
    "EARTH_RADIUS_KM",
    "LatLon",
    "haversine_km",
    "validate_point",
]
