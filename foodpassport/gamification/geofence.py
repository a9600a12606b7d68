"""Great-circle distance checks against named geofence regions"""

import math
from typing import Optional

from foodpassport.models.achievement import GeofenceRegion
from foodpassport.models.meal import GeoLocation

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometres between two (lat, lon) points"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push a a hair outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_to_region(location: GeoLocation, region: GeofenceRegion) -> float:
    return haversine_km(location.latitude, location.longitude, region.latitude, region.longitude)


def within_region(location: Optional[GeoLocation], region: GeofenceRegion) -> bool:
    """
    True when the location lies inside the region, boundary included.

    A meal without a location never matches.
    """
    if location is None:
        return False
    return distance_to_region(location, region) <= region.radius_km
