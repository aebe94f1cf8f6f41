"""
Geo helpers — great-circle distance between event locations.
"""

import math

from supply_chain.models import Location

EARTH_RADIUS_KM = 6371


def degrees_to_radians(degrees: float) -> float:
    return degrees * (math.pi / 180)


def haversine_km(loc1: Location, loc2: Location) -> float:
    """
    Distance in kilometers between two locations.

    Returns 0 when either side has no GPS coordinates: missing GPS data is
    treated as no detectable movement.
    """
    if loc1.coordinates is None or loc2.coordinates is None:
        return 0.0

    lat1, lon1 = loc1.coordinates.latitude, loc1.coordinates.longitude
    lat2, lon2 = loc2.coordinates.latitude, loc2.coordinates.longitude

    dlat = degrees_to_radians(lat2 - lat1)
    dlon = degrees_to_radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(degrees_to_radians(lat1)) * math.cos(degrees_to_radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
