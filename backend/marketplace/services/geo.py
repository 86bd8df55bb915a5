import math
from typing import Optional

from marketplace.models import Coordinates

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance on a spherical earth, haversine in its atan2 form."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push a a hair outside [0, 1] for antipodal points.
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def within_radius(
    origin: Optional[Coordinates],
    point: Optional[Coordinates],
    radius_km: float,
) -> bool:
    if origin is None or point is None:
        return False
    return distance_km(origin.latitude, origin.longitude, point.latitude, point.longitude) <= radius_km
