# foodconnect/services/geo.py
from math import radians, sin, cos, asin, sqrt, isfinite

from foodconnect.core.errors import ValidationError

EARTH_RADIUS_KM = 6371.0

def _finite(v) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and isfinite(v)

def distance_km(lat1, lng1, lat2, lng2) -> float:
    """Great-circle distance in km between two points given in decimal degrees."""
    if not all(_finite(v) for v in (lat1, lng1, lat2, lng2)):
        raise ValidationError("Coordinates must be finite numbers")
    dlat = radians(lat2 - lat1)
    dlng = radians(lng2 - lng1)
    a = sin(dlat/2)**2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlng/2)**2
    c = 2 * asin(min(1.0, sqrt(a)))
    return EARTH_RADIUS_KM * c
