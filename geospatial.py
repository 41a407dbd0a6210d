from typing import Optional, Tuple
from math import radians, sin, cos, sqrt, atan2
import re

# POINT(lon lat)
_WKT_POINT = re.compile(r"^\s*POINT\s*\(\s*([+-]?\d*\.?\d+)\s+([+-]?\d*\.?\d+)\s*\)\s*$", re.IGNORECASE)


def haversine_km(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Great-circle distance between two (lat, lng) pairs."""
    lat1, lon1 = a
    lat2, lon2 = b
    R = 6371.0
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    rlat1 = radians(lat1)
    rlat2 = radians(lat2)
    a_ = sin(dlat / 2) ** 2 + cos(rlat1) * cos(rlat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a_), sqrt(1 - a_))
    return R * c


def create_wkt(lon: float, lat: float) -> str:
    return f"POINT({lon} {lat})"


def parse_wkt(wkt: Optional[str]) -> Optional[Tuple[float, float]]:
    """Return (lat, lng) for a WKT point, or None when it does not parse."""
    if not wkt:
        return None
    match = _WKT_POINT.match(wkt)
    if not match:
        return None
    lon = float(match.group(1))
    lat = float(match.group(2))
    return lat, lon


def validate_wkt(wkt: Optional[str]) -> bool:
    point = parse_wkt(wkt)
    if point is None:
        return False
    lat, lon = point
    return -90 <= lat <= 90 and -180 <= lon <= 180
