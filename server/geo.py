"""Geo math: great-circle distance, cell quantization, bounds and point-in-polygon."""

import math
from typing import Iterable, Sequence

from schemas import Bounds, GeoPoint

EARTH_RADIUS_M = 6_371_000  # mean Earth radius in metres
DEFAULT_CELL_PRECISION = 4  # ~11 m grid


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in metres between two WGS-84 points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    # Rounding can push a just past 1 for near-antipodal points
    a = min(1.0, a)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_meters(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_m(a.lat, a.lng, b.lat, b.lng)


def cell_key(p: GeoPoint, precision: int = DEFAULT_CELL_PRECISION) -> str:
    """Quantize a point to a "lat,lng" key with fixed decimals.

    Two points share a key iff they round to the same grid cell at this
    precision, so counting distinct keys counts explored cells.
    """
    # Adding 0.0 turns a rounded -0.0 into 0.0 so both sides of zero share a key
    lat = round(p.lat, precision) + 0.0
    lng = round(p.lng, precision) + 0.0
    return f"{lat:.{precision}f},{lng:.{precision}f}"


def polygon_bounds(polygons: Iterable[Sequence[GeoPoint]]) -> Bounds | None:
    """True min/max box over every point of every polygon, or None if empty."""
    minlat, minlon, maxlat, maxlon = 90.0, 180.0, -90.0, -180.0
    seen = False
    for poly in polygons:
        for p in poly:
            seen = True
            minlat = min(minlat, p.lat)
            minlon = min(minlon, p.lng)
            maxlat = max(maxlat, p.lat)
            maxlon = max(maxlon, p.lng)
    if not seen:
        return None
    return Bounds(minlat=minlat, minlon=minlon, maxlat=maxlat, maxlon=maxlon)


def point_in_polygon(lat: float, lng: float, polygon: Sequence[GeoPoint]) -> bool:
    """Even-odd ray casting. The ring is treated as cyclic.

    Points exactly on an edge or vertex may land on either side.
    """
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i].lat, polygon[i].lng
        xj, yj = polygon[j].lat, polygon[j].lng
        if (yi > lng) != (yj > lng) and lat < (xj - xi) * (lng - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside
