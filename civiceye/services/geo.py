# File: civiceye/services/geo.py
"""Radius queries over issue coordinates.

Distances are great-circle (haversine) on a sphere of EARTH_RADIUS_KM; every
radius in the API goes through this module so the feed, the list and the
"my issues" views agree on what "within 5 km" means.
"""
import math
from math import radians, degrees, cos, sin, asin, sqrt
from typing import Optional, Tuple

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from civiceye.db.session import store_errors
from civiceye.models.issue import Issue
from civiceye.services.validation import GeoPoint

EARTH_RADIUS_KM = 6371.0
# slack so float rounding at the window edge never drops a point inside the circle
_EDGE_SLACK_DEG = 1e-9


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(min(1.0, sqrt(a)))
    return EARTH_RADIUS_KM * c


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def has_coordinates(latitude: Optional[float], longitude: Optional[float]) -> bool:
    """(0, 0) is what clients send when they have no fix; treat it as missing."""
    if latitude is None or longitude is None:
        return False
    return not (latitude == 0 and longitude == 0)


def bounding_window(center: GeoPoint, radius_km: float) -> Tuple[Tuple[float, float], Optional[Tuple[float, float]]]:
    """Latitude band and longitude window that contain the whole circle.

    The longitude window is None when the circle reaches a pole or spans the
    whole globe. It may extend past +/-180; callers wrap it.
    """
    angular = radius_km / EARTH_RADIUS_KM
    if angular >= math.pi:
        return (-90.0, 90.0), None
    dlat = degrees(angular)
    lat_min = max(-90.0, center.latitude - dlat - _EDGE_SLACK_DEG)
    lat_max = min(90.0, center.latitude + dlat + _EDGE_SLACK_DEG)
    cos_lat = cos(radians(center.latitude))
    if lat_min <= -90.0 or lat_max >= 90.0 or sin(angular) >= cos_lat:
        return (lat_min, lat_max), None
    dlng = degrees(asin(sin(angular) / cos_lat)) + _EDGE_SLACK_DEG
    return (lat_min, lat_max), (center.longitude - dlng, center.longitude + dlng)


def _longitude_clause(window: Tuple[float, float]):
    low, high = window
    if high - low >= 360.0:
        return None
    if low < -180.0:
        return or_(Issue.longitude >= low + 360.0, Issue.longitude <= high)
    if high > 180.0:
        return or_(Issue.longitude >= low, Issue.longitude <= high - 360.0)
    return and_(Issue.longitude >= low, Issue.longitude <= high)


class GeoIndex:
    """Answers "which issues lie within r km of here".

    The (latitude, longitude) B-tree on ``issues`` is the index; it is kept
    current by the store on every insert, update and delete. A window that
    contains the circle is evaluated in SQL, the exact distance in Python.
    """

    def __init__(self, db: Session):
        self.db = db

    def candidates_stmt(self, center: GeoPoint, radius_km: float):
        (lat_min, lat_max), lng_window = bounding_window(center, radius_km)
        clauses = [
            Issue.latitude.is_not(None),
            Issue.longitude.is_not(None),
            Issue.latitude >= lat_min,
            Issue.latitude <= lat_max,
        ]
        if lng_window is not None:
            lng_clause = _longitude_clause(lng_window)
            if lng_clause is not None:
                clauses.append(lng_clause)
        return select(Issue.id, Issue.latitude, Issue.longitude).where(*clauses)

    @store_errors
    def within_radius(self, center: GeoPoint, radius_km: float) -> set[int]:
        found: set[int] = set()
        for issue_id, lat, lng in self.db.execute(self.candidates_stmt(center, radius_km)):
            if not has_coordinates(lat, lng):
                continue
            if haversine_km(center.latitude, center.longitude, lat, lng) <= radius_km:
                found.add(issue_id)
        return found
