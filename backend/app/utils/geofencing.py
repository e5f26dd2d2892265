"""
Geofencing and Distance Utilities

This module provides the distance primitives used by journey tracking:
geodesic distance between two WGS84 points and the distance-based ETA.

Functions
---------
- calculate_distance(...): Geodesic distance in meters between two points.
- estimate_eta(...): Minutes to cover a distance at urban transit speed.

Notes
-----
Points follow shapely's (x=longitude, y=latitude) order.
"""

import math
from typing import Final

from pyproj import Geod
from shapely.geometry import Point

from app.core.config import ETA_METERS_PER_MINUTE

GEOD: Final[Geod] = Geod(ellps="WGS84")


def calculate_distance(origin: Point, destination: Point) -> float:
    """
    Geodesic distance between two points on the WGS84 ellipsoid.

    Args:
        origin (Point): Start point (lon, lat).
        destination (Point): End point (lon, lat).

    Returns:
        float: Distance in meters.
    """
    _, _, distance = GEOD.inv(origin.x, origin.y, destination.x, destination.y)
    return abs(distance)


def estimate_eta(distance: float) -> int:
    """
    Estimated minutes to cover `distance` meters, rounded up.

    Examples:
        >>> estimate_eta(1000)
        4
        >>> estimate_eta(0)
        0
    """
    return math.ceil(distance / ETA_METERS_PER_MINUTE)
