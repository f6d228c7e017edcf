"""Geospatial utilities used for distance calculations and prefiltering."""

from __future__ import annotations

from math import atan2, cos, radians, sin, sqrt
from typing import NamedTuple

EARTH_RADIUS_METERS = 6_371_000
KM_PER_DEGREE_LATITUDE = 111.0


class BoundingBox(NamedTuple):
    """Axis-aligned latitude/longitude rectangle around a center point."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains_longitude(self, longitude: float) -> bool:
        return self.min_lon <= longitude <= self.max_lon


def bounding_box(latitude: float, longitude: float, radius_km: float) -> BoundingBox:
    """Approximate the square enclosing a circle of ``radius_km``.

    One degree of latitude is treated as 111 km everywhere; the longitude
    span widens with ``1 / cos(latitude)`` and diverges towards the poles.
    """

    lat_delta = radius_km / KM_PER_DEGREE_LATITUDE
    lon_delta = radius_km / (KM_PER_DEGREE_LATITUDE * cos(radians(latitude)))

    return BoundingBox(
        min_lat=latitude - lat_delta,
        max_lat=latitude + lat_delta,
        min_lon=longitude - lon_delta,
        max_lon=longitude + lon_delta,
    )


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate distance between two lat/lng points in meters.

    Args:
        lat1: Latitude of the first point.
        lng1: Longitude of the first point.
        lat2: Latitude of the second point.
        lng2: Longitude of the second point.

    Returns:
        Distance in meters.

    Notes:
        The Haversine formula accounts for spherical distance and is accurate
        enough for city-level discovery (approx. +/- 0.5%).
    """

    lat1_rad = radians(lat1)
    lng1_rad = radians(lng1)
    lat2_rad = radians(lat2)
    lng2_rad = radians(lng2)

    delta_lat = lat2_rad - lat1_rad
    delta_lng = lng2_rad - lng1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(
        delta_lng / 2
    ) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate distance between two lat/lng points in kilometers."""

    return haversine_meters(lat1, lng1, lat2, lng2) / 1000.0


def format_distance(meters: float) -> str:
    """Render a distance for display: ``850m``, ``3.2km`` or ``42km``."""

    if meters < 1000:
        return f"{int(meters)}m"

    km = meters / 1000
    if km < 10:
        return f"{km:.1f}km"
    return f"{int(km)}km"
