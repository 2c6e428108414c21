"""Geospatial helpers (no external dependencies)."""

from __future__ import annotations

import math

EARTH_RADIUS_M = 6_371_000.0  # mean Earth radius


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two lat/lon points given in degrees."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Raise ValueError unless the pair is a finite, in-range WGS84 coordinate."""

    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise ValueError(f"non-finite coordinate: ({latitude}, {longitude})")
    if not -90.0 <= latitude <= 90.0:
        raise ValueError(f"latitude out of range: {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise ValueError(f"longitude out of range: {longitude}")
