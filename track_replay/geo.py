"""Geospatial utilities (no external dependencies)."""

from __future__ import annotations

import math


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.
    """

    r = 6_371_000.0  # mean Earth radius in meters
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return r * c


def lerp(a: float, b: float, frac: float) -> float:
    """Linear interpolation; returns a exactly when frac == 0."""

    if frac == 0.0:
        return a
    return a + (b - a) * frac


def lerp_point(
    start: tuple[float, float],
    end: tuple[float, float],
    frac: float,
) -> tuple[float, float]:
    """Interpolate a (lat, lon) pair along the straight line start -> end.

    Plain linear interpolation in degrees, matching how the path itself is drawn
    as straight polylines between fixes.
    """

    return (lerp(start[0], end[0], frac), lerp(start[1], end[1], frac))


def path_length_m(points: list[tuple[float, float]]) -> float:
    """Sum of haversine distances along consecutive points."""

    total = 0.0
    for (lat1, lon1), (lat2, lon2) in zip(points, points[1:]):
        total += haversine_m(lat1, lon1, lat2, lon2)
    return total
