"""Shared test helpers."""

import math

from geo import R


def offset_point(lat: float, lon: float, dx: float, dy: float) -> tuple[float, float]:
    """Compute new lat/lon by shifting dx meters east and dy meters north."""
    new_lat = lat + (dy / R) * (180.0 / math.pi)
    new_lon = lon + (dx / (R * math.cos(math.radians(lat)))) * (180.0 / math.pi)
    return new_lat, new_lon
