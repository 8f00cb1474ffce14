"""Geodesic helpers: haversine distances and coordinate checks."""

import math

R = 6_371_000.0  # Mean Earth radius in meters
R_KM = 6_371.0


def _central_angle(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    # Rounding can push `a` slightly above 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    return 2 * math.asin(math.sqrt(a))


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two lat/lon points (haversine formula)."""
    return R * _central_angle(lat1, lon1, lat2, lon2)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometers between two lat/lon points."""
    return R_KM * _central_angle(lat1, lon1, lat2, lon2)


def is_valid_coordinate(lat: float, lon: float) -> bool:
    return (
        isinstance(lat, (int, float))
        and isinstance(lon, (int, float))
        and math.isfinite(lat)
        and math.isfinite(lon)
        and -90.0 <= lat <= 90.0
        and -180.0 <= lon <= 180.0
    )


def validate_coordinates(lat: float, lon: float) -> None:
    """Raise ValueError unless (lat, lon) is a finite WGS84 coordinate."""
    if not is_valid_coordinate(lat, lon):
        raise ValueError(f"Invalid coordinates: lat={lat}, lon={lon}")
