"""Tests for geodesic math and coordinate validation."""

import math
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from geo import haversine, haversine_km, is_valid_coordinate, validate_coordinates
from helpers import offset_point


def test_offset_moves_east():
    lat, lon = 40.4168, -3.7038
    new_lat, new_lon = offset_point(lat, lon, 200, 0)
    # Latitude should barely change
    assert abs(new_lat - lat) < 1e-6
    # Longitude should increase (moved east)
    assert new_lon > lon


def test_offset_moves_north():
    lat, lon = 40.4168, -3.7038
    new_lat, new_lon = offset_point(lat, lon, 0, 200)
    assert abs(new_lon - lon) < 1e-6
    assert new_lat > lat


def test_haversine_zero_distance():
    assert haversine(40.4, -3.7, 40.4, -3.7) == 0.0


def test_haversine_known_distance():
    lat1, lon1 = 40.4168, -3.7038
    lat2, lon2 = offset_point(lat1, lon1, 200, 0)
    d = haversine(lat1, lon1, lat2, lon2)
    assert 195 < d < 205, f"Expected ~200m, got {d}"


def test_haversine_symmetric():
    a = haversine(40.4168, -3.7038, 41.3874, 2.1686)
    b = haversine(41.3874, 2.1686, 40.4168, -3.7038)
    assert a == pytest.approx(b)


def test_haversine_madrid_barcelona():
    km = haversine_km(40.4168, -3.7038, 41.3874, 2.1686)
    assert 500 < km < 510


def test_haversine_antipodal_is_finite():
    d = haversine(0.0, 0.0, 0.0, 180.0)
    assert math.isfinite(d)
    assert d == pytest.approx(math.pi * 6_371_000.0)


def test_km_and_m_agree():
    m = haversine(40.0, -3.0, 40.5, -3.5)
    km = haversine_km(40.0, -3.0, 40.5, -3.5)
    assert km * 1000 == pytest.approx(m)


@pytest.mark.parametrize("lat,lon", [(91, 0), (-91, 0), (0, 181), (0, -181), (float("nan"), 0), (0, float("inf"))])
def test_invalid_coordinates(lat, lon):
    assert not is_valid_coordinate(lat, lon)
    with pytest.raises(ValueError):
        validate_coordinates(lat, lon)


def test_valid_coordinates_bounds():
    validate_coordinates(90, 180)
    validate_coordinates(-90, -180)
    assert is_valid_coordinate(0, 0)
