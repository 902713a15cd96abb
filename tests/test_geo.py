import math

import pytest

from routing.geo import EARTH_RADIUS_KM, haversine_km, validate_point

from .conftest import PICKUP, point_north_of


def test_same_point_is_zero():
    assert haversine_km(PICKUP, PICKUP) == 0.0


def test_one_degree_of_latitude():
    expected = EARTH_RADIUS_KM * math.pi / 180
    assert haversine_km((0.0, 0.0), (1.0, 0.0)) == pytest.approx(expected)


def test_distance_is_symmetric():
    other = (-17.79, 31.10)
    assert haversine_km(PICKUP, other) == pytest.approx(haversine_km(other, PICKUP))


def test_point_helper_lands_at_requested_distance():
    assert haversine_km(PICKUP, point_north_of(PICKUP, 7.5)) == pytest.approx(7.5)


def test_validate_point():
    assert validate_point((10, 20)) == (10.0, 20.0)
    with pytest.raises(ValueError):
        validate_point((91, 0))
    with pytest.raises(ValueError):
        validate_point((0, 181))
