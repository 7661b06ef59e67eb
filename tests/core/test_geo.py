# tests/core/test_geo.py
"""
Тесты для гео-утилит.
"""

from __future__ import annotations

import pytest

from ride_dispatch.core.requests.models import GeoPoint
from ride_dispatch.core.tracking.geo import eta_minutes, haversine_km, haversine_m


class TestHaversine:
    """Тесты для расстояния по большой окружности."""

    def test_same_point(self) -> None:
        point = GeoPoint(latitude=28.6, longitude=77.1)
        assert haversine_km(point, point) == 0.0
        assert haversine_m(point, point) == 0

    def test_one_degree_on_equator(self) -> None:
        distance = haversine_km(GeoPoint(latitude=0, longitude=0), GeoPoint(latitude=0, longitude=1))
        assert distance == pytest.approx(111.19, abs=0.01)

    def test_symmetric(self) -> None:
        a = GeoPoint(latitude=50.45, longitude=30.52)
        b = GeoPoint(latitude=53.55, longitude=9.99)
        assert haversine_km(a, b) == pytest.approx(haversine_km(b, a))

    def test_antipodal(self) -> None:
        distance = haversine_km(GeoPoint(latitude=0, longitude=0), GeoPoint(latitude=0, longitude=180))
        assert distance == pytest.approx(20015.09, abs=0.1)

    def test_meters_rounded(self) -> None:
        a = GeoPoint(latitude=0, longitude=0)
        b = GeoPoint(latitude=0, longitude=0.001)
        assert haversine_m(a, b) == 111


class TestEta:
    """Тесты для оценки времени прибытия."""

    def test_at_target(self) -> None:
        assert eta_minutes(0.0, 30.0) == 0

    def test_rounds_up(self) -> None:
        assert eta_minutes(0.001, 30.0) == 1

    def test_exact(self) -> None:
        assert eta_minutes(15.0, 30.0) == 30

    def test_speed_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            eta_minutes(1.0, 0)
