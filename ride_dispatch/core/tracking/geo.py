# ride_dispatch/core/tracking/geo.py
"""
Гео-утилиты: расстояние по прямой и оценка времени прибытия.
"""

from __future__ import annotations

import math

from ride_dispatch.core.requests.models import GeoPoint

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """
    Расстояние по большой окружности между двумя точками (км).

    Args:
        a: Первая точка
        b: Вторая точка

    Returns:
        Расстояние в километрах
    """
    lat1, lon1 = math.radians(a.latitude), math.radians(a.longitude)
    lat2, lon2 = math.radians(b.latitude), math.radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # min() против погрешности округления при почти антиподальных точках
    c = 2 * math.asin(min(1.0, math.sqrt(h)))
    return EARTH_RADIUS_KM * c


def haversine_m(a: GeoPoint, b: GeoPoint) -> int:
    """Расстояние в метрах, округлённое до целого."""
    return round(haversine_km(a, b) * 1000)


def eta_minutes(distance_km: float, average_speed_kmh: float) -> int:
    """
    Оценка времени в пути при постоянной средней скорости.

    Округляется вверх: 1 метр до цели даёт 1 минуту, а не 0.
    """
    if average_speed_kmh <= 0:
        raise ValueError("average_speed_kmh должна быть положительной")
    if distance_km <= 0:
        return 0
    return math.ceil(distance_km / average_speed_kmh * 60)
