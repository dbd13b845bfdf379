# src/core/geo/utils.py
import math

EARTH_RADIUS_KM = 6371.0


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Вычисляет расстояние между двумя точками (в км) по формуле Haversine.
    """
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def estimate_travel_minutes(distance_km: float, average_speed_kmh: float) -> int:
    """Время в пути по прямой при средней скорости, округлённое вверх."""
    if average_speed_kmh <= 0:
        raise ValueError("average_speed_kmh must be positive")
    return max(1, math.ceil(distance_km / average_speed_kmh * 60))
