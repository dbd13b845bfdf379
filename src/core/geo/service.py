# src/core/geo/service.py
"""
Geo-сервис.
Хранит последние координаты водителей в Redis и оценивает время подачи.
Реальная маршрутизация не выполняется: ETA считается по прямой.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from src.common.constants import TypeMsg
from src.common.logger import log_info, log_warning
from src.core.drivers.models import DriverLocation
from src.core.geo.utils import calculate_distance, estimate_travel_minutes
from src.infra.redis_client import RedisClient


class GeoService:
    """
    Последние координаты водителей и оценка ETA.

    Ключ Redis: driver:location:{driver_id}, TTL задаётся в настройках.
    """

    def __init__(
        self,
        redis: RedisClient,
        location_ttl: int = 300,
        default_eta_minutes: int = 15,
        average_speed_kmh: float = 30.0,
    ) -> None:
        """
        Args:
            redis: Клиент Redis
            location_ttl: Сколько секунд хранить координаты
            default_eta_minutes: ETA, если позиция водителя неизвестна
            average_speed_kmh: Средняя скорость для оценки по прямой
        """
        self._redis = redis
        self._location_ttl = location_ttl
        self._default_eta_minutes = default_eta_minutes
        self._average_speed_kmh = average_speed_kmh

    @staticmethod
    def _location_key(driver_id: str) -> str:
        return f"driver:location:{driver_id}"

    async def update_driver_location(self, driver_id: str, latitude: float, longitude: float) -> DriverLocation:
        """
        Сохраняет позицию водителя.

        Raises:
            RedisError: Redis недоступен (ошибка пробрасывается вызывающему)
        """
        location = DriverLocation(
            latitude=latitude,
            longitude=longitude,
            updated_at=datetime.now(timezone.utc),
        )
        await self._redis.set_json(
            self._location_key(driver_id),
            location.model_dump(mode="json"),
            ttl=self._location_ttl,
        )
        await log_info(f"Позиция водителя {driver_id} обновлена", type_msg=TypeMsg.DEBUG)
        return location

    async def get_driver_location(self, driver_id: str) -> Optional[DriverLocation]:
        """Последняя позиция водителя или None (нет данных, истёк TTL, Redis недоступен)."""
        try:
            data = await self._redis.get_json(self._location_key(driver_id))
        except RedisError as e:
            await log_warning(f"Не удалось получить позицию водителя {driver_id}: {e}")
            return None

        if not isinstance(data, dict):
            return None

        try:
            return DriverLocation.model_validate(data)
        except ValidationError:
            return None

    def estimate_arrival_minutes(
        self,
        location: Optional[DriverLocation],
        pickup_latitude: float,
        pickup_longitude: float,
    ) -> int:
        """ETA в минутах: по прямой при известной позиции, иначе значение по умолчанию."""
        if location is None:
            return self._default_eta_minutes

        distance = calculate_distance(
            location.latitude, location.longitude, pickup_latitude, pickup_longitude,
        )
        return estimate_travel_minutes(distance, self._average_speed_kmh)
