# src/core/orders/cache.py
"""
Кэш заказов в Redis с коротким TTL.
Redis не является источником истины: его ошибки логируются и обходятся.
"""

from __future__ import annotations

from typing import Optional

from redis.exceptions import RedisError

from src.common.logger import log_warning
from src.core.orders.models import Order
from src.infra.redis_client import RedisClient


class OrderCache:
    """Кэш чтения заказов."""

    def __init__(self, redis: RedisClient, ttl: int = 30) -> None:
        """
        Args:
            redis: Клиент Redis
            ttl: Время жизни записи (секунды)
        """
        self._redis = redis
        self._ttl = ttl

    @staticmethod
    def _key(order_id: str) -> str:
        return f"order:{order_id}"

    async def get(self, order_id: str) -> Optional[Order]:
        try:
            return await self._redis.get_model(self._key(order_id), Order)
        except RedisError as e:
            await log_warning(f"Кэш заказов недоступен (чтение {order_id}): {e}")
            return None

    async def set(self, order: Order) -> None:
        try:
            await self._redis.set_model(self._key(order.id), order, ttl=self._ttl)
        except RedisError as e:
            await log_warning(f"Кэш заказов недоступен (запись {order.id}): {e}")

    async def invalidate(self, order_id: str) -> None:
        """Удаляет заказ из кэша после записи."""
        try:
            await self._redis.delete(self._key(order_id))
        except RedisError as e:
            await log_warning(f"Кэш заказов недоступен (сброс {order_id}): {e}")
