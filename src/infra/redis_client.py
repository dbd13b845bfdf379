# src/infra/redis_client.py
"""
Клиент Redis для кэширования заказов и последних координат водителей.
Поддерживает типизированные операции с Pydantic моделями.
"""

from __future__ import annotations

import json
from typing import Type, TypeVar

import redis.asyncio as redis
from pydantic import BaseModel, ValidationError

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info

T = TypeVar("T", bound=BaseModel)


class RedisClient:
    """
    Асинхронный клиент Redis.
    Все ключи автоматически получают префикс namespace.
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "premium_taxi"

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """
        Подключается к Redis и проверяет соединение.

        Args:
            url: URL Redis
            max_connections: Максимальное количество соединений
            namespace: Префикс ключей
        """
        if self._client is not None:
            return

        if namespace:
            self._namespace = namespace

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    # =========================================================================
    # БАЗОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Получает значение по ключу."""
        return await self.client.get(self._make_key(key))

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """
        Устанавливает значение.

        Args:
            key: Ключ
            value: Значение
            ttl: Время жизни в секундах
        """
        return await self.client.set(self._make_key(key), value, ex=ttl)

    async def delete(self, key: str) -> int:
        """Удаляет ключ."""
        return await self.client.delete(self._make_key(key))

    # =========================================================================
    # ТИПИЗИРОВАННЫЕ ОПЕРАЦИИ (PYDANTIC)
    # =========================================================================

    async def get_model(self, key: str, model_class: Type[T]) -> T | None:
        """
        Получает и десериализует Pydantic модель.
        Повреждённое значение считается промахом кэша.
        """
        data = await self.get(key)
        if data is None:
            return None

        try:
            return model_class.model_validate_json(data)
        except ValidationError as e:
            await log_error(f"Ошибка десериализации модели {model_class.__name__}: {e}")
            return None

    async def set_model(self, key: str, model: BaseModel, ttl: int | None = None) -> bool:
        """Сериализует и сохраняет Pydantic модель."""
        return await self.set(key, model.model_dump_json(), ttl=ttl)

    # =========================================================================
    # JSON ОПЕРАЦИИ
    # =========================================================================

    async def get_json(self, key: str) -> dict | list | None:
        """Получает и парсит JSON."""
        data = await self.get(key)
        if data is None:
            return None

        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return None

    async def set_json(self, key: str, data: dict | list, ttl: int | None = None) -> bool:
        """Сериализует и сохраняет JSON."""
        return await self.set(key, json.dumps(data, ensure_ascii=False), ttl=ttl)

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к Redis."""
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> RedisClient:
    """Подключается к Redis по настройкам из конфигурации."""
    from src.config import settings

    redis_client = get_redis()
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )
    return redis_client


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    await get_redis().disconnect()
