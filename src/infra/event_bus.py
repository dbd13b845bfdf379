# src/infra/event_bus.py
"""
Шина событий на базе RabbitMQ.
Публикует доменные события в topic exchange. Доставка до клиентов
(WebSocket, push) выполняется внешними потребителями очередей.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractRobustConnection
from aio_pika.exceptions import AMQPError
from aiormq.exceptions import ChannelInvalidStateError

from src.common.constants import TypeMsg
from src.common.logger import log_info


# =============================================================================
# ДОМЕННЫЕ СОБЫТИЯ
# =============================================================================

@dataclass
class DomainEvent:
    """Доменное событие."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    event_type: str = ""
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )
    payload: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Сериализует событие в JSON."""
        return json.dumps({
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, data: str) -> DomainEvent:
        """Десериализует событие из JSON."""
        parsed = json.loads(data)
        return cls(
            event_id=parsed.get("event_id", str(uuid4())),
            event_type=parsed.get("event_type", ""),
            timestamp=parsed.get("timestamp", ""),
            payload=parsed.get("payload", {}),
        )


class EventTypes:
    """Константы типов событий (routing keys)."""
    ORDER_STATUS_CHANGED = "notification.order_status"
    SYSTEM_NOTIFICATION = "notification.system"


class EventBusError(ConnectionError):
    """Событие не удалось опубликовать."""


# Ошибки публикации, после которых возможен повтор
PUBLISH_ERRORS: tuple[type[BaseException], ...] = (
    AMQPError,
    ChannelInvalidStateError,
    asyncio.TimeoutError,
    ConnectionError,
)


class EventBus:
    """
    Публикатор событий в RabbitMQ.

    В отличие от записи в БД, ошибки публикации пробрасываются
    вызывающему коду: повторы выполняет NotificationSink.
    """

    _instance: EventBus | None = None

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._exchange_name = "premium_taxi.events"

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    async def connect(self, url: str, exchange_name: str | None = None) -> None:
        """
        Подключается к RabbitMQ и объявляет topic exchange.

        Args:
            url: URL RabbitMQ
            exchange_name: Имя exchange
        """
        if self.is_connected:
            return

        if exchange_name:
            self._exchange_name = exchange_name

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel(publisher_confirms=True)
        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )

        await log_info("Подключение к RabbitMQ установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с RabbitMQ."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, event: DomainEvent) -> None:
        """
        Публикует событие, routing key = event_type.

        Raises:
            EventBusError: нет соединения, канал закрыт или брокер не подтвердил публикацию
        """
        if not self.is_connected or self._exchange is None:
            raise EventBusError("Нет соединения с RabbitMQ")

        message = Message(
            body=event.to_json().encode(),
            content_type="application/json",
            message_id=event.event_id,
            delivery_mode=DeliveryMode.PERSISTENT,
            timestamp=datetime.now(timezone.utc),
        )

        try:
            await self._exchange.publish(message, routing_key=event.event_type)
        except PUBLISH_ERRORS as e:
            raise EventBusError(f"Ошибка публикации события {event.event_type}: {e}") from e

        await log_info(f"Событие опубликовано: {event.event_type}", type_msg=TypeMsg.DEBUG)

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к RabbitMQ."""
        return self.is_connected


def get_event_bus() -> EventBus:
    """Возвращает глобальный экземпляр EventBus."""
    return EventBus()


async def init_event_bus() -> EventBus:
    """Подключается к RabbitMQ по настройкам из конфигурации."""
    from src.config import settings

    event_bus = get_event_bus()
    await event_bus.connect(
        url=settings.rabbitmq.url,
        exchange_name=settings.rabbitmq.RABBITMQ_EXCHANGE,
    )
    await log_info(
        f"RabbitMQ подключён: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}",
        type_msg=TypeMsg.INFO,
    )
    return event_bus


async def close_event_bus() -> None:
    """Закрывает подключение к RabbitMQ."""
    await get_event_bus().disconnect()
