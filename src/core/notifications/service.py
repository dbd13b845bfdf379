# src/core/notifications/service.py
"""
Сервис уведомлений.
Публикует изменения статусов заказов в шину событий. Доставка идёт
в фоне после коммита транзакции и никогда не влияет на вызывающий код.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Optional

from src.common.constants import NotificationType, OrderStatus, TypeMsg
from src.common.logger import log_error, log_info, log_warning
from src.core.orders.models import Order
from src.infra.event_bus import DomainEvent, EventBus, EventBusError, EventTypes


def build_status_payload(
    order: Order,
    status: OrderStatus,
    additional_data: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Формирует тело уведомления об изменении статуса."""
    return {
        "type": NotificationType.ORDER_STATUS.value,
        "payload": {
            "order": order.model_dump(mode="json"),
            "status": status.value,
            "additionalData": additional_data or {},
        },
    }


def status_additional_data(
    order: Order,
    status: OrderStatus,
    previous_status: Optional[OrderStatus] = None,
) -> dict[str, Any]:
    """Контекст уведомления для конкретного статуса."""
    match status:
        case OrderStatus.EN_ROUTE:
            eta: Optional[datetime] = order.estimated_arrival_time
            return {"estimatedArrivalTime": eta.isoformat() if eta else None}
        case OrderStatus.COMPLETED:
            return {"finalPrice": order.actual_price, "rating": order.rating}
        case OrderStatus.CANCELLED:
            return {
                "reason": order.cancellation_reason,
                "originalStatus": previous_status.value if previous_status else None,
            }
        case _:
            return {}


class NotificationSink:
    """
    Фоновая доставка уведомлений с повторами.

    Каждая доставка выполняется в отдельной задаче asyncio: до attempts
    попыток с паузой backoff_base * 2**(attempt-1) между ними. Последняя
    неудача логируется, после чего один раз публикуется системное уведомление.
    """

    def __init__(
        self,
        event_bus: EventBus,
        attempts: int = 3,
        backoff_base: float = 1.0,
    ) -> None:
        """
        Args:
            event_bus: Шина событий
            attempts: Количество попыток доставки
            backoff_base: Базовая пауза между попытками (секунды)
        """
        self._event_bus = event_bus
        self._attempts = max(1, attempts)
        self._backoff_base = backoff_base
        self._tasks: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        """Количество незавершённых доставок."""
        return len(self._tasks)

    def order_status_changed(
        self,
        order: Order,
        status: OrderStatus,
        additional_data: Optional[dict[str, Any]] = None,
    ) -> asyncio.Task[bool]:
        """Ставит в очередь уведомление о новом статусе заказа."""
        event = DomainEvent(
            event_type=EventTypes.ORDER_STATUS_CHANGED,
            payload=build_status_payload(order, status, additional_data),
        )
        return self._schedule(event)

    def system(self, message: str, data: Optional[dict[str, Any]] = None) -> asyncio.Task[bool]:
        """Ставит в очередь системное уведомление."""
        return self._schedule(self._system_event(message, data))

    @staticmethod
    def _system_event(message: str, data: Optional[dict[str, Any]] = None) -> DomainEvent:
        return DomainEvent(
            event_type=EventTypes.SYSTEM_NOTIFICATION,
            payload={
                "type": NotificationType.SYSTEM.value,
                "payload": {"message": message, **(data or {})},
            },
        )

    def _schedule(self, event: DomainEvent) -> asyncio.Task[bool]:
        task = asyncio.create_task(self.deliver(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def deliver(self, event: DomainEvent) -> bool:
        """
        Доставляет событие с повторами.

        Returns:
            True если событие опубликовано
        """
        for attempt in range(1, self._attempts + 1):
            try:
                await self._event_bus.publish(event)
                return True
            except EventBusError as e:
                if attempt < self._attempts:
                    delay = self._backoff_base * 2 ** (attempt - 1)
                    await log_warning(
                        f"Уведомление {event.event_type} не доставлено "
                        f"(попытка {attempt}/{self._attempts}), повтор через {delay:g} с: {e}"
                    )
                    await asyncio.sleep(delay)
                else:
                    await log_error(
                        f"Уведомление {event.event_type} ({event.event_id}) не доставлено "
                        f"после {self._attempts} попыток: {e}"
                    )

        if event.event_type != EventTypes.SYSTEM_NOTIFICATION:
            await self._report_failure(event)
        return False

    async def _report_failure(self, event: DomainEvent) -> None:
        fallback = self._system_event(
            "Не удалось доставить уведомление",
            {"eventId": event.event_id, "eventType": event.event_type},
        )
        try:
            await self._event_bus.publish(fallback)
        except EventBusError as e:
            await log_error(f"Системное уведомление о сбое доставки не отправлено: {e}")

    async def drain(self) -> None:
        """Ожидает завершения всех фоновых доставок."""
        if not self._tasks:
            return
        await log_info(f"Ожидание доставки уведомлений: {len(self._tasks)}", type_msg=TypeMsg.INFO)
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
