# src/core/orders/state_machine.py
"""
Машина состояний заказа.

Каждый переход выполняется в одной транзакции вместе с побочными
эффектами над водителем и журналом проводок: либо сохраняется всё,
либо ничего. Уведомление отправляется только после коммита.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from src.common.constants import (
    CANCEL_REASON_REQUIRED_STATUSES,
    DriverStatus,
    OrderStatus,
    PaymentStatus,
    TypeMsg,
)
from src.common.exceptions import AuthorizationDenied, InvalidRequest, InvalidStatusTransition, NotFound
from src.common.logger import log_info
from src.core.billing.service import BillingService
from src.core.drivers.models import Driver
from src.core.geo.service import GeoService
from src.core.notifications.service import NotificationSink, status_additional_data
from src.core.orders import authorization
from src.core.orders.cache import OrderCache
from src.core.orders.models import Order, StatusMetadata
from src.core.unit_of_work import UnitOfWork, UnitOfWorkFactory
from src.core.users.models import Principal

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.DRIVER_ASSIGNED, OrderStatus.CANCELLED}),
    OrderStatus.DRIVER_ASSIGNED: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.EN_ROUTE, OrderStatus.CANCELLED}),
    OrderStatus.EN_ROUTE: frozenset({OrderStatus.ARRIVED, OrderStatus.CANCELLED}),
    OrderStatus.ARRIVED: frozenset({OrderStatus.STARTED, OrderStatus.CANCELLED}),
    OrderStatus.STARTED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

MIN_RATING = 1.0
MAX_RATING = 5.0


def is_transition_allowed(current: OrderStatus, new: OrderStatus) -> bool:
    """Входит ли переход в белый список."""
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_rating(rating: Optional[float]) -> None:
    """Оценка должна быть в диапазоне [1, 5]."""
    if rating is not None and not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidRequest(f"Оценка должна быть от {MIN_RATING:g} до {MAX_RATING:g}")


def running_average(old_rating: float, old_count: int, new_rating: float) -> float:
    """Новый средний рейтинг после ещё одной оценки, два знака после запятой."""
    return round((old_rating * old_count + new_rating) / (old_count + 1), 2)


@dataclass
class TransitionResult:
    """Итог перехода, готовый к публикации."""
    order: Order
    driver: Optional[Driver]
    previous_status: OrderStatus
    additional_data: dict[str, Any] = field(default_factory=dict)


class OrderStatusMachine:
    """
    Переходы статусов заказа с побочными эффектами.

    Блокировки берутся в порядке заказ, затем водитель: так параллельные
    переходы одного заказа и резервирования одного водителя сериализуются.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        notifications: NotificationSink,
        geo: GeoService,
        billing: BillingService,
        cache: Optional[OrderCache] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._notifications = notifications
        self._geo = geo
        self._billing = billing
        self._cache = cache

    async def update_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        principal: Principal,
        metadata: Optional[StatusMetadata] = None,
    ) -> Order:
        """
        Переводит заказ в новый статус.

        Args:
            order_id: UUID заказа
            new_status: Целевой статус
            principal: Вызывающий
            metadata: Причина отмены, оценка, доплаты, ETA

        Returns:
            Сохранённый заказ

        Raises:
            NotFound: заказа нет
            AuthorizationDenied: у вызывающего нет прав на переход
            InvalidStatusTransition: переход не разрешён
            InvalidRequest: нет обязательной причины отмены, оценка вне [1, 5]
            PersistenceFailure: ошибка хранилища (всё откатывается)
        """
        metadata = metadata or StatusMetadata()
        validate_rating(metadata.rating)

        async with self._uow_factory.begin() as uow:
            order = await uow.orders.get_by_id(order_id, for_update=True)
            if order is None:
                raise NotFound(f"Заказ {order_id} не найден")

            driver = None
            if order.driver_id:
                driver = await uow.drivers.get_by_id(order.driver_id, for_update=True)

            decision = authorization.can_transition(order, new_status, principal, driver)
            if not decision.allowed:
                raise AuthorizationDenied(decision.reason)

            result = await self.apply(uow, order, new_status, metadata, driver)

        await self.publish(result)
        return result.order

    async def apply(
        self,
        uow: UnitOfWork,
        order: Order,
        new_status: OrderStatus,
        metadata: StatusMetadata,
        driver: Optional[Driver] = None,
    ) -> TransitionResult:
        """
        Выполняет переход внутри уже открытой единицы работы.
        Заказ и водитель должны быть заблокированы вызывающим.
        """
        previous = order.status
        if not is_transition_allowed(previous, new_status):
            raise InvalidStatusTransition(
                f"Переход {previous.value} -> {new_status.value} запрещён",
                details={"from": previous.value, "to": new_status.value},
            )

        now = datetime.now(timezone.utc)
        updates: dict[str, Any] = {"status": new_status}
        new_driver = driver

        match new_status:
            case OrderStatus.DRIVER_ASSIGNED:
                self._require_driver(order, driver)
                new_driver = driver.model_copy(update={"status": DriverStatus.BUSY})

            case OrderStatus.CONFIRMED:
                updates["confirmed_at"] = now

            case OrderStatus.EN_ROUTE:
                self._require_driver(order, driver)
                location = await self._geo.get_driver_location(driver.id)
                minutes = metadata.estimated_arrival_minutes
                if minutes is None:
                    minutes = self._geo.estimate_arrival_minutes(
                        location, order.pickup_latitude, order.pickup_longitude,
                    )
                updates["start_latitude"] = location.latitude if location else None
                updates["start_longitude"] = location.longitude if location else None
                updates["estimated_arrival_time"] = now + timedelta(minutes=minutes)

            case OrderStatus.STARTED:
                updates["started_at"] = now

            case OrderStatus.COMPLETED:
                self._require_driver(order, driver)
                updates["actual_price"] = order.estimated_price + metadata.additional_charges
                updates["completed_at"] = now
                driver_updates: dict[str, Any] = {
                    "status": DriverStatus.ONLINE,
                    "total_rides": driver.total_rides + 1,
                }
                if metadata.rating is not None:
                    updates["rating"] = metadata.rating
                    updates["rating_comment"] = metadata.rating_comment
                    driver_updates["rating"] = running_average(
                        driver.rating, driver.total_rides, metadata.rating,
                    )
                settlement = await self._billing.settle_completion(
                    uow,
                    order.model_copy(update=updates),
                    driver.model_copy(update=driver_updates),
                )
                order, new_driver = settlement.order, settlement.driver
                updates = {}

            case OrderStatus.CANCELLED:
                if previous in CANCEL_REASON_REQUIRED_STATUSES and not (metadata.reason or "").strip():
                    raise InvalidRequest(
                        f"Для отмены заказа в статусе {previous.value} нужна причина",
                    )
                updates["cancelled_at"] = now
                updates["cancellation_reason"] = metadata.reason
                if driver is not None and driver.status == DriverStatus.BUSY:
                    new_driver = driver.model_copy(update={"status": DriverStatus.ONLINE})
                if await self._billing.refund_bonus(uow, order):
                    updates["payment_status"] = PaymentStatus.REFUNDED

        order = await uow.orders.update(order.model_copy(update=updates))
        if new_driver is not None and new_driver != driver:
            new_driver = await uow.drivers.update(new_driver)

        await log_info(
            f"Заказ {order.order_number}: {previous.value} -> {new_status.value}"
            + (f", водитель {new_driver.id} {new_driver.status.value}" if new_driver else ""),
            type_msg=TypeMsg.INFO,
        )

        return TransitionResult(
            order=order,
            driver=new_driver,
            previous_status=previous,
            additional_data=status_additional_data(order, new_status, previous),
        )

    async def publish(self, result: TransitionResult) -> None:
        """Сбрасывает кэш и ставит уведомление в очередь. Вызывается после коммита."""
        if self._cache is not None:
            await self._cache.invalidate(result.order.id)
        self._notifications.order_status_changed(
            result.order, result.order.status, result.additional_data,
        )

    @staticmethod
    def _require_driver(order: Order, driver: Optional[Driver]) -> None:
        if driver is None:
            raise InvalidRequest(f"Заказу {order.order_number} не назначен водитель")
