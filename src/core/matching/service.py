# src/core/matching/service.py
"""
Назначение водителя на заказ.

Двухфазная схема: кандидаты подбираются и ранжируются вне транзакции,
затем выбранный водитель блокируется и перепроверяется внутри транзакции
резервирования. Перепроверка и уникальный индекс активных заказов
являются точкой сериализации конкурентных назначений.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from src.common.constants import DriverStatus, OrderStatus, TypeMsg, UserRole
from src.common.exceptions import (
    AuthorizationDenied,
    InvalidStatusTransition,
    NotFound,
    ResourceUnavailable,
)
from src.common.logger import log_info, log_warning
from src.core.drivers.models import Driver
from src.core.drivers.service import DriverDirectory
from src.core.orders.models import Order, StatusMetadata
from src.core.orders.state_machine import OrderStatusMachine, TransitionResult
from src.core.unit_of_work import UnitOfWorkFactory
from src.core.users.models import Principal

RATING_WEIGHT = 0.7
EXPERIENCE_WEIGHT = 0.3
EXPERIENCE_CAP_RIDES = 1000
MAX_RATING = 5.0


@dataclass(frozen=True)
class DriverCandidate:
    """Кандидат на заказ и его оценка."""
    driver: Driver
    score: float


def score_driver(driver: Driver) -> float:
    """
    Оценка кандидата: рейтинг 70%, опыт (до 1000 поездок) 30%.

    score = (rating / 5) * 0.7 + min(total_rides / 1000, 1) * 0.3
    """
    experience = min(driver.total_rides / EXPERIENCE_CAP_RIDES, 1.0)
    return (driver.rating / MAX_RATING) * RATING_WEIGHT + experience * EXPERIENCE_WEIGHT


def rank_candidates(drivers: Iterable[Driver]) -> list[DriverCandidate]:
    """Кандидаты по убыванию оценки; при равенстве сохраняется исходный порядок."""
    candidates = [DriverCandidate(driver=d, score=score_driver(d)) for d in drivers]
    return sorted(candidates, key=lambda c: c.score, reverse=True)


class AssignmentEngine:
    """Подбор и резервирование водителя для заказа."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        directory: DriverDirectory,
        state_machine: OrderStatusMachine,
    ) -> None:
        self._uow_factory = uow_factory
        self._directory = directory
        self._state_machine = state_machine

    async def assign(self, order_id: str, principal: Principal) -> Order:
        """
        Назначает заказу лучшего доступного водителя.

        Args:
            order_id: UUID заказа
            principal: Администратор или клиент-владелец заказа

        Returns:
            Заказ в статусе DRIVER_ASSIGNED

        Raises:
            NotFound: заказа нет
            AuthorizationDenied: вызывающий не владелец и не администратор
            InvalidStatusTransition: заказ не в статусе CREATED
            ResourceUnavailable: нет свободных водителей или выбранный водитель занят
        """
        async with self._uow_factory.read() as uow:
            order = await uow.orders.get_by_id(order_id)
        if order is None:
            raise NotFound(f"Заказ {order_id} не найден")

        self._check_access(order, principal)
        self._require_created(order)

        drivers = await self._directory.find_available_drivers(order.car_class, order.pickup_datetime)
        ranked = rank_candidates(drivers)
        if not ranked:
            await log_warning(f"Заказ {order.order_number}: нет свободных водителей {order.car_class.value}")
            raise ResourceUnavailable("Нет свободных водителей")

        best = ranked[0]
        result = await self._reserve(order_id, best.driver.id)
        await self._state_machine.publish(result)

        await log_info(
            f"Заказ {result.order.order_number}: назначен водитель {best.driver.id} "
            f"(score={best.score:.3f}, кандидатов {len(ranked)})",
            type_msg=TypeMsg.INFO,
        )
        return result.order

    async def _reserve(self, order_id: str, driver_id: str) -> TransitionResult:
        async with self._uow_factory.begin() as uow:
            order = await uow.orders.get_by_id(order_id, for_update=True)
            if order is None:
                raise NotFound(f"Заказ {order_id} не найден")
            self._require_created(order)

            driver = await uow.drivers.get_by_id(driver_id, for_update=True)
            if (
                driver is None
                or driver.status != DriverStatus.ONLINE
                or await uow.orders.has_active_order(driver_id)
            ):
                await log_warning(f"Заказ {order.order_number}: водитель {driver_id} стал недоступен")
                raise ResourceUnavailable("Водитель стал недоступен")

            return await self._state_machine.apply(
                uow,
                order.model_copy(update={"driver_id": driver.id}),
                OrderStatus.DRIVER_ASSIGNED,
                StatusMetadata(),
                driver,
            )

    @staticmethod
    def _check_access(order: Order, principal: Principal) -> None:
        if principal.role == UserRole.ADMIN:
            return
        if principal.role == UserRole.CLIENT and order.client_id == principal.user_id:
            return
        raise AuthorizationDenied("Назначать водителя может владелец заказа или администратор")

    @staticmethod
    def _require_created(order: Order) -> None:
        if order.status != OrderStatus.CREATED:
            raise InvalidStatusTransition(
                f"Назначение возможно только для нового заказа, текущий статус {order.status.value}",
                details={"from": order.status.value, "to": OrderStatus.DRIVER_ASSIGNED.value},
            )
