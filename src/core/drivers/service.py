# src/core/drivers/service.py
"""
Справочник водителей.
Запросы доступности, ручная смена статуса и обновление координат.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from src.common.constants import CarClass, DriverStatus, TypeMsg, UserRole
from src.common.exceptions import AuthorizationDenied, InvalidRequest, InvalidStatusTransition, NotFound
from src.common.logger import log_info
from src.core.drivers.models import Driver, DriverLocation
from src.core.geo.service import GeoService
from src.core.unit_of_work import UnitOfWorkFactory
from src.core.users.models import Principal

DRIVER_STATUS_TRANSITIONS: dict[DriverStatus, frozenset[DriverStatus]] = {
    DriverStatus.OFFLINE: frozenset({DriverStatus.ONLINE}),
    DriverStatus.ONLINE: frozenset({DriverStatus.OFFLINE, DriverStatus.BUSY, DriverStatus.BREAK}),
    DriverStatus.BUSY: frozenset({DriverStatus.ONLINE}),
    DriverStatus.BREAK: frozenset({DriverStatus.ONLINE, DriverStatus.OFFLINE}),
}


def can_change_status(current: DriverStatus, new: DriverStatus) -> bool:
    """Разрешён ли переход по графу статусов водителя."""
    return new in DRIVER_STATUS_TRANSITIONS.get(current, frozenset())


class DriverDirectory:
    """Чтение и изменение записей водителей."""

    def __init__(self, uow_factory: UnitOfWorkFactory, geo: GeoService) -> None:
        self._uow_factory = uow_factory
        self._geo = geo

    async def find_available_drivers(self, car_class: CarClass, pickup_datetime: datetime) -> list[Driver]:
        """
        Водители на линии нужного класса без активного заказа на тот же слот.

        Args:
            car_class: Класс автомобиля
            pickup_datetime: Время подачи заказа
        """
        async with self._uow_factory.read() as uow:
            busy_ids = await uow.orders.find_busy_driver_ids(pickup_datetime)
            return await uow.drivers.find_available(car_class, exclude_ids=busy_ids)

    async def get_driver(self, driver_id: str) -> Driver:
        """
        Raises:
            NotFound: водителя нет
        """
        async with self._uow_factory.read() as uow:
            driver = await uow.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFound(f"Водитель {driver_id} не найден")
        return driver

    async def get_driver_by_user(self, user_id: str) -> Optional[Driver]:
        async with self._uow_factory.read() as uow:
            return await uow.drivers.get_by_user_id(user_id)

    async def change_status(
        self,
        driver_id: str,
        new_status: DriverStatus,
        principal: Optional[Principal] = None,
    ) -> Driver:
        """
        Ручная смена статуса водителем или администратором.

        BUSY выставляется только резервированием, а водитель с активным
        заказом не может ни уйти в OFFLINE, ни выйти из BUSY вручную.

        Raises:
            NotFound: водителя нет
            AuthorizationDenied: водитель меняет чужой статус
            InvalidStatusTransition: переход не входит в граф статусов
            InvalidRequest: ручной BUSY или активный заказ
        """
        if new_status == DriverStatus.BUSY:
            raise InvalidRequest("Статус BUSY устанавливается только при назначении на заказ")

        async with self._uow_factory.begin() as uow:
            driver = await uow.drivers.get_by_id(driver_id, for_update=True)
            if driver is None:
                raise NotFound(f"Водитель {driver_id} не найден")

            if principal is not None and principal.role != UserRole.ADMIN:
                if principal.role != UserRole.DRIVER or driver.user_id != principal.user_id:
                    raise AuthorizationDenied("Можно менять только свой статус")

            if not can_change_status(driver.status, new_status):
                raise InvalidStatusTransition(
                    f"Нельзя сменить статус водителя {driver.status.value} -> {new_status.value}",
                    details={"from": driver.status.value, "to": new_status.value},
                )

            if await uow.orders.has_active_order(driver.id):
                raise InvalidRequest("У водителя есть активный заказ")

            previous = driver.status
            driver = await uow.drivers.update(driver.model_copy(update={"status": new_status}))

        await log_info(
            f"Водитель {driver.id}: {previous.value} -> {new_status.value}",
            type_msg=TypeMsg.INFO,
        )
        return driver

    async def update_location(
        self,
        driver_id: str,
        latitude: float,
        longitude: float,
        principal: Optional[Principal] = None,
    ) -> DriverLocation:
        """
        Сохраняет последнюю позицию водителя.

        Raises:
            NotFound: водителя нет
            AuthorizationDenied: водитель обновляет чужую позицию
        """
        driver = await self.get_driver(driver_id)
        if principal is not None and principal.role != UserRole.ADMIN and driver.user_id != principal.user_id:
            raise AuthorizationDenied("Можно обновлять только свою позицию")
        return await self._geo.update_driver_location(driver.id, latitude, longitude)
