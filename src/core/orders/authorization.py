# src/core/orders/authorization.py
"""
Проверка прав на смену статуса заказа.
Обычная условная логика по роли и владению заказом.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.common.constants import OrderStatus, UserRole
from src.core.drivers.models import Driver
from src.core.orders.models import Order
from src.core.users.models import Principal

# Статусы, которые назначенный водитель выставляет сам.
# Отмена доступна только клиенту-владельцу и администратору.
DRIVER_REQUESTABLE_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.EN_ROUTE,
    OrderStatus.ARRIVED,
    OrderStatus.STARTED,
    OrderStatus.COMPLETED,
})


@dataclass(frozen=True)
class AccessDecision:
    """Результат проверки прав."""
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> AccessDecision:
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> AccessDecision:
        return cls(False, reason)


def can_view(order: Order, principal: Principal, driver: Optional[Driver] = None) -> AccessDecision:
    """Видимость заказа: клиент-владелец, назначенный водитель, администратор."""
    if principal.role == UserRole.ADMIN:
        return AccessDecision.allow()
    if principal.role == UserRole.CLIENT and order.client_id == principal.user_id:
        return AccessDecision.allow()
    if principal.role == UserRole.DRIVER and driver is not None and driver.user_id == principal.user_id:
        return AccessDecision.allow()
    return AccessDecision.deny("Нет доступа к заказу")


def can_transition(
    order: Order,
    new_status: OrderStatus,
    principal: Principal,
    driver: Optional[Driver] = None,
) -> AccessDecision:
    """
    Может ли участник перевести заказ в new_status.

    Args:
        order: Заказ
        new_status: Запрошенный статус
        principal: Вызывающий
        driver: Назначенный водитель заказа (если есть)
    """
    match principal.role:
        case UserRole.ADMIN:
            return AccessDecision.allow()

        case UserRole.CLIENT:
            if order.client_id != principal.user_id:
                return AccessDecision.deny("Заказ принадлежит другому клиенту")
            if new_status != OrderStatus.CANCELLED:
                return AccessDecision.deny("Клиент может только отменить заказ")
            return AccessDecision.allow()

        case UserRole.DRIVER:
            if driver is None or driver.user_id != principal.user_id:
                return AccessDecision.deny("Заказ назначен другому водителю")
            if new_status not in DRIVER_REQUESTABLE_STATUSES:
                return AccessDecision.deny(f"Водитель не может выставить статус {new_status.value}")
            return AccessDecision.allow()

    return AccessDecision.deny("Неизвестная роль")
