# src/api/dependencies.py
"""
Зависимости HTTP API: инфраструктура, сервисы и вызывающий участник.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from fastapi import Header

from src.common.constants import TypeMsg, UserRole
from src.common.exceptions import AuthorizationDenied, InvalidRequest
from src.common.logger import log_info
from src.core.users.models import Principal
from src.infra.database import DatabaseManager
from src.infra.event_bus import EventBus
from src.infra.redis_client import RedisClient

if TYPE_CHECKING:
    from src.core.drivers.service import DriverDirectory
    from src.core.matching.service import AssignmentEngine
    from src.core.notifications.service import NotificationSink
    from src.core.orders.service import OrderService


_db: Optional[DatabaseManager] = None
_redis: Optional[RedisClient] = None
_event_bus: Optional[EventBus] = None
_notifications: Optional["NotificationSink"] = None
_order_service: Optional["OrderService"] = None
_assignment_engine: Optional["AssignmentEngine"] = None
_driver_directory: Optional["DriverDirectory"] = None


async def init_dependencies() -> None:
    """Подключает инфраструктуру и собирает сервисы."""
    global _db, _redis, _event_bus, _notifications
    global _order_service, _assignment_engine, _driver_directory

    from src.config import settings
    from src.core.billing.service import BillingService
    from src.core.drivers.service import DriverDirectory
    from src.core.geo.service import GeoService
    from src.core.matching.service import AssignmentEngine
    from src.core.notifications.service import NotificationSink
    from src.core.orders.cache import OrderCache
    from src.core.orders.service import OrderService
    from src.core.orders.state_machine import OrderStatusMachine
    from src.core.pricing.service import PricingEngine
    from src.core.unit_of_work import UnitOfWorkFactory
    from src.infra.database import init_db
    from src.infra.event_bus import init_event_bus
    from src.infra.redis_client import init_redis

    _db = await init_db()
    _redis = await init_redis()
    _event_bus = await init_event_bus()

    pricing = PricingEngine(settings.pricing)
    uow_factory = UnitOfWorkFactory(_db)
    cache = OrderCache(_redis, ttl=settings.redis_ttl.ORDER_TTL)
    geo = GeoService(
        _redis,
        location_ttl=settings.redis_ttl.DRIVER_LOCATION_TTL,
        default_eta_minutes=settings.orders.DEFAULT_ETA_MINUTES,
        average_speed_kmh=settings.orders.AVERAGE_SPEED_KMH,
    )
    _notifications = NotificationSink(
        _event_bus,
        attempts=settings.notifications.ATTEMPTS,
        backoff_base=settings.notifications.BACKOFF_BASE_SECONDS,
    )
    billing = BillingService(pricing, cashback_percent=settings.orders.CASHBACK_PERCENT)
    state_machine = OrderStatusMachine(uow_factory, _notifications, geo, billing, cache)

    _driver_directory = DriverDirectory(uow_factory, geo)
    _assignment_engine = AssignmentEngine(uow_factory, _driver_directory, state_machine)
    _order_service = OrderService(
        uow_factory, pricing, state_machine, cache, _notifications, settings.orders,
    )

    await log_info("Сервисы заказов инициализированы", type_msg=TypeMsg.INFO)


async def close_dependencies() -> None:
    """Дожидается фоновых уведомлений и закрывает подключения."""
    global _db, _redis, _event_bus, _notifications

    from src.infra.database import close_db
    from src.infra.event_bus import close_event_bus
    from src.infra.redis_client import close_redis

    if _notifications:
        await _notifications.drain()
        _notifications = None

    if _event_bus:
        await close_event_bus()
        _event_bus = None

    if _redis:
        await close_redis()
        _redis = None

    if _db:
        await close_db()
        _db = None


async def get_db() -> DatabaseManager:
    if _db is None:
        raise RuntimeError("DatabaseManager не инициализирован")
    return _db


async def get_redis() -> RedisClient:
    if _redis is None:
        raise RuntimeError("RedisClient не инициализирован")
    return _redis


async def get_event_bus() -> EventBus:
    if _event_bus is None:
        raise RuntimeError("EventBus не инициализирован")
    return _event_bus


async def get_order_service() -> "OrderService":
    if _order_service is None:
        raise RuntimeError("OrderService не инициализирован")
    return _order_service


async def get_assignment_engine() -> "AssignmentEngine":
    if _assignment_engine is None:
        raise RuntimeError("AssignmentEngine не инициализирован")
    return _assignment_engine


async def get_driver_directory() -> "DriverDirectory":
    if _driver_directory is None:
        raise RuntimeError("DriverDirectory не инициализирован")
    return _driver_directory


# =============================================================================
# ВЫЗЫВАЮЩИЙ УЧАСТНИК
# =============================================================================

async def get_principal(
    x_user_id: str = Header(..., description="UUID аутентифицированного пользователя"),
    x_user_role: str = Header(..., description="Роль: client, driver, admin"),
) -> Principal:
    """Участник из заголовков, выставленных сервисом аутентификации."""
    try:
        role = UserRole(x_user_role.lower())
    except ValueError as e:
        raise InvalidRequest(f"Неизвестная роль: {x_user_role}") from e
    return Principal(user_id=x_user_id, role=role)


def require_role(principal: Principal, *roles: UserRole) -> None:
    """
    Raises:
        AuthorizationDenied: роль участника не входит в roles
    """
    if principal.role not in roles:
        raise AuthorizationDenied(
            f"Операция недоступна для роли {principal.role.value}",
        )
