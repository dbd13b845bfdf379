# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("RABBITMQ_PASSWORD", "guest")

from fakes import (  # noqa: E402
    FakeUnitOfWorkFactory,
    InMemoryStore,
    load_pricing_settings,
)
from src.config.loader import OrderSettings, PricingSettings  # noqa: E402
from src.core.billing.service import BillingService  # noqa: E402
from src.core.drivers.service import DriverDirectory  # noqa: E402
from src.core.geo.service import GeoService  # noqa: E402
from src.core.matching.service import AssignmentEngine  # noqa: E402
from src.core.notifications.service import NotificationSink  # noqa: E402
from src.core.orders.cache import OrderCache  # noqa: E402
from src.core.orders.service import OrderService  # noqa: E402
from src.core.orders.state_machine import OrderStatusMachine  # noqa: E402
from src.core.pricing.service import PricingEngine  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config(config_path: Path) -> dict[str, Any]:
    """Конфигурация проекта с тестовыми значениями подключения."""
    config = json.loads(config_path.read_text(encoding="utf-8"))
    config.update({
        "PROJECT_NAME": "premium_taxi_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
        "DB_NAME": "premium_taxi_test",
        "REDIS_DB": 1,
        "REDIS_NAMESPACE": "premium_taxi_test",
        "ORDER_TTL": 60,
    })
    return config


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2), encoding="utf-8")
    return config_file


@pytest.fixture(scope="session")
def pricing_settings() -> PricingSettings:
    """Тарифы из config/config.json."""
    return load_pricing_settings()


@pytest.fixture
def order_settings() -> OrderSettings:
    """Правила создания заказов по умолчанию."""
    return OrderSettings()


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.get_json = AsyncMock(return_value=None)
    redis.set_json = AsyncMock(return_value=True)
    redis.get_model = AsyncMock(return_value=None)
    redis.set_model = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.health_check = AsyncMock(return_value=True)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# ФИКСТУРЫ СЕРВИСОВ
# =============================================================================

@pytest.fixture
def pricing(pricing_settings: PricingSettings) -> PricingEngine:
    """Движок цен с тарифами проекта."""
    return PricingEngine(pricing_settings)


@pytest.fixture
def store() -> InMemoryStore:
    """Пустое in-memory хранилище."""
    return InMemoryStore()


@pytest.fixture
def uow_factory(store: InMemoryStore) -> FakeUnitOfWorkFactory:
    """Фабрика единиц работы поверх in-memory хранилища."""
    return FakeUnitOfWorkFactory(store)


@pytest.fixture
def notifications(mock_event_bus: AsyncMock) -> NotificationSink:
    """Доставка уведомлений без пауз между попытками."""
    return NotificationSink(mock_event_bus, attempts=3, backoff_base=0)


@pytest.fixture
def geo(mock_redis: AsyncMock) -> GeoService:
    return GeoService(mock_redis, location_ttl=300, default_eta_minutes=15, average_speed_kmh=30.0)


@pytest.fixture
def cache(mock_redis: AsyncMock) -> OrderCache:
    return OrderCache(mock_redis, ttl=30)


@pytest.fixture
def billing(pricing: PricingEngine) -> BillingService:
    return BillingService(pricing, cashback_percent=5.0)


@pytest.fixture
def state_machine(
    uow_factory: FakeUnitOfWorkFactory,
    notifications: NotificationSink,
    geo: GeoService,
    billing: BillingService,
    cache: OrderCache,
) -> OrderStatusMachine:
    """Машина состояний с in-memory хранилищем и моками Redis/RabbitMQ."""
    return OrderStatusMachine(uow_factory, notifications, geo, billing, cache)


@pytest.fixture
def directory(uow_factory: FakeUnitOfWorkFactory, geo: GeoService) -> DriverDirectory:
    return DriverDirectory(uow_factory, geo)


@pytest.fixture
def assignment_engine(
    uow_factory: FakeUnitOfWorkFactory,
    directory: DriverDirectory,
    state_machine: OrderStatusMachine,
) -> AssignmentEngine:
    return AssignmentEngine(uow_factory, directory, state_machine)


@pytest.fixture
def order_service(
    uow_factory: FakeUnitOfWorkFactory,
    pricing: PricingEngine,
    state_machine: OrderStatusMachine,
    cache: OrderCache,
    notifications: NotificationSink,
    order_settings: OrderSettings,
) -> OrderService:
    """Сервис заказов, собранный на in-memory хранилище."""
    return OrderService(uow_factory, pricing, state_machine, cache, notifications, order_settings)


@pytest.fixture
def mock_order_service() -> MagicMock:
    """Мок сервиса заказов для тестов HTTP API."""
    service = MagicMock()
    for name in (
        "create_order", "get_order", "get_client_orders", "get_upcoming_orders",
        "get_available_orders", "get_driver_active_order", "update_status",
        "cancel_order", "rate_order", "get_client_statistics", "get_driver_statistics",
    ):
        setattr(service, name, AsyncMock())
    return service
