# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секретные данные и адреса сервисов переопределяются из переменных окружения.
Без обязательных тарифов приложение не стартует.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.common.constants import AirportCode, CarClass


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить CONFIG_PATH)."""
    env_path = os.getenv("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "premium_taxi"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class ApiSettings(BaseModel):
    """Настройки HTTP API."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8085
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "premium_taxi"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "premium_taxi"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RedisTTLSettings(BaseModel):
    """Настройки TTL кэша (секунды)."""
    ORDER_TTL: int = 30
    DRIVER_LOCATION_TTL: int = 300


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "premium_taxi.events"

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class NotificationSettings(BaseModel):
    """Настройки доставки уведомлений."""
    ATTEMPTS: int = Field(3, ge=1)
    BACKOFF_BASE_SECONDS: float = Field(1.0, ge=0.0)


class OrderSettings(BaseModel):
    """Правила создания заказов."""
    MIN_PRE_ORDER_ADVANCE_MINUTES: int = 30
    MIN_HOURLY_DURATION: float = 2
    MAX_HOURLY_DURATION: float = 12
    DEFAULT_ETA_MINUTES: int = 15
    AVERAGE_SPEED_KMH: float = 30.0
    CASHBACK_PERCENT: float = 5.0


# =============================================================================
# ТАРИФЫ
# =============================================================================

class AirportFees(BaseModel):
    """Фиксированные тарифы до аэропортов."""
    SVO: int = Field(..., gt=0)
    DME: int = Field(..., gt=0)
    VKO: int = Field(..., gt=0)

    def fee_for(self, code: AirportCode) -> int:
        """Возвращает тариф для кода аэропорта."""
        return getattr(self, code.value)


class TimeBasedPricing(BaseModel):
    """Множители по времени суток и праздникам."""
    night_rate_multiplier: float = Field(..., ge=1.0)
    holiday_rate_multiplier: float = Field(..., ge=1.0)
    night_hours_start: int = Field(..., ge=0, le=23)
    night_hours_end: int = Field(..., ge=0, le=23)


class PricingRules(BaseModel):
    """Правила расчёта для класса автомобиля."""
    min_order_duration: float = Field(..., gt=0)
    max_order_duration: float = Field(..., gt=0)
    cancellation_fee_percent: float = Field(..., ge=0, le=100)
    waiting_rate: int = Field(..., ge=0)
    extra_stop_rate: int = Field(..., ge=0)
    min_price: int = Field(..., ge=0)
    max_discount_percent: float = Field(..., ge=0, le=100)

    @model_validator(mode="after")
    def check_duration_bounds(self) -> "PricingRules":
        """Минимальная длительность не может превышать максимальную."""
        if self.min_order_duration > self.max_order_duration:
            raise ValueError("min_order_duration больше max_order_duration")
        return self


class CarClassPricing(BaseModel):
    """Полный тариф одного класса автомобиля."""
    first_hour: int = Field(..., gt=0)
    minute_rate: int = Field(..., ge=0)
    airports: AirportFees
    time_based: TimeBasedPricing
    rules: PricingRules


class HourlyDiscount(BaseModel):
    """Порог скидки почасовой аренды."""
    hours: float = Field(..., gt=0)
    percent: float = Field(..., ge=0, le=100)


class CommissionSettings(BaseModel):
    """Комиссия платформы."""
    rate: float = Field(0.25, ge=0, le=1)
    min_amount: int | None = None
    max_amount: int | None = None

    @model_validator(mode="after")
    def check_bounds(self) -> "CommissionSettings":
        """Проверяет согласованность границ комиссии."""
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError("min_amount комиссии больше max_amount")
        return self


class PricingSettings(BaseModel):
    """Тарифы по классам, скидки и комиссия."""
    car_classes: dict[CarClass, CarClassPricing]
    hourly_discounts: list[HourlyDiscount]
    commission: CommissionSettings = Field(default_factory=CommissionSettings)
    timezone: str = "Europe/Moscow"

    @field_validator("car_classes")
    @classmethod
    def require_all_classes(cls, v: dict[CarClass, CarClassPricing]) -> dict[CarClass, CarClassPricing]:
        """Каждый класс автомобиля обязан иметь тариф."""
        missing = [c.value for c in CarClass if c not in v]
        if missing:
            raise ValueError(f"Нет тарифа для классов: {', '.join(missing)}")
        return v

    @field_validator("hourly_discounts")
    @classmethod
    def sort_discounts(cls, v: list[HourlyDiscount]) -> list[HourlyDiscount]:
        """Хранит пороги скидок по убыванию часов."""
        return sorted(v, key=lambda d: d.hours, reverse=True)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        """Проверяет, что часовой пояс известен."""
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as e:
            raise ValueError(f"Неизвестный часовой пояс: {v}") from e
        return v


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    redis_ttl: RedisTTLSettings = Field(default_factory=RedisTTLSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)
    pricing: PricingSettings

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты переопределяются из переменных окружения.
        """
        config_data = load_config_json(path)

        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        filtered_data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        if "PRICING" not in filtered_data:
            raise ValueError("В config.json отсутствует обязательная секция PRICING")

        return cls(
            system=SystemSettings(
                PROJECT_NAME=filtered_data.get("PROJECT_NAME", "premium_taxi"),
                VERSION=filtered_data.get("VERSION", "1.0.0"),
                DEBUG=filtered_data.get("DEBUG", True),
                ENVIRONMENT=os.getenv("ENVIRONMENT", filtered_data.get("ENVIRONMENT", "development")),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=filtered_data.get("LOG_LEVEL", "DEBUG"),
                LOG_TO_FILE=filtered_data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=filtered_data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=filtered_data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=filtered_data.get("LOG_MAX_BYTES", 10485760),
            ),
            api=ApiSettings(
                API_HOST=os.getenv("API_HOST", filtered_data.get("API_HOST", "0.0.0.0")),
                API_PORT=int(os.getenv("API_PORT", filtered_data.get("API_PORT", 8085))),
                CORS_ORIGINS=filtered_data.get("CORS_ORIGINS", ["*"]),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", filtered_data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", filtered_data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", filtered_data.get("DB_NAME", "premium_taxi")),
                DB_USER=os.getenv("DB_USER", filtered_data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", filtered_data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=filtered_data.get("DB_MIN_POOL_SIZE", 5),
                DB_MAX_POOL_SIZE=filtered_data.get("DB_MAX_POOL_SIZE", 20),
                DB_COMMAND_TIMEOUT=filtered_data.get("DB_COMMAND_TIMEOUT", 60),
                DB_RETRY_ATTEMPTS=filtered_data.get("DB_RETRY_ATTEMPTS", 3),
                DB_RETRY_DELAY=filtered_data.get("DB_RETRY_DELAY", 1.0),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", filtered_data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", filtered_data.get("REDIS_PORT", 6379))),
                REDIS_DB=filtered_data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", filtered_data.get("REDIS_PASSWORD", "")),
                REDIS_NAMESPACE=filtered_data.get("REDIS_NAMESPACE", "premium_taxi"),
                REDIS_MAX_CONNECTIONS=filtered_data.get("REDIS_MAX_CONNECTIONS", 50),
            ),
            redis_ttl=RedisTTLSettings(
                ORDER_TTL=filtered_data.get("ORDER_TTL", 30),
                DRIVER_LOCATION_TTL=filtered_data.get("DRIVER_LOCATION_TTL", 300),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_HOST=os.getenv("RABBITMQ_HOST", filtered_data.get("RABBITMQ_HOST", "localhost")),
                RABBITMQ_PORT=int(os.getenv("RABBITMQ_PORT", filtered_data.get("RABBITMQ_PORT", 5672))),
                RABBITMQ_USER=os.getenv("RABBITMQ_USER", filtered_data.get("RABBITMQ_USER", "guest")),
                RABBITMQ_PASSWORD=os.getenv("RABBITMQ_PASSWORD", filtered_data.get("RABBITMQ_PASSWORD", "guest")),
                RABBITMQ_VHOST=filtered_data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_EXCHANGE=filtered_data.get("RABBITMQ_EXCHANGE", "premium_taxi.events"),
            ),
            notifications=NotificationSettings(
                ATTEMPTS=filtered_data.get("NOTIFICATION_ATTEMPTS", 3),
                BACKOFF_BASE_SECONDS=filtered_data.get("NOTIFICATION_BACKOFF_BASE_SECONDS", 1.0),
            ),
            orders=OrderSettings(
                MIN_PRE_ORDER_ADVANCE_MINUTES=filtered_data.get("MIN_PRE_ORDER_ADVANCE_MINUTES", 30),
                MIN_HOURLY_DURATION=filtered_data.get("MIN_HOURLY_DURATION", 2),
                MAX_HOURLY_DURATION=filtered_data.get("MAX_HOURLY_DURATION", 12),
                DEFAULT_ETA_MINUTES=filtered_data.get("DEFAULT_ETA_MINUTES", 15),
                AVERAGE_SPEED_KMH=filtered_data.get("AVERAGE_SPEED_KMH", 30.0),
                CASHBACK_PERCENT=filtered_data.get("CASHBACK_PERCENT", 5.0),
            ),
            pricing=PricingSettings.model_validate(filtered_data["PRICING"]),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
