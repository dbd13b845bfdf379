# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей."""
    CLIENT = "client"
    DRIVER = "driver"
    ADMIN = "admin"


class OrderType(str, Enum):
    """Типы заказа."""
    PRE_ORDER = "pre_order"
    HOURLY = "hourly"
    AIRPORT = "airport"


class OrderStatus(str, Enum):
    """Статусы заказа."""
    CREATED = "created"
    DRIVER_ASSIGNED = "driver_assigned"
    CONFIRMED = "confirmed"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CarClass(str, Enum):
    """Классы автомобилей."""
    PREMIUM = "premium"
    PREMIUM_LARGE = "premium_large"
    ELITE = "elite"


class DriverStatus(str, Enum):
    """Статусы водителя."""
    OFFLINE = "offline"
    ONLINE = "online"
    BUSY = "busy"
    BREAK = "break"


class PaymentType(str, Enum):
    """Способы оплаты."""
    CASH = "cash"
    BONUS = "bonus"
    MIXED = "mixed"


class PaymentStatus(str, Enum):
    """Статусы оплаты."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class TransactionType(str, Enum):
    """Типы финансовых операций."""
    PAYMENT = "payment"
    COMMISSION = "commission"
    BONUS = "bonus"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    """Статусы финансовых операций."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AirportCode(str, Enum):
    """Коды аэропортов с фиксированным тарифом."""
    SVO = "SVO"
    DME = "DME"
    VKO = "VKO"


class NotificationType(str, Enum):
    """Типы уведомлений."""
    ORDER_STATUS = "orderStatus"
    SYSTEM = "system"


# Заказ занимает водителя во всех этих статусах
ACTIVE_ORDER_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.DRIVER_ASSIGNED,
    OrderStatus.CONFIRMED,
    OrderStatus.EN_ROUTE,
    OrderStatus.ARRIVED,
    OrderStatus.STARTED,
})

TERMINAL_ORDER_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
})

# Отмена из этих статусов требует указания причины
CANCEL_REASON_REQUIRED_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.EN_ROUTE,
    OrderStatus.ARRIVED,
    OrderStatus.STARTED,
})

# Ключевые слова в адресе для определения аэропорта
AIRPORT_KEYWORDS: dict[str, AirportCode] = {
    "шереметьево": AirportCode.SVO,
    "sheremetyevo": AirportCode.SVO,
    "домодедово": AirportCode.DME,
    "domodedovo": AirportCode.DME,
    "внуково": AirportCode.VKO,
    "vnukovo": AirportCode.VKO,
}
