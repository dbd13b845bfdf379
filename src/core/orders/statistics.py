# src/core/orders/statistics.py
"""
Статистика заказов клиента и водителя.
Считается по выборке заказов, все суммы в рублях.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from pydantic import BaseModel, Field

from src.common.constants import OrderStatus
from src.core.drivers.models import Driver
from src.core.orders.models import Order

LAST_PERIOD_DAYS = 30


class PeriodStatistics(BaseModel):
    """Срез за период (последние 30 дней, сегодня)."""

    orders_count: int = 0
    completed_count: int = 0
    amount: int = Field(0, description="Потрачено клиентом или заработано водителем")


class ClientStatistics(BaseModel):
    """Статистика клиента."""

    total_orders: int
    completed_orders: int
    cancelled_orders: int
    total_spent: int
    average_order_cost: float
    completion_rate: float = Field(..., description="Процент завершённых среди неотменённых")
    last_month: PeriodStatistics


class DriverStatistics(BaseModel):
    """Статистика и заработок водителя."""

    driver_id: str
    total_orders: int
    completed_orders: int
    cancelled_orders: int
    total_earned: int = Field(..., description="Выручка за вычетом комиссии по завершённым заказам")
    average_order_earning: float
    completion_rate: float
    average_rating: float = Field(..., description="Средняя оценка оценённых поездок")
    last_month: PeriodStatistics
    today: PeriodStatistics

    # Баланс
    rating: float
    total_rides: int
    commission_balance: int
    ledger_earnings: int = Field(..., description="Заработок по проводкам оплаты")


def order_price(order: Order) -> int:
    """Итоговая цена, а до завершения расчётная."""
    return order.actual_price if order.actual_price is not None else order.estimated_price


def driver_earning(order: Order) -> int:
    return order_price(order) - order.commission


def completion_rate(orders: list[Order]) -> float:
    """
    Процент завершённых заказов среди неотменённых.
    Без заказов 100, если все отменены 0.
    """
    if not orders:
        return 100.0
    completed = sum(1 for o in orders if o.status == OrderStatus.COMPLETED)
    not_cancelled = sum(1 for o in orders if o.status != OrderStatus.CANCELLED)
    if not_cancelled == 0:
        return 0.0
    return round(completed / not_cancelled * 100, 1)


def _period(orders: Iterable[Order], amount: Callable[[Order], int]) -> PeriodStatistics:
    orders = list(orders)
    completed = [o for o in orders if o.status == OrderStatus.COMPLETED]
    return PeriodStatistics(
        orders_count=len(orders),
        completed_count=len(completed),
        amount=sum(amount(o) for o in completed),
    )


def _created_since(orders: list[Order], since: datetime) -> list[Order]:
    return [o for o in orders if o.created_at is not None and o.created_at >= since]


def build_client_statistics(orders: list[Order], now: datetime) -> ClientStatistics:
    """
    Args:
        orders: Все заказы клиента
        now: Текущее время (aware)
    """
    completed = [o for o in orders if o.status == OrderStatus.COMPLETED]
    spent = sum(order_price(o) for o in completed)

    return ClientStatistics(
        total_orders=len(orders),
        completed_orders=len(completed),
        cancelled_orders=sum(1 for o in orders if o.status == OrderStatus.CANCELLED),
        total_spent=spent,
        average_order_cost=round(spent / len(completed), 2) if completed else 0.0,
        completion_rate=completion_rate(orders),
        last_month=_period(_created_since(orders, now - timedelta(days=LAST_PERIOD_DAYS)), order_price),
    )


def build_driver_statistics(
    orders: list[Order],
    driver: Driver,
    ledger_earnings: int,
    now: datetime,
    local_date: Callable[[datetime], date],
) -> DriverStatistics:
    """
    Args:
        orders: Все заказы водителя
        driver: Запись водителя (рейтинг, баланс комиссии)
        ledger_earnings: Сумма проводок оплаты за вычетом комиссии
        now: Текущее время (aware)
        local_date: Перевод момента в календарную дату часового пояса тарифов
    """
    completed = [o for o in orders if o.status == OrderStatus.COMPLETED]
    earned = sum(driver_earning(o) for o in completed)
    ratings = [o.rating for o in completed if o.rating is not None]
    today = local_date(now)

    return DriverStatistics(
        driver_id=driver.id,
        total_orders=len(orders),
        completed_orders=len(completed),
        cancelled_orders=sum(1 for o in orders if o.status == OrderStatus.CANCELLED),
        total_earned=earned,
        average_order_earning=round(earned / len(completed), 2) if completed else 0.0,
        completion_rate=completion_rate(orders),
        average_rating=round(sum(ratings) / len(ratings), 1) if ratings else 0.0,
        last_month=_period(_created_since(orders, now - timedelta(days=LAST_PERIOD_DAYS)), driver_earning),
        today=_period(
            (o for o in orders if o.created_at is not None and local_date(o.created_at) == today),
            driver_earning,
        ),
        rating=driver.rating,
        total_rides=driver.total_rides,
        commission_balance=driver.commission_balance,
        ledger_earnings=ledger_earnings,
    )
