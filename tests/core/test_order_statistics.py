# tests/core/test_order_statistics.py
"""
Тесты статистики заказов (src/core/orders/statistics.py).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from fakes import make_driver, make_order
from src.common.constants import OrderStatus
from src.core.orders.statistics import (
    build_client_statistics,
    build_driver_statistics,
    completion_rate,
    order_price,
)

MOSCOW = ZoneInfo("Europe/Moscow")
NOW = datetime(2026, 11, 10, 9, 0, tzinfo=timezone.utc)


def _moscow_date(moment: datetime):
    return moment.astimezone(MOSCOW).date()


def _order(status: OrderStatus, days_ago: float = 0, **kw):
    return make_order("client-1", status=status, created_at=NOW - timedelta(days=days_ago), **kw)


class TestHelpers:
    """Цена и доля завершённых."""

    def test_order_price_prefers_actual(self) -> None:
        assert order_price(_order(OrderStatus.COMPLETED, actual_price=8480)) == 8480
        assert order_price(_order(OrderStatus.CREATED)) == 7980

    @pytest.mark.parametrize("statuses,expected", [
        ([], 100.0),
        ([OrderStatus.CANCELLED, OrderStatus.CANCELLED], 0.0),
        ([OrderStatus.COMPLETED, OrderStatus.COMPLETED, OrderStatus.CANCELLED], 100.0),
        ([OrderStatus.COMPLETED, OrderStatus.CREATED, OrderStatus.STARTED], 33.3),
    ])
    def test_completion_rate(self, statuses: list[OrderStatus], expected: float) -> None:
        assert completion_rate([_order(s) for s in statuses]) == expected


class TestClientStatistics:
    """Статистика клиента."""

    def test_totals_and_last_month(self) -> None:
        orders = [
            _order(OrderStatus.COMPLETED, days_ago=1, actual_price=8480),
            _order(OrderStatus.COMPLETED, days_ago=45, actual_price=6000),
            _order(OrderStatus.CANCELLED, days_ago=2),
            _order(OrderStatus.CREATED, days_ago=0),
        ]

        stats = build_client_statistics(orders, NOW)

        assert (stats.total_orders, stats.completed_orders, stats.cancelled_orders) == (4, 2, 1)
        assert stats.total_spent == 14480
        assert stats.average_order_cost == 7240
        assert stats.completion_rate == 66.7
        assert stats.last_month.orders_count == 3
        assert stats.last_month.completed_count == 1
        assert stats.last_month.amount == 8480

    def test_empty(self) -> None:
        stats = build_client_statistics([], NOW)

        assert stats.total_orders == 0
        assert stats.average_order_cost == 0.0
        assert stats.completion_rate == 100.0


class TestDriverStatistics:
    """Статистика и заработок водителя."""

    def test_earnings_net_of_commission(self) -> None:
        driver = make_driver(rating=4.82, total_rides=11, commission_balance=4115)
        orders = [
            _order(OrderStatus.COMPLETED, actual_price=7980, commission=1995, rating=5),
            _order(OrderStatus.COMPLETED, days_ago=3, actual_price=8480, commission=2120, rating=4),
            _order(OrderStatus.COMPLETED, days_ago=40, actual_price=6000, commission=1500),
            _order(OrderStatus.CANCELLED, days_ago=1),
        ]

        stats = build_driver_statistics(orders, driver, 16845, NOW, _moscow_date)

        assert stats.total_earned == (7980 - 1995) + (8480 - 2120) + (6000 - 1500)
        assert stats.average_order_earning == round(stats.total_earned / 3, 2)
        assert stats.average_rating == 4.5
        assert stats.completion_rate == 100.0
        assert stats.last_month.completed_count == 2
        assert stats.last_month.amount == (7980 - 1995) + (8480 - 2120)
        assert stats.today.orders_count == 1
        assert stats.today.amount == 7980 - 1995
        assert (stats.rating, stats.total_rides, stats.commission_balance) == (4.82, 11, 4115)
        assert stats.ledger_earnings == 16845

    def test_today_uses_local_calendar_day(self) -> None:
        # 23:30 UTC накануне это уже 02:30 по Москве того же дня, что и NOW
        late = make_order(
            "client-1",
            status=OrderStatus.COMPLETED,
            created_at=datetime(2026, 11, 9, 23, 30, tzinfo=timezone.utc),
            actual_price=7980,
            commission=1995,
        )

        stats = build_driver_statistics([late], make_driver(), 0, NOW, _moscow_date)

        assert stats.today.orders_count == 1

    def test_no_rides(self) -> None:
        stats = build_driver_statistics([], make_driver(rating=0.0, total_rides=0), 0, NOW, _moscow_date)

        assert stats.total_earned == 0
        assert stats.average_rating == 0.0
        assert stats.today.orders_count == 0
