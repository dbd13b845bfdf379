# src/core/orders/repository.py
"""
Репозиторий заказов.
Все записи идут через соединение единицы работы, чтение может идти через пул.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from asyncpg import Record

from src.common.constants import (
    ACTIVE_ORDER_STATUSES,
    AirportCode,
    CarClass,
    OrderStatus,
    OrderType,
    PaymentStatus,
    PaymentType,
)
from src.core.orders.models import Order
from src.infra.database import QueryExecutor

_ACTIVE_STATUS_VALUES = sorted(s.value for s in ACTIVE_ORDER_STATUSES)


def _to_float(value: Decimal | float | None) -> float | None:
    return float(value) if value is not None else None


def _to_numeric(value: float | None) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def _row_to_order(row: Record) -> Order:
    """Преобразует строку orders в модель."""
    return Order(
        id=str(row["id"]),
        order_number=row["order_number"],
        client_id=str(row["client_id"]),
        driver_id=str(row["driver_id"]) if row["driver_id"] else None,
        type=OrderType(row["type"]),
        status=OrderStatus(row["status"]),
        car_class=CarClass(row["car_class"]),
        pickup_datetime=row["pickup_datetime"],
        pickup_address=row["pickup_address"],
        pickup_latitude=row["pickup_latitude"],
        pickup_longitude=row["pickup_longitude"],
        destination_address=row["destination_address"],
        destination_latitude=row["destination_latitude"],
        destination_longitude=row["destination_longitude"],
        duration_hours=_to_float(row["duration_hours"]),
        airport_code=AirportCode(row["airport_code"]) if row["airport_code"] else None,
        additional_stops=row["additional_stops"],
        estimated_price=row["estimated_price"],
        actual_price=row["actual_price"],
        commission=row["commission"],
        payment_type=PaymentType(row["payment_type"]),
        payment_status=PaymentStatus(row["payment_status"]),
        bonus_amount=row["bonus_amount"],
        comment=row["comment"],
        cancellation_reason=row["cancellation_reason"],
        rating=_to_float(row["rating"]),
        rating_comment=row["rating_comment"],
        start_latitude=row["start_latitude"],
        start_longitude=row["start_longitude"],
        estimated_arrival_time=row["estimated_arrival_time"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        confirmed_at=row["confirmed_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        cancelled_at=row["cancelled_at"],
    )


class OrderRepository:
    """Репозиторий заказов."""

    def __init__(self, executor: QueryExecutor) -> None:
        """
        Args:
            executor: DatabaseManager или соединение текущей транзакции
        """
        self._db = executor

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_by_id(self, order_id: str, *, for_update: bool = False) -> Optional[Order]:
        """
        Получает заказ по ID.

        Args:
            order_id: UUID заказа
            for_update: Заблокировать строку до конца транзакции
        """
        query = "SELECT * FROM orders WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"

        row = await self._db.fetchrow(query, order_id)
        return _row_to_order(row) if row else None

    async def find_busy_driver_ids(self, pickup_datetime: datetime) -> set[str]:
        """ID водителей, у которых есть активный заказ на тот же слот подачи."""
        rows = await self._db.fetch(
            """
            SELECT DISTINCT driver_id
            FROM orders
            WHERE driver_id IS NOT NULL
              AND pickup_datetime = $1
              AND status = ANY($2::varchar[])
            """,
            pickup_datetime,
            _ACTIVE_STATUS_VALUES,
        )
        return {str(row["driver_id"]) for row in rows}

    async def has_active_order(self, driver_id: str) -> bool:
        """Есть ли у водителя заказ в активном статусе."""
        return await self._db.fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM orders
                WHERE driver_id = $1 AND status = ANY($2::varchar[])
            )
            """,
            driver_id,
            _ACTIVE_STATUS_VALUES,
        )

    async def get_active_by_driver(self, driver_id: str) -> Optional[Order]:
        """Текущий активный заказ водителя."""
        row = await self._db.fetchrow(
            """
            SELECT * FROM orders
            WHERE driver_id = $1 AND status = ANY($2::varchar[])
            ORDER BY pickup_datetime
            LIMIT 1
            """,
            driver_id,
            _ACTIVE_STATUS_VALUES,
        )
        return _row_to_order(row) if row else None

    async def list_by_client(self, client_id: str, limit: int = 20, offset: int = 0) -> list[Order]:
        """История заказов клиента, новые первыми."""
        rows = await self._db.fetch(
            """
            SELECT * FROM orders
            WHERE client_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            client_id,
            limit,
            offset,
        )
        return [_row_to_order(row) for row in rows]

    async def list_all_by_client(self, client_id: str) -> list[Order]:
        """Все заказы клиента для статистики."""
        rows = await self._db.fetch(
            "SELECT * FROM orders WHERE client_id = $1 ORDER BY created_at DESC",
            client_id,
        )
        return [_row_to_order(row) for row in rows]

    async def list_by_driver(self, driver_id: str) -> list[Order]:
        """Все заказы, когда-либо назначенные водителю."""
        rows = await self._db.fetch(
            "SELECT * FROM orders WHERE driver_id = $1 ORDER BY created_at DESC",
            driver_id,
        )
        return [_row_to_order(row) for row in rows]

    async def list_upcoming(self, client_id: str, now: datetime) -> list[Order]:
        """Незавершённые заказы клиента с подачей в будущем."""
        rows = await self._db.fetch(
            """
            SELECT * FROM orders
            WHERE client_id = $1
              AND pickup_datetime >= $2
              AND status NOT IN ('completed', 'cancelled')
            ORDER BY pickup_datetime
            """,
            client_id,
            now,
        )
        return [_row_to_order(row) for row in rows]

    async def list_available(self, car_class: CarClass | None = None) -> list[Order]:
        """Новые заказы без водителя (для водителей, выбирающих работу)."""
        query = "SELECT * FROM orders WHERE status = 'created' AND driver_id IS NULL"
        args: list[object] = []
        if car_class is not None:
            query += " AND car_class = $1"
            args.append(car_class.value)
        query += " ORDER BY pickup_datetime"

        rows = await self._db.fetch(query, *args)
        return [_row_to_order(row) for row in rows]

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def next_order_number(self, created_at: datetime) -> str:
        """Следующий номер заказа вида ORD-YYMMDD-NNNN."""
        seq = await self._db.fetchval("SELECT nextval('order_number_seq')")
        return f"ORD-{created_at:%y%m%d}-{seq:04d}"

    async def create(self, order: Order) -> Order:
        """Сохраняет новый заказ."""
        row = await self._db.fetchrow(
            """
            INSERT INTO orders (
                id, order_number, client_id, type, status, car_class, pickup_datetime,
                pickup_address, pickup_latitude, pickup_longitude,
                destination_address, destination_latitude, destination_longitude,
                duration_hours, airport_code, additional_stops,
                estimated_price, commission, payment_type, payment_status, bonus_amount, comment
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
                    $14, $15, $16, $17, $18, $19, $20, $21, $22)
            RETURNING *
            """,
            order.id,
            order.order_number,
            order.client_id,
            order.type.value,
            order.status.value,
            order.car_class.value,
            order.pickup_datetime,
            order.pickup_address,
            order.pickup_latitude,
            order.pickup_longitude,
            order.destination_address,
            order.destination_latitude,
            order.destination_longitude,
            _to_numeric(order.duration_hours),
            order.airport_code.value if order.airport_code else None,
            order.additional_stops,
            order.estimated_price,
            order.commission,
            order.payment_type.value,
            order.payment_status.value,
            order.bonus_amount,
            order.comment,
        )
        return _row_to_order(row)

    async def update(self, order: Order) -> Order:
        """Сохраняет изменяемые поля заказа (статус, водитель, цена, метки времени)."""
        row = await self._db.fetchrow(
            """
            UPDATE orders
            SET driver_id = $2,
                status = $3,
                actual_price = $4,
                commission = $5,
                payment_status = $6,
                bonus_amount = $7,
                cancellation_reason = $8,
                rating = $9,
                rating_comment = $10,
                start_latitude = $11,
                start_longitude = $12,
                estimated_arrival_time = $13,
                confirmed_at = $14,
                started_at = $15,
                completed_at = $16,
                cancelled_at = $17,
                updated_at = NOW()
            WHERE id = $1
            RETURNING *
            """,
            order.id,
            order.driver_id,
            order.status.value,
            order.actual_price,
            order.commission,
            order.payment_status.value,
            order.bonus_amount,
            order.cancellation_reason,
            _to_numeric(order.rating),
            order.rating_comment,
            order.start_latitude,
            order.start_longitude,
            order.estimated_arrival_time,
            order.confirmed_at,
            order.started_at,
            order.completed_at,
            order.cancelled_at,
        )
        return _row_to_order(row)
