# src/core/drivers/repository.py
"""
Репозиторий водителей.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from asyncpg import Record

from src.common.constants import CarClass, DriverStatus
from src.core.drivers.models import Driver
from src.infra.database import QueryExecutor

_COLUMNS = """
    id, user_id, car_class, status, rating, total_rides, commission_balance,
    car_model, car_number, car_year, car_color, created_at, updated_at
"""


def _row_to_driver(row: Record) -> Driver:
    return Driver(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        car_class=CarClass(row["car_class"]),
        status=DriverStatus(row["status"]),
        rating=float(row["rating"]),
        total_rides=row["total_rides"],
        commission_balance=row["commission_balance"],
        car_model=row["car_model"],
        car_number=row["car_number"],
        car_year=row["car_year"],
        car_color=row["car_color"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DriverRepository:
    """Репозиторий водителей."""

    def __init__(self, executor: QueryExecutor) -> None:
        """
        Args:
            executor: DatabaseManager или соединение текущей транзакции
        """
        self._db = executor

    async def get_by_id(self, driver_id: str, *, for_update: bool = False) -> Optional[Driver]:
        """
        Получает водителя по ID.

        Args:
            driver_id: UUID водителя
            for_update: Заблокировать строку до конца транзакции
        """
        query = f"SELECT {_COLUMNS} FROM drivers WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"

        row = await self._db.fetchrow(query, driver_id)
        return _row_to_driver(row) if row else None

    async def get_by_user_id(self, user_id: str) -> Optional[Driver]:
        """Получает водителя по UUID пользователя."""
        row = await self._db.fetchrow(f"SELECT {_COLUMNS} FROM drivers WHERE user_id = $1", user_id)
        return _row_to_driver(row) if row else None

    async def find_available(
        self,
        car_class: CarClass,
        exclude_ids: Iterable[str] = (),
    ) -> list[Driver]:
        """
        Возвращает водителей на линии нужного класса.

        Args:
            car_class: Класс автомобиля
            exclude_ids: ID водителей, занятых на этот слот (пустой набор не фильтрует)
        """
        excluded = list(exclude_ids)
        query = f"SELECT {_COLUMNS} FROM drivers WHERE car_class = $1 AND status = $2"
        args: list[object] = [car_class.value, DriverStatus.ONLINE.value]

        if excluded:
            query += " AND NOT (id = ANY($3::uuid[]))"
            args.append(excluded)

        query += " ORDER BY created_at, id"
        rows = await self._db.fetch(query, *args)
        return [_row_to_driver(row) for row in rows]

    async def update(self, driver: Driver) -> Driver:
        """Сохраняет изменяемые поля водителя."""
        row = await self._db.fetchrow(
            f"""
            UPDATE drivers
            SET status = $2,
                rating = $3,
                total_rides = $4,
                commission_balance = $5,
                updated_at = NOW()
            WHERE id = $1
            RETURNING {_COLUMNS}
            """,
            driver.id,
            driver.status.value,
            Decimal(str(driver.rating)),
            driver.total_rides,
            driver.commission_balance,
        )
        return _row_to_driver(row)
