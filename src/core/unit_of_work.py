# src/core/unit_of_work.py
"""
Единица работы.
Связывает репозитории с одним соединением внутри транзакции PostgreSQL:
выход из блока с исключением откатывает все изменения, соединение
в любом случае возвращается в пул.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

from src.common.exceptions import PersistenceFailure, ResourceUnavailable
from src.common.logger import log_error
from src.core.billing.repository import LedgerRepository
from src.core.drivers.repository import DriverRepository
from src.core.orders.repository import OrderRepository
from src.core.users.repository import UserRepository
from src.infra.database import DatabaseManager, QueryExecutor

# Частичный уникальный индекс: один активный заказ на водителя
ACTIVE_DRIVER_CONSTRAINT = "uq_orders_active_driver"

STORAGE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
)


class UnitOfWork:
    """Набор репозиториев, работающих через один исполнитель запросов."""

    def __init__(self, executor: QueryExecutor) -> None:
        self.orders = OrderRepository(executor)
        self.drivers = DriverRepository(executor)
        self.ledger = LedgerRepository(executor)
        self.users = UserRepository(executor)


def translate_storage_error(error: BaseException) -> Exception:
    """Преобразует ошибку хранилища в прикладную."""
    if isinstance(error, asyncpg.UniqueViolationError):
        if getattr(error, "constraint_name", None) == ACTIVE_DRIVER_CONSTRAINT:
            return ResourceUnavailable("Водитель стал недоступен")
    return PersistenceFailure(f"Ошибка хранилища: {error}")


class UnitOfWorkFactory:
    """
    Фабрика единиц работы.

    Example:
        async with uow_factory.begin() as uow:
            order = await uow.orders.get_by_id(order_id, for_update=True)
            ...
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[UnitOfWork]:
        """Открывает транзакцию; ошибки хранилища становятся PersistenceFailure."""
        try:
            async with self._db.transaction() as conn:
                yield UnitOfWork(conn)
        except STORAGE_ERRORS as e:
            await log_error(f"Транзакция откатилась из-за ошибки хранилища: {e}")
            raise translate_storage_error(e) from e

    @asynccontextmanager
    async def read(self) -> AsyncIterator[UnitOfWork]:
        """Чтение вне транзакции через пул."""
        try:
            yield UnitOfWork(self._db)
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка чтения из хранилища: {e}")
            raise translate_storage_error(e) from e
