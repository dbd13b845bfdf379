# src/core/billing/repository.py
"""
Репозиторий финансовых проводок (только вставка и чтение).
"""

from __future__ import annotations

from asyncpg import Record

from src.common.constants import TransactionStatus, TransactionType
from src.core.billing.models import Transaction
from src.infra.database import QueryExecutor


def _row_to_transaction(row: Record) -> Transaction:
    return Transaction(
        id=str(row["id"]),
        type=TransactionType(row["type"]),
        status=TransactionStatus(row["status"]),
        amount=row["amount"],
        commission=row["commission"],
        order_id=str(row["order_id"]) if row["order_id"] else None,
        driver_id=str(row["driver_id"]) if row["driver_id"] else None,
        user_id=str(row["user_id"]) if row["user_id"] else None,
        description=row["description"],
        created_at=row["created_at"],
    )


class LedgerRepository:
    """Журнал проводок."""

    def __init__(self, executor: QueryExecutor) -> None:
        self._db = executor

    async def create(self, entry: Transaction) -> Transaction:
        """Записывает проводку."""
        row = await self._db.fetchrow(
            """
            INSERT INTO transactions (id, type, status, amount, commission,
                                      order_id, driver_id, user_id, description)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING *
            """,
            entry.id,
            entry.type.value,
            entry.status.value,
            entry.amount,
            entry.commission,
            entry.order_id,
            entry.driver_id,
            entry.user_id,
            entry.description,
        )
        return _row_to_transaction(row)

    async def list_by_order(self, order_id: str) -> list[Transaction]:
        """Проводки по заказу в порядке создания."""
        rows = await self._db.fetch(
            "SELECT * FROM transactions WHERE order_id = $1 ORDER BY created_at, id",
            order_id,
        )
        return [_row_to_transaction(row) for row in rows]

    async def driver_earnings(self, driver_id: str) -> int:
        """Сумма проведённых оплат водителя за вычетом комиссии."""
        total = await self._db.fetchval(
            """
            SELECT COALESCE(SUM(amount - commission), 0)
            FROM transactions
            WHERE driver_id = $1 AND type = $2 AND status = $3
            """,
            driver_id,
            TransactionType.PAYMENT.value,
            TransactionStatus.COMPLETED.value,
        )
        return int(total)
