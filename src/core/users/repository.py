# src/core/users/repository.py
"""
Репозиторий пользователей.
Работает с любым исполнителем запросов: пулом или соединением транзакции.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Record

from src.common.constants import UserRole
from src.core.users.models import User
from src.infra.database import QueryExecutor


def _row_to_user(row: Record) -> User:
    return User(
        id=str(row["id"]),
        role=UserRole(row["role"]),
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone=row["phone"],
        bonus_balance=row["bonus_balance"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserRepository:
    """Репозиторий пользователей."""

    def __init__(self, executor: QueryExecutor) -> None:
        """
        Args:
            executor: DatabaseManager или соединение текущей транзакции
        """
        self._db = executor

    async def get_by_id(self, user_id: str, *, for_update: bool = False) -> Optional[User]:
        """
        Получает пользователя по ID.

        Args:
            user_id: UUID пользователя
            for_update: Заблокировать строку до конца транзакции
        """
        query = """
            SELECT id, role, first_name, last_name, phone, bonus_balance, created_at, updated_at
            FROM users
            WHERE id = $1
        """
        if for_update:
            query += " FOR UPDATE"

        row = await self._db.fetchrow(query, user_id)
        return _row_to_user(row) if row else None

    async def adjust_bonus_balance(self, user_id: str, delta: int) -> int:
        """
        Изменяет бонусный баланс на delta.

        Returns:
            Новый баланс (ограничение bonus_balance >= 0 проверяет БД)
        """
        return await self._db.fetchval(
            """
            UPDATE users
            SET bonus_balance = bonus_balance + $2, updated_at = NOW()
            WHERE id = $1
            RETURNING bonus_balance
            """,
            user_id,
            delta,
        )
