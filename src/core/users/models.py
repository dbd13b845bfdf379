# src/core/users/models.py
"""
Модели данных пользователей.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import UserRole


class User(BaseModel):
    """Модель пользователя (клиент, водитель или администратор)."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="UUID пользователя")
    role: UserRole = Field(UserRole.CLIENT, description="Роль пользователя")
    first_name: Optional[str] = Field(None, description="Имя")
    last_name: Optional[str] = Field(None, description="Фамилия")
    phone: Optional[str] = Field(None, description="Номер телефона")
    bonus_balance: int = Field(0, ge=0, description="Бонусный баланс, руб.")

    created_at: Optional[datetime] = Field(None, description="Дата регистрации")
    updated_at: Optional[datetime] = Field(None, description="Дата обновления")

    @property
    def full_name(self) -> str:
        """Полное имя пользователя."""
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.id


@dataclass(frozen=True)
class Principal:
    """Аутентифицированный участник, выполняющий операцию."""
    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
