# src/core/billing/models.py
"""
Модели финансовых проводок.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import TransactionStatus, TransactionType


class Transaction(BaseModel):
    """Проводка: одно движение денег по заказу. После создания не меняется."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID проводки")
    type: TransactionType
    status: TransactionStatus = TransactionStatus.PENDING
    amount: int = Field(..., description="Сумма, руб.")
    commission: int = Field(0, ge=0, description="Комиссия платформы в сумме")
    order_id: Optional[str] = None
    driver_id: Optional[str] = None
    user_id: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
