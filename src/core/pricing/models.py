# src/core/pricing/models.py
"""
Модели расчёта стоимости.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.common.constants import AirportCode, CarClass, OrderType


class ChargeType(str, Enum):
    """Виды дополнительных начислений."""
    WAITING = "WAITING"
    EXTRA_STOP = "EXTRA_STOP"
    NIGHT_RATE = "NIGHT_RATE"
    HOLIDAY_RATE = "HOLIDAY_RATE"


class ModifierType(str, Enum):
    """Направление модификатора цены."""
    INCREASE = "INCREASE"
    DISCOUNT = "DISCOUNT"


class PriceRequest(BaseModel):
    """Входные данные для расчёта стоимости."""

    type: OrderType
    car_class: CarClass
    duration_hours: Optional[float] = Field(None, gt=0, description="Длительность в часах")
    airport: Optional[AirportCode] = Field(None, description="Код аэропорта")
    pickup_datetime: Optional[datetime] = Field(None, description="Время подачи")
    is_holiday: bool = False
    additional_stops: int = Field(0, ge=0)
    expected_waiting_minutes: int = Field(0, ge=0)


class AdditionalCharge(BaseModel):
    """Дополнительное начисление (ожидание, остановки)."""
    type: ChargeType
    amount: int
    description: str


class PriceModifier(BaseModel):
    """Модификатор цены (ночной или праздничный тариф)."""
    type: ModifierType
    charge: ChargeType
    value: int
    description: str


class PriceBreakdown(BaseModel):
    """Разбивка итоговой суммы."""
    base_amount: int
    discount_amount: int
    additional_charges_amount: int
    modifiers_amount: int
    commission_amount: int
    final_amount: int


class PriceEstimate(BaseModel):
    """Результат расчёта стоимости."""

    base_price: int
    discount: int = 0
    discount_percent: float = 0.0
    final_price: int
    commission: int
    additional_charges: list[AdditionalCharge] = Field(default_factory=list)
    price_modifiers: list[PriceModifier] = Field(default_factory=list)
    breakdown: PriceBreakdown
    cancellation_fee: int = Field(0, description="Удержание при отмене")
    night_rate_applied: bool = False
    holiday_rate_applied: bool = False
