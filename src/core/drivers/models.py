# src/core/drivers/models.py
"""
Модели данных водителей.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import CarClass, DriverStatus


class Driver(BaseModel):
    """Водитель и его автомобиль."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="UUID водителя")
    user_id: str = Field(..., description="UUID пользователя-владельца")
    car_class: CarClass = Field(..., description="Класс автомобиля (не меняется)")
    status: DriverStatus = Field(DriverStatus.OFFLINE, description="Статус водителя")

    rating: float = Field(0.0, ge=0.0, le=5.0, description="Средний рейтинг")
    total_rides: int = Field(0, ge=0, description="Завершённых поездок")
    commission_balance: int = Field(0, description="Накопленная комиссия к оплате платформе")

    car_model: Optional[str] = Field(None, description="Модель автомобиля")
    car_number: Optional[str] = Field(None, description="Госномер")
    car_year: Optional[int] = Field(None, description="Год выпуска")
    car_color: Optional[str] = Field(None, description="Цвет")

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_available(self) -> bool:
        """Может ли водитель принять новый заказ."""
        return self.status == DriverStatus.ONLINE


class DriverLocation(BaseModel):
    """Последняя известная позиция водителя."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    updated_at: datetime
