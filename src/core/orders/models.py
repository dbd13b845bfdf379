# src/core/orders/models.py
"""
Модели данных заказов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import (
    ACTIVE_ORDER_STATUSES,
    TERMINAL_ORDER_STATUSES,
    AirportCode,
    CarClass,
    OrderStatus,
    OrderType,
    PaymentStatus,
    PaymentType,
)


class Order(BaseModel):
    """Модель заказа."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="UUID заказа")
    order_number: str = Field(..., description="Номер заказа ORD-YYMMDD-NNNN")
    client_id: str = Field(..., description="UUID клиента")
    driver_id: Optional[str] = Field(None, description="UUID назначенного водителя")

    type: OrderType = Field(..., description="Тип заказа")
    status: OrderStatus = Field(OrderStatus.CREATED, description="Статус заказа")
    car_class: CarClass = Field(..., description="Класс автомобиля")
    pickup_datetime: datetime = Field(..., description="Время подачи")

    # Локации
    pickup_address: str = Field(..., description="Адрес подачи")
    pickup_latitude: float = Field(..., description="Широта подачи")
    pickup_longitude: float = Field(..., description="Долгота подачи")
    destination_address: Optional[str] = Field(None, description="Адрес назначения")
    destination_latitude: Optional[float] = None
    destination_longitude: Optional[float] = None

    duration_hours: Optional[float] = Field(None, description="Длительность почасового заказа")
    airport_code: Optional[AirportCode] = Field(None, description="Код аэропорта")
    additional_stops: int = Field(0, ge=0)

    # Стоимость и оплата
    estimated_price: int = Field(..., ge=0, description="Расчётная стоимость")
    actual_price: Optional[int] = Field(None, description="Итоговая стоимость (после завершения)")
    commission: int = Field(0, ge=0, description="Комиссия платформы")
    payment_type: PaymentType = Field(PaymentType.CASH)
    payment_status: PaymentStatus = Field(PaymentStatus.PENDING)
    bonus_amount: int = Field(0, ge=0, description="Списано бонусов")

    comment: Optional[str] = None
    cancellation_reason: Optional[str] = None
    rating: Optional[float] = Field(None, ge=1.0, le=5.0, description="Оценка поездки")
    rating_comment: Optional[str] = None

    # Снимок при выезде водителя
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    estimated_arrival_time: Optional[datetime] = None

    # Временные метки
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        """Занимает ли заказ водителя."""
        return self.status in ACTIVE_ORDER_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES


class OrderCreateDTO(BaseModel):
    """Данные для создания заказа."""

    type: OrderType
    car_class: CarClass
    pickup_datetime: datetime

    pickup_address: str = Field(..., min_length=1)
    pickup_latitude: float = Field(..., ge=-90, le=90)
    pickup_longitude: float = Field(..., ge=-180, le=180)
    destination_address: Optional[str] = None
    destination_latitude: Optional[float] = Field(None, ge=-90, le=90)
    destination_longitude: Optional[float] = Field(None, ge=-180, le=180)

    duration_hours: Optional[float] = Field(None, gt=0)
    airport_code: Optional[AirportCode] = None
    additional_stops: int = Field(0, ge=0)
    expected_waiting_minutes: int = Field(0, ge=0, description="Ожидаемое ожидание, минут")
    is_holiday: bool = False

    payment_type: PaymentType = PaymentType.CASH
    bonus_amount: int = Field(0, ge=0, description="Сколько бонусов списать (MIXED)")
    comment: Optional[str] = Field(None, max_length=1000)


class StatusMetadata(BaseModel):
    """Контекст перехода статуса."""

    reason: Optional[str] = Field(None, description="Причина отмены")
    rating: Optional[float] = Field(None, description="Оценка при завершении")
    rating_comment: Optional[str] = None
    additional_charges: int = Field(0, ge=0, description="Доплаты, добавленные в поездке")
    estimated_arrival_minutes: Optional[int] = Field(None, ge=0, description="ETA от водителя")
