# src/api/schemas.py
"""
Схемы запросов и ответов HTTP API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.common.constants import DriverStatus, OrderStatus
from src.core.orders.models import StatusMetadata


class ErrorBody(BaseModel):
    """Описание ошибки."""
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""
    error: ErrorBody


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


class StatusUpdateRequest(BaseModel):
    """Смена статуса заказа."""

    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=500)
    rating: Optional[float] = None
    rating_comment: Optional[str] = Field(None, max_length=1000)
    additional_charges: int = Field(0, ge=0)
    estimated_arrival_minutes: Optional[int] = Field(None, ge=0)

    def to_metadata(self) -> StatusMetadata:
        return StatusMetadata(
            reason=self.reason,
            rating=self.rating,
            rating_comment=self.rating_comment,
            additional_charges=self.additional_charges,
            estimated_arrival_minutes=self.estimated_arrival_minutes,
        )


class CancelRequest(BaseModel):
    """Отмена заказа."""
    reason: Optional[str] = Field(None, max_length=500)


class RateRequest(BaseModel):
    """Оценка поездки."""
    rating: float
    comment: Optional[str] = Field(None, max_length=1000)


class DriverStatusRequest(BaseModel):
    """Смена статуса водителя."""
    status: DriverStatus


class LocationUpdateRequest(BaseModel):
    """Позиция водителя."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
