# src/common/exceptions.py
"""
Иерархия прикладных ошибок.
Каждая ошибка несёт стабильный машиночитаемый код и сообщение для человека.
HTTP-статус используется только транспортным слоем.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Базовая прикладная ошибка."""

    code: str = "APP_ERROR"
    http_status: int = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Сериализует ошибку для ответа клиенту."""
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class InvalidRequest(AppError):
    """Некорректные или семантически недопустимые входные данные."""
    code = "INVALID_REQUEST"
    http_status = 400


class NotFound(AppError):
    """Заказ, водитель или пользователь не найден."""
    code = "NOT_FOUND"
    http_status = 404


class InvalidStatusTransition(AppError):
    """Переход статуса не входит в разрешённый список."""
    code = "INVALID_STATUS_TRANSITION"
    http_status = 409


class ResourceUnavailable(AppError):
    """Нет свободного водителя или водитель занят к моменту резервирования."""
    code = "RESOURCE_UNAVAILABLE"
    http_status = 409


class AuthorizationDenied(AppError):
    """У вызывающего нет роли или прав владельца."""
    code = "AUTHORIZATION_DENIED"
    http_status = 403


class PersistenceFailure(AppError):
    """Ошибка хранилища во время транзакционной записи."""
    code = "PERSISTENCE_FAILURE"
    http_status = 503
