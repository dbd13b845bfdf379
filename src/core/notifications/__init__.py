# src/core/notifications/__init__.py
"""
Домен уведомлений.
Фоновая публикация изменений статусов заказов.
"""

from src.core.notifications.service import NotificationSink, build_status_payload, status_additional_data

__all__ = [
    "NotificationSink",
    "build_status_payload",
    "status_additional_data",
]
