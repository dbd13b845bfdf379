# src/core/drivers/__init__.py
"""
Домен водителей.
Сервис DriverDirectory импортируется из src.core.drivers.service.
"""

from src.core.drivers.models import Driver, DriverLocation
from src.core.drivers.repository import DriverRepository

__all__ = [
    "Driver",
    "DriverLocation",
    "DriverRepository",
]
