# src/core/orders/__init__.py
"""
Домен заказов.
Сервисы (OrderService, OrderStatusMachine) импортируются из своих модулей.
"""

from src.core.orders.models import Order, OrderCreateDTO, StatusMetadata
from src.core.orders.repository import OrderRepository

__all__ = [
    "Order",
    "OrderCreateDTO",
    "OrderRepository",
    "StatusMetadata",
]
