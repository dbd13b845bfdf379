# src/core/users/__init__.py
"""
Домен пользователей.
"""

from src.core.users.models import Principal, User
from src.core.users.repository import UserRepository

__all__ = [
    "Principal",
    "User",
    "UserRepository",
]
