# src/core/billing/__init__.py
"""
Домен биллинга.
Проводки, комиссия водителей, бонусы клиентов.
"""

from src.core.billing.models import Transaction
from src.core.billing.repository import LedgerRepository
from src.core.billing.service import BillingService, SettlementResult

__all__ = [
    "BillingService",
    "LedgerRepository",
    "SettlementResult",
    "Transaction",
]
