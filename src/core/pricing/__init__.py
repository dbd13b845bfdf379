# src/core/pricing/__init__.py
"""
Домен ценообразования.
"""

from src.core.pricing.models import PriceEstimate, PriceRequest
from src.core.pricing.service import PricingEngine, round_money

__all__ = [
    "PriceEstimate",
    "PriceRequest",
    "PricingEngine",
    "round_money",
]
