# src/core/matching/__init__.py
"""
Назначение водителей на заказы.
"""

from src.core.matching.service import AssignmentEngine, DriverCandidate, rank_candidates, score_driver

__all__ = [
    "AssignmentEngine",
    "DriverCandidate",
    "rank_candidates",
    "score_driver",
]
