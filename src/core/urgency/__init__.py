# src/core/urgency/__init__.py
"""
Оценка срочности заявок.
"""

from src.core.urgency.scorer import UrgencyResult, UrgencyScorer, level_for_score

__all__ = [
    "UrgencyResult",
    "UrgencyScorer",
    "level_for_score",
]
