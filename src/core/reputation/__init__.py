# src/core/reputation/__init__.py
"""
Репутация исполнителей и журнал сделок.
"""

from src.core.reputation.models import Rating, Transaction
from src.core.reputation.repository import ReputationRepository
from src.core.reputation.service import ReputationService

__all__ = [
    "Rating",
    "ReputationRepository",
    "ReputationService",
    "Transaction",
]
