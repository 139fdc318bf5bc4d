# src/core/matching/__init__.py
"""
Матчинг заявок с исполнителями.
"""

from src.core.matching.service import MatchCandidate, MatchingEngine, MatchingOutcome

__all__ = [
    "MatchCandidate",
    "MatchingEngine",
    "MatchingOutcome",
]
