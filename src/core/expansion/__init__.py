# src/core/expansion/__init__.py
"""
Отложенное расширение радиуса поиска.
"""

from src.core.expansion.scheduler import ExpansionScheduler

__all__ = [
    "ExpansionScheduler",
]
