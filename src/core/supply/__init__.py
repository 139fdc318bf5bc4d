# src/core/supply/__init__.py
"""
Индекс локального предложения.
"""

from src.core.supply.service import SupplyIndexCalculator

__all__ = [
    "SupplyIndexCalculator",
]
