# src/core/ecosystems/__init__.py
"""
Домен экосистем.
"""

from src.core.ecosystems.models import Ecosystem
from src.core.ecosystems.registry import EcosystemRegistry
from src.core.ecosystems.repository import EcosystemRepository

__all__ = [
    "Ecosystem",
    "EcosystemRegistry",
    "EcosystemRepository",
]
