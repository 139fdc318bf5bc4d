# src/core/providers/__init__.py
"""
Домен исполнителей.
"""

from src.core.providers.models import Provider, ProviderReputation
from src.core.providers.repository import ProviderRepository

__all__ = [
    "Provider",
    "ProviderReputation",
    "ProviderRepository",
]
