# src/core/scope/__init__.py
"""
Разрешение радиуса поиска заявки.
"""

from src.core.scope.models import ScopeContext, ScopeDecision
from src.core.scope.resolver import ScopeResolver, never_shrink

__all__ = [
    "ScopeContext",
    "ScopeDecision",
    "ScopeResolver",
    "never_shrink",
]
