# src/core/scope/models.py
"""
Модели разрешения радиуса поиска.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from src.common.constants import ScopeRule, UrgencyLevel


@dataclass(frozen=True)
class ScopeContext:
    """Входные данные правил."""
    specific_tags: tuple[str, ...]
    compensation: float
    urgency_level: UrgencyLevel
    supply_index: Optional[int]
    ecosystem_average: Optional[float]
    default_radius_km: float
    stalled: bool = False

    @property
    def primary_tag(self) -> Optional[str]:
        return self.specific_tags[0] if self.specific_tags else None


class ScopeDecision(BaseModel):
    """Решение о радиусе и расширении на соседние экосистемы."""

    radius_km: float = Field(..., gt=0.0, description="Радиус поиска")
    include_neighboring: bool = Field(False, description="Искать в соседних экосистемах")
    prevent_leakage: bool = Field(False, description="Расширение запрещено")
    rule: ScopeRule = Field(..., description="Сработавшее правило")
    reasoning: str = Field("", description="Пояснение")
    expansion_eligible: bool = Field(False, description="Можно ли расширить по таймеру")
