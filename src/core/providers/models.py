# src/core/providers/models.py
"""
Модель исполнителя услуг.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Исполнитель считается новичком, пока у него меньше стольких оценок
NEWBIE_RATING_THRESHOLD = 5


class Provider(BaseModel):
    """Исполнитель услуг."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(..., description="ID пользователя")
    ecosystem_id: str = Field(..., description="Домашняя экосистема")
    latitude: float = Field(..., description="Широта")
    longitude: float = Field(..., description="Долгота")

    specific_tags: list[str] = Field(default_factory=list, description="Конкретные услуги")
    categories: list[str] = Field(default_factory=list, description="Категории услуг")
    min_compensation: dict[str, float] = Field(
        default_factory=dict,
        description="Минимальное вознаграждение по тегу",
    )

    is_active: bool = Field(True, description="Принимает ли заявки")
    completed_services: int = Field(0, ge=0, description="Выполненных заявок")
    rating_sum: int = Field(0, ge=0, description="Сумма оценок")
    rating_count: int = Field(0, ge=0, description="Количество оценок")
    registered_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Дата регистрации",
    )

    @field_validator("min_compensation", mode="before")
    @classmethod
    def parse_min_compensation(cls, v: Any) -> Any:
        """JSONB из asyncpg приходит строкой."""
        if v is None:
            return {}
        if isinstance(v, str):
            return json.loads(v)
        return v

    @property
    def is_newbie(self) -> bool:
        """Новичок, пока оценок меньше порога."""
        return self.rating_count < NEWBIE_RATING_THRESHOLD

    @property
    def average_rating(self) -> Optional[float]:
        """Средняя оценка или None, если оценок нет."""
        if self.rating_count == 0:
            return None
        return self.rating_sum / self.rating_count

    @property
    def display_rating(self) -> Optional[float]:
        """Публичный рейтинг. У новичка не показывается."""
        if self.is_newbie:
            return None
        return self.average_rating

    def min_compensation_for(self, tag: str) -> float:
        """Порог вознаграждения для тега (0, если не задан)."""
        return self.min_compensation.get(tag, 0.0)


class ProviderReputation(BaseModel):
    """Сводка репутации исполнителя."""

    provider_id: str
    average_rating: Optional[float] = None
    display_rating: Optional[float] = None
    rating_count: int = 0
    is_newbie: bool = True
    completed_services: int = 0

    @classmethod
    def from_provider(cls, provider: Provider) -> ProviderReputation:
        return cls(
            provider_id=provider.user_id,
            average_rating=provider.average_rating,
            display_rating=provider.display_rating,
            rating_count=provider.rating_count,
            is_newbie=provider.is_newbie,
            completed_services=provider.completed_services,
        )
