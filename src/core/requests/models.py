# src/core/requests/models.py
"""
Модели заявок на услуги.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.common.constants import RequestStatus, ScopeRule, UrgencyLevel


def _unique(values: list[str]) -> list[str]:
    """Убирает пустые значения и повторы, сохраняя порядок."""
    return list(dict.fromkeys(v.strip() for v in values if v and v.strip()))


class ServiceRequest(BaseModel):
    """Заявка на услугу."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID заявки")
    seeker_id: str = Field(..., description="ID заказчика")
    ecosystem_id: str = Field(..., description="Домашняя экосистема")

    # Что нужно (первый тег считается основным)
    specific_tags: list[str] = Field(default_factory=list, description="Конкретные услуги")
    categories: list[str] = Field(default_factory=list, description="Категории")
    description: Optional[str] = Field(None, description="Исходный текст")
    language: str = Field("en", description="Язык заказчика")

    # Где
    latitude: Optional[float] = Field(None, description="Широта")
    longitude: Optional[float] = Field(None, description="Долгота")
    address: Optional[str] = Field(None, description="Адрес")

    # Сколько и когда
    compensation: float = Field(..., description="Вознаграждение, после публикации не меняется")
    window_start: Optional[datetime] = Field(None, description="Начало окна выполнения")
    window_end: Optional[datetime] = Field(None, description="Конец окна выполнения")

    status: RequestStatus = Field(RequestStatus.OPEN, description="Статус")

    # Срочность
    urgency_score: int = Field(0, ge=0, description="Балл срочности")
    urgency_level: UrgencyLevel = Field(UrgencyLevel.LOW, description="Уровень срочности")
    urgency_keywords: list[str] = Field(default_factory=list, description="Распознанные слова")

    # Производные поля радиуса
    supply_index: Optional[int] = Field(None, description="Индекс предложения")
    scope_rule: Optional[ScopeRule] = Field(None, description="Последнее сработавшее правило")
    radius_km: Optional[float] = Field(None, description="Текущий радиус поиска")
    include_neighboring: bool = Field(False, description="Поиск в соседних экосистемах")
    is_cross_ecosystem: bool = Field(False, description="Вышла за пределы своей экосистемы")
    expansion_eligible: bool = Field(False, description="Допускает расширение по таймеру")

    # Связи
    cluster_id: Optional[str] = Field(None, description="Кластер спроса")
    interested_provider_ids: list[str] = Field(default_factory=list, description="Откликнувшиеся")
    accepted_provider_id: Optional[str] = Field(None, description="Принявший исполнитель")
    gang_id: Optional[str] = Field(None, description="Бригада, принявшая заявку")
    stale_notified: bool = Field(False, description="Заказчик предупреждён о простое")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status_changed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def primary_tag(self) -> Optional[str]:
        """Основной тег."""
        return self.specific_tags[0] if self.specific_tags else None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ServiceRequestCreateDTO(BaseModel):
    """
    DTO публикации заявки.
    Теги, категории и ключевые слова уже выделены сервисом разбора текста.
    """

    seeker_id: str
    specific_tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    compensation: float
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    urgency_keywords: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    language: str = "en"

    @field_validator("specific_tags", "categories", "urgency_keywords")
    @classmethod
    def dedupe(cls, v: list[str]) -> list[str]:
        return _unique(v)


class TransitionDTO(BaseModel):
    """DTO смены статуса."""

    status: RequestStatus
    provider_id: Optional[str] = None
    actor_id: Optional[str] = None
