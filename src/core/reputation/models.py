# src/core/reputation/models.py
"""
Оценки и завершённые сделки.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class Rating(BaseModel):
    """Оценка исполнителя по заявке (одна на заявку)."""

    model_config = ConfigDict(from_attributes=True)

    request_id: str
    seeker_id: str
    provider_id: str
    value: int = Field(..., ge=1, le=5)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Transaction(BaseModel):
    """Запись о подтверждённой сделке."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    request_id: str
    provider_id: str
    compensation: float
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_cross_ecosystem: bool = False
