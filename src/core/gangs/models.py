# src/core/gangs/models.py
"""
Модель бригады исполнителей.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class LaborGang(BaseModel):
    """Бригада: лидер принимает заявки от имени всей группы."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    leader_id: str
    member_ids: list[str] = Field(default_factory=list, description="Участники, включая лидера")
    is_active: bool = True
    completed_jobs: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LaborGangCreateDTO(BaseModel):
    leader_id: str
    member_ids: list[str] = Field(default_factory=list)
