# src/core/clusters/models.py
"""
Модель кластера спроса.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import ClusterStatus


class DemandCluster(BaseModel):
    """Группа похожих заявок одной экосистемы в пределах окна времени."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    ecosystem_id: str
    shared_tag: str
    member_ids: list[str] = Field(default_factory=list)
    window_start: datetime = Field(..., description="Создание самой ранней заявки")
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime
    status: ClusterStatus = ClusterStatus.ACTIVE
    estimated_savings: float = 0.0
    offer_sent: bool = False

    @property
    def member_count(self) -> int:
        return len(self.member_ids)
