# src/core/ecosystems/models.py
"""
Модель экосистемы (географического региона).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Ecosystem(BaseModel):
    """
    Регион с центром и радиусом.
    Соседи не хранятся, они вычисляются по расстоянию между центрами.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Идентификатор экосистемы")
    name: str = Field(..., description="Название")
    latitude: float = Field(..., ge=-90.0, le=90.0, description="Широта центра")
    longitude: float = Field(..., ge=-180.0, le=180.0, description="Долгота центра")
    radius_km: float = Field(..., gt=0.0, description="Радиус по умолчанию")
    is_default: bool = Field(False, description="Административная экосистема по умолчанию")
