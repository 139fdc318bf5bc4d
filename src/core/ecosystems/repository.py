# src/core/ecosystems/repository.py
"""
Репозиторий экосистем.
"""

from __future__ import annotations

from typing import Optional

from src.core.ecosystems.models import Ecosystem
from src.infra.database import DatabaseManager


class EcosystemRepository:
    """Репозиторий экосистем."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def list_all(self) -> list[Ecosystem]:
        """Все экосистемы."""
        rows = await self._db.fetch(
            """
            SELECT id, name, latitude, longitude, radius_km, is_default
            FROM ecosystems
            ORDER BY id
            """
        )
        return [Ecosystem.model_validate(dict(row)) for row in rows]

    async def get_by_id(self, ecosystem_id: str) -> Optional[Ecosystem]:
        """Экосистема по ID или None."""
        row = await self._db.fetchrow(
            """
            SELECT id, name, latitude, longitude, radius_km, is_default
            FROM ecosystems
            WHERE id = $1
            """,
            ecosystem_id,
        )
        return Ecosystem.model_validate(dict(row)) if row else None

    async def upsert(self, ecosystem: Ecosystem) -> Ecosystem:
        """Создаёт или обновляет экосистему."""
        await self._db.execute(
            """
            INSERT INTO ecosystems (id, name, latitude, longitude, radius_km, is_default)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (id) DO UPDATE SET
                name = EXCLUDED.name,
                latitude = EXCLUDED.latitude,
                longitude = EXCLUDED.longitude,
                radius_km = EXCLUDED.radius_km,
                is_default = EXCLUDED.is_default
            """,
            ecosystem.id,
            ecosystem.name,
            ecosystem.latitude,
            ecosystem.longitude,
            ecosystem.radius_km,
            ecosystem.is_default,
        )
        return ecosystem
