# src/core/providers/repository.py
"""
Репозиторий исполнителей.
"""

from __future__ import annotations

import json
from typing import Optional

from asyncpg import Connection

from src.core.providers.models import Provider
from src.infra.database import DatabaseManager

_PROVIDER_COLUMNS = """
    user_id, ecosystem_id, latitude, longitude,
    specific_tags, categories, min_compensation,
    is_active, completed_services, rating_sum, rating_count, registered_at
"""


class ProviderRepository:
    """Репозиторий исполнителей."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_by_id(self, provider_id: str) -> Optional[Provider]:
        """Исполнитель по ID или None."""
        row = await self._db.fetchrow(
            f"SELECT {_PROVIDER_COLUMNS} FROM providers WHERE user_id = $1",
            provider_id,
        )
        return Provider.model_validate(dict(row)) if row else None

    async def list_candidates(
        self,
        ecosystem_ids: list[str],
        tags: list[str],
        categories: list[str],
    ) -> list[Provider]:
        """
        Активные исполнители экосистем, у которых пересекаются
        теги или категории. Фильтр по расстоянию делает вызывающий код.
        """
        rows = await self._db.fetch(
            f"""
            SELECT {_PROVIDER_COLUMNS}
            FROM providers
            WHERE ecosystem_id = ANY($1::text[])
              AND is_active = TRUE
              AND (specific_tags && $2::text[] OR categories && $3::text[])
            """,
            ecosystem_ids,
            tags,
            categories,
        )
        return [Provider.model_validate(dict(row)) for row in rows]

    async def upsert(self, provider: Provider) -> Provider:
        """Создаёт или обновляет профиль (без счётчиков репутации)."""
        await self._db.execute(
            """
            INSERT INTO providers (
                user_id, ecosystem_id, latitude, longitude,
                specific_tags, categories, min_compensation, is_active, registered_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9)
            ON CONFLICT (user_id) DO UPDATE SET
                ecosystem_id = EXCLUDED.ecosystem_id,
                latitude = EXCLUDED.latitude,
                longitude = EXCLUDED.longitude,
                specific_tags = EXCLUDED.specific_tags,
                categories = EXCLUDED.categories,
                min_compensation = EXCLUDED.min_compensation,
                is_active = EXCLUDED.is_active
            """,
            provider.user_id,
            provider.ecosystem_id,
            provider.latitude,
            provider.longitude,
            provider.specific_tags,
            provider.categories,
            json.dumps(provider.min_compensation),
            provider.is_active,
            provider.registered_at,
        )
        return provider

    @staticmethod
    async def apply_rating(conn: Connection, provider_id: str, value: int) -> None:
        """Атомарно добавляет оценку к агрегатам (внутри транзакции)."""
        await conn.execute(
            """
            UPDATE providers
            SET rating_sum = rating_sum + $2,
                rating_count = rating_count + 1
            WHERE user_id = $1
            """,
            provider_id,
            value,
        )

    @staticmethod
    async def increment_completed(conn: Connection, provider_id: str) -> None:
        """Атомарно увеличивает счётчик выполненных заявок."""
        await conn.execute(
            "UPDATE providers SET completed_services = completed_services + 1 WHERE user_id = $1",
            provider_id,
        )
