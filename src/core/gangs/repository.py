# src/core/gangs/repository.py
"""
Репозиторий бригад.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Connection

from src.core.gangs.models import LaborGang
from src.infra.database import DatabaseManager


class GangRepository:
    """Репозиторий бригад."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def create(self, gang: LaborGang) -> LaborGang:
        await self._db.execute(
            """
            INSERT INTO labor_gangs (id, leader_id, member_ids, is_active, completed_jobs, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            gang.id,
            gang.leader_id,
            gang.member_ids,
            gang.is_active,
            gang.completed_jobs,
            gang.created_at,
        )
        return gang

    async def get_by_id(self, gang_id: str) -> Optional[LaborGang]:
        row = await self._db.fetchrow(
            """
            SELECT id, leader_id, member_ids, is_active, completed_jobs, created_at
            FROM labor_gangs
            WHERE id = $1
            """,
            gang_id,
        )
        return LaborGang.model_validate(dict(row)) if row else None

    async def set_active(self, gang_id: str, is_active: bool) -> bool:
        status = await self._db.execute(
            "UPDATE labor_gangs SET is_active = $2 WHERE id = $1",
            gang_id,
            is_active,
        )
        return status.endswith(" 1")

    @staticmethod
    async def increment_completed(conn: Connection, gang_id: str) -> None:
        """Атомарно увеличивает счётчик выполненных работ бригады."""
        await conn.execute(
            "UPDATE labor_gangs SET completed_jobs = completed_jobs + 1 WHERE id = $1",
            gang_id,
        )
