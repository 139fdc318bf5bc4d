# src/core/reputation/repository.py
"""
Репозиторий оценок и сделок.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Connection

from src.core.reputation.models import Rating, Transaction
from src.infra.database import DatabaseManager


class ReputationRepository:
    """Оценки и сделки."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_rating(self, request_id: str) -> Optional[Rating]:
        row = await self._db.fetchrow(
            """
            SELECT request_id, seeker_id, provider_id, value, created_at
            FROM ratings
            WHERE request_id = $1
            """,
            request_id,
        )
        return Rating.model_validate(dict(row)) if row else None

    @staticmethod
    async def insert_rating(conn: Connection, rating: Rating) -> bool:
        """
        Сохраняет оценку.

        Returns:
            False если по заявке уже есть оценка
        """
        inserted = await conn.fetchval(
            """
            INSERT INTO ratings (request_id, seeker_id, provider_id, value, created_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (request_id) DO NOTHING
            RETURNING request_id
            """,
            rating.request_id,
            rating.seeker_id,
            rating.provider_id,
            rating.value,
            rating.created_at,
        )
        return inserted is not None

    @staticmethod
    async def insert_transaction(conn: Connection, transaction: Transaction) -> bool:
        """Сохраняет сделку (одна на заявку)."""
        inserted = await conn.fetchval(
            """
            INSERT INTO transactions (id, request_id, provider_id, compensation, completed_at, is_cross_ecosystem)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (request_id) DO NOTHING
            RETURNING id
            """,
            transaction.id,
            transaction.request_id,
            transaction.provider_id,
            transaction.compensation,
            transaction.completed_at,
            transaction.is_cross_ecosystem,
        )
        return inserted is not None

    async def get_transaction(self, request_id: str) -> Optional[Transaction]:
        row = await self._db.fetchrow(
            """
            SELECT id, request_id, provider_id, compensation, completed_at, is_cross_ecosystem
            FROM transactions
            WHERE request_id = $1
            """,
            request_id,
        )
        return Transaction.model_validate(dict(row)) if row else None
