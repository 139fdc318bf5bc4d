# src/core/clusters/repository.py
"""
Репозиторий кластеров спроса.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Connection

from src.common.constants import ClusterStatus
from src.core.clusters.models import DemandCluster
from src.infra.database import DatabaseManager

_CLUSTER_COLUMNS = """
    id, ecosystem_id, shared_tag, member_ids, window_start, detected_at,
    expires_at, status, estimated_savings, offer_sent
"""


class ClusterRepository:
    """Репозиторий кластеров."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_by_id(self, cluster_id: str) -> Optional[DemandCluster]:
        row = await self._db.fetchrow(
            f"SELECT {_CLUSTER_COLUMNS} FROM demand_clusters WHERE id = $1",
            cluster_id,
        )
        return DemandCluster.model_validate(dict(row)) if row else None

    async def list_active(self, ecosystem_id: str) -> list[DemandCluster]:
        rows = await self._db.fetch(
            f"""
            SELECT {_CLUSTER_COLUMNS}
            FROM demand_clusters
            WHERE ecosystem_id = $1 AND status = $2
            ORDER BY window_start, id
            """,
            ecosystem_id,
            ClusterStatus.ACTIVE.value,
        )
        return [DemandCluster.model_validate(dict(row)) for row in rows]

    @staticmethod
    async def insert(conn: Connection, cluster: DemandCluster) -> None:
        await conn.execute(
            """
            INSERT INTO demand_clusters (
                id, ecosystem_id, shared_tag, member_ids, window_start, detected_at,
                expires_at, status, estimated_savings, offer_sent
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            """,
            cluster.id,
            cluster.ecosystem_id,
            cluster.shared_tag,
            cluster.member_ids,
            cluster.window_start,
            cluster.detected_at,
            cluster.expires_at,
            cluster.status.value,
            cluster.estimated_savings,
            cluster.offer_sent,
        )

    @staticmethod
    async def update_members(
        conn: Connection,
        cluster_id: str,
        member_ids: list[str],
        estimated_savings: float,
    ) -> None:
        await conn.execute(
            """
            UPDATE demand_clusters
            SET member_ids = $2, estimated_savings = $3
            WHERE id = $1
            """,
            cluster_id,
            member_ids,
            estimated_savings,
        )

    async def mark_offer_sent(self, cluster_id: str) -> bool:
        """Отмечает отправку предложения. True только для первого вызова."""
        marked = await self._db.fetchval(
            """
            UPDATE demand_clusters
            SET offer_sent = TRUE
            WHERE id = $1 AND offer_sent = FALSE
            RETURNING id
            """,
            cluster_id,
        )
        return marked is not None

    async def expire(self, ecosystem_id: str, now: datetime) -> list[str]:
        """Переводит просроченные активные кластеры в expired."""
        rows = await self._db.fetch(
            """
            UPDATE demand_clusters
            SET status = $3
            WHERE ecosystem_id = $1
              AND status = $2
              AND expires_at <= $4
            RETURNING id
            """,
            ecosystem_id,
            ClusterStatus.ACTIVE.value,
            ClusterStatus.EXPIRED.value,
            now,
        )
        return [row["id"] for row in rows]

    async def mark_fulfilled(self, cluster_id: str) -> bool:
        marked = await self._db.fetchval(
            """
            UPDATE demand_clusters
            SET status = $2
            WHERE id = $1 AND status = $3
            RETURNING id
            """,
            cluster_id,
            ClusterStatus.FULFILLED.value,
            ClusterStatus.ACTIVE.value,
        )
        return marked is not None
