# src/core/requests/repository.py
"""
Репозиторий заявок на услуги.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Connection

from src.common.constants import RequestStatus
from src.core.requests.models import ServiceRequest
from src.core.scope.models import ScopeDecision
from src.infra.database import DatabaseManager

_REQUEST_COLUMNS = """
    id, seeker_id, ecosystem_id, specific_tags, categories, description, language,
    latitude, longitude, address, compensation, window_start, window_end, status,
    urgency_score, urgency_level, urgency_keywords,
    supply_index, scope_rule, radius_km, include_neighboring, is_cross_ecosystem,
    expansion_eligible, cluster_id, interested_provider_ids, accepted_provider_id,
    gang_id, stale_notified, created_at, status_changed_at, completed_at
"""


def _to_request(row) -> ServiceRequest:
    return ServiceRequest.model_validate(dict(row))


class RequestRepository:
    """Репозиторий заявок."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Инициализация репозитория.

        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_by_id(self, request_id: str) -> Optional[ServiceRequest]:
        """Заявка по ID или None."""
        row = await self._db.fetchrow(
            f"SELECT {_REQUEST_COLUMNS} FROM service_requests WHERE id = $1",
            request_id,
        )
        return _to_request(row) if row else None

    @staticmethod
    async def get_for_update(conn: Connection, request_id: str) -> Optional[ServiceRequest]:
        """Заявка с блокировкой строки до конца транзакции."""
        row = await conn.fetchrow(
            f"SELECT {_REQUEST_COLUMNS} FROM service_requests WHERE id = $1 FOR UPDATE",
            request_id,
        )
        return _to_request(row) if row else None

    async def list_open_unclustered(self, ecosystem_id: str) -> list[ServiceRequest]:
        """Открытые заявки экосистемы без кластера, по времени создания."""
        rows = await self._db.fetch(
            f"""
            SELECT {_REQUEST_COLUMNS}
            FROM service_requests
            WHERE ecosystem_id = $1
              AND status = $2
              AND cluster_id IS NULL
            ORDER BY created_at, id
            """,
            ecosystem_id,
            RequestStatus.OPEN.value,
        )
        return [_to_request(row) for row in rows]

    async def statuses(self, request_ids: list[str]) -> dict[str, RequestStatus]:
        """Статусы заявок по списку ID."""
        rows = await self._db.fetch(
            "SELECT id, status FROM service_requests WHERE id = ANY($1::text[])",
            request_ids,
        )
        return {row["id"]: RequestStatus(row["status"]) for row in rows}

    async def average_compensation(self, ecosystem_id: str, tag: str) -> Optional[float]:
        """
        Среднее вознаграждение по завершённым сделкам экосистемы для тега.
        None, если сделок ещё не было.
        """
        value = await self._db.fetchval(
            """
            SELECT AVG(t.compensation)
            FROM transactions t
            JOIN service_requests r ON r.id = t.request_id
            WHERE r.ecosystem_id = $1
              AND $2 = ANY(r.specific_tags)
            """,
            ecosystem_id,
            tag,
        )
        return float(value) if value is not None else None

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def create(self, request: ServiceRequest) -> ServiceRequest:
        """Сохраняет новую заявку."""
        await self._db.execute(
            """
            INSERT INTO service_requests (
                id, seeker_id, ecosystem_id, specific_tags, categories, description, language,
                latitude, longitude, address, compensation, window_start, window_end, status,
                urgency_score, urgency_level, urgency_keywords, created_at, status_changed_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18, $19)
            """,
            request.id,
            request.seeker_id,
            request.ecosystem_id,
            request.specific_tags,
            request.categories,
            request.description,
            request.language,
            request.latitude,
            request.longitude,
            request.address,
            request.compensation,
            request.window_start,
            request.window_end,
            request.status.value,
            request.urgency_score,
            request.urgency_level.value,
            request.urgency_keywords,
            request.created_at,
            request.status_changed_at,
        )
        return request

    async def update_scope(
        self,
        request_id: str,
        decision: ScopeDecision,
        supply_index: Optional[int],
    ) -> None:
        """
        Записывает производные поля радиуса.
        Радиус не уменьшается, флаг соседей не снимается даже при гонке.
        """
        await self._db.execute(
            """
            UPDATE service_requests
            SET radius_km = GREATEST(COALESCE(radius_km, 0), $2),
                include_neighboring = include_neighboring OR $3,
                is_cross_ecosystem = is_cross_ecosystem OR $3,
                expansion_eligible = $4 AND NOT (include_neighboring OR $3),
                scope_rule = $5,
                supply_index = $6
            WHERE id = $1
            """,
            request_id,
            decision.radius_km,
            decision.include_neighboring,
            decision.expansion_eligible,
            decision.rule.value,
            supply_index,
        )

    @staticmethod
    async def save_lifecycle(conn: Connection, request: ServiceRequest) -> None:
        """Сохраняет поля жизненного цикла (внутри транзакции)."""
        await conn.execute(
            """
            UPDATE service_requests
            SET status = $2,
                interested_provider_ids = $3,
                accepted_provider_id = $4,
                gang_id = $5,
                status_changed_at = $6,
                completed_at = $7
            WHERE id = $1
            """,
            request.id,
            request.status.value,
            request.interested_provider_ids,
            request.accepted_provider_id,
            request.gang_id,
            request.status_changed_at,
            request.completed_at,
        )

    async def claim_notification(self, request_id: str, provider_id: str) -> bool:
        """
        Атомарно добавляет исполнителя в список уведомлённых.

        Returns:
            True только для первого вызова с этой парой
        """
        claimed = await self._db.fetchval(
            """
            INSERT INTO request_notifications (request_id, provider_id)
            VALUES ($1, $2)
            ON CONFLICT (request_id, provider_id) DO NOTHING
            RETURNING provider_id
            """,
            request_id,
            provider_id,
        )
        return claimed is not None

    async def release_notification(self, request_id: str, provider_id: str) -> bool:
        """Снимает отметку, если уведомление так и не было отправлено."""
        result = await self._db.execute(
            "DELETE FROM request_notifications WHERE request_id = $1 AND provider_id = $2",
            request_id,
            provider_id,
        )
        return result.endswith(" 1")

    async def notified_providers(self, request_id: str) -> list[str]:
        """Уже уведомлённые исполнители."""
        rows = await self._db.fetch(
            "SELECT provider_id FROM request_notifications WHERE request_id = $1 ORDER BY notified_at, provider_id",
            request_id,
        )
        return [row["provider_id"] for row in rows]

    @staticmethod
    async def assign_cluster(conn: Connection, cluster_id: str, request_ids: list[str]) -> list[str]:
        """
        Привязывает заявки к кластеру.
        Возвращает только те, что ещё не были ни в одном кластере.
        """
        rows = await conn.fetch(
            """
            UPDATE service_requests
            SET cluster_id = $1
            WHERE id = ANY($2::text[])
              AND cluster_id IS NULL
            RETURNING id
            """,
            cluster_id,
            request_ids,
        )
        return [row["id"] for row in rows]

    async def mark_stale(self, cutoff: datetime) -> list[ServiceRequest]:
        """
        Помечает открытые заявки без откликов старше cutoff.
        Каждая заявка возвращается не более одного раза.
        """
        rows = await self._db.fetch(
            f"""
            UPDATE service_requests
            SET stale_notified = TRUE
            WHERE status = $1
              AND created_at < $2
              AND stale_notified = FALSE
              AND cardinality(interested_provider_ids) = 0
            RETURNING {_REQUEST_COLUMNS}
            """,
            RequestStatus.OPEN.value,
            cutoff,
        )
        return [_to_request(row) for row in rows]
