# src/core/clusters/service.py
"""
Детектор кластеров спроса.

Периодический свип по всем экосистемам: истечение старых кластеров,
присоединение новых заявок к активным и формирование новых кластеров.
Одну экосистему в каждый момент обрабатывает один процесс.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from src.common.constants import ClusterStatus, RequestStatus, TypeMsg
from src.common.logger import log_info, log_error, log_warning
from src.core.clusters.detector import estimate_savings, plan_clusters
from src.core.clusters.models import DemandCluster
from src.core.clusters.repository import ClusterRepository
from src.core.notifications.service import NotificationService
from src.core.requests.models import ServiceRequest
from src.core.requests.repository import RequestRepository
from src.infra.database import DatabaseManager
from src.infra.redis_client import RedisClient


class _ClusterRace(Exception):
    """Часть заявок уже забрал другой кластер."""


class ClusterService:
    """Поиск, расширение, истечение и исполнение кластеров спроса."""

    def __init__(
        self,
        db: DatabaseManager,
        redis: RedisClient,
        notifications: NotificationService,
    ) -> None:
        from src.config import settings

        self._db = db
        self._redis = redis
        self._notifications = notifications
        self._repo = ClusterRepository(db)
        self._requests = RequestRepository(db)

        cfg = settings.clusters
        self._window_hours = cfg.CLUSTER_WINDOW_HOURS
        self._min_size = cfg.MIN_CLUSTER_SIZE
        self._offer_ttl = timedelta(hours=cfg.CLUSTER_OFFER_TTL_HOURS)
        self._saving_per_member = cfg.TRANSPORT_SAVING_PER_MEMBER
        self._bulk_discount = cfg.BULK_DISCOUNT_PERCENT
        self._sweep_timeout = cfg.CLUSTER_SWEEP_TIMEOUT
        self._lock_ttl = settings.redis_ttl.SWEEP_LOCK_TTL

    def _savings(self, members: list[ServiceRequest]) -> float:
        return estimate_savings(
            len(members),
            sum(r.compensation for r in members),
            self._saving_per_member,
            self._bulk_discount,
        )

    # =========================================================================
    # ДЕТЕКЦИЯ
    # =========================================================================

    async def detect_clusters(
        self,
        ecosystem_id: str,
        window_hours: int | None = None,
        now: datetime | None = None,
    ) -> list[DemandCluster]:
        """
        Формирует новые и расширяет активные кластеры экосистемы.

        Returns:
            Созданные и расширенные кластеры. При ошибке пустой список,
            заявки обрабатываются по отдельности.
        """
        now = now or datetime.now(timezone.utc)
        window = timedelta(hours=window_hours if window_hours is not None else self._window_hours)

        try:
            requests = await self._requests.list_open_unclustered(ecosystem_id)
            if not requests:
                return []

            active = await self._repo.list_active(ecosystem_id)
            plan = plan_clusters(requests, active, window, self._min_size, now)
            if plan.is_empty:
                return []

            by_id = {r.id: r for r in requests}
            active_by_id = {c.id: c for c in active}
            changed: list[tuple[DemandCluster, list[ServiceRequest]]] = []

            async with self._db.transaction() as conn:
                for cluster_id, joining in plan.joins.items():
                    cluster = active_by_id[cluster_id]
                    added = await RequestRepository.assign_cluster(conn, cluster_id, [r.id for r in joining])
                    if not added:
                        continue
                    member_ids = cluster.member_ids + added
                    savings = await self._member_savings(member_ids, by_id, cluster)
                    await ClusterRepository.update_members(conn, cluster_id, member_ids, savings)
                    updated = cluster.model_copy(update={"member_ids": member_ids, "estimated_savings": savings})
                    changed.append((updated, [by_id[i] for i in added]))

                for tag, members in plan.new_groups:
                    cluster = DemandCluster(
                        id=str(uuid4()),
                        ecosystem_id=ecosystem_id,
                        shared_tag=tag,
                        member_ids=[r.id for r in members],
                        window_start=members[0].created_at,
                        detected_at=now,
                        expires_at=now + self._offer_ttl,
                        estimated_savings=self._savings(members),
                    )
                    try:
                        async with conn.transaction():
                            await ClusterRepository.insert(conn, cluster)
                            added = await RequestRepository.assign_cluster(conn, cluster.id, cluster.member_ids)
                            if len(added) != len(cluster.member_ids):
                                raise _ClusterRace()
                    except _ClusterRace:
                        await log_warning(f"Кластер по тегу {tag} пропущен: заявки уже в других кластерах")
                        continue
                    changed.append((cluster, members))

        except Exception as e:
            await log_error(f"Ошибка поиска кластеров в {ecosystem_id}: {e}", exc_info=True)
            return []

        for cluster, recipients in changed:
            await self._send_offers(cluster, recipients)

        if changed:
            await log_info(
                f"Экосистема {ecosystem_id}: кластеров создано/расширено {len(changed)}",
                type_msg=TypeMsg.INFO,
            )
        return [cluster for cluster, _ in changed]

    async def _member_savings(
        self,
        member_ids: list[str],
        known: dict[str, ServiceRequest],
        cluster: DemandCluster,
    ) -> float:
        # Старые участники уже в кластере, их вознаграждение берём из БД
        members = [known[i] for i in member_ids if i in known]
        missing = [i for i in member_ids if i not in known]
        for request_id in missing:
            request = await self._requests.get_by_id(request_id)
            if request is not None:
                members.append(request)
        if not members:
            return cluster.estimated_savings
        return self._savings(members)

    async def _send_offers(self, cluster: DemandCluster, recipients: list[ServiceRequest]) -> None:
        """
        Предложение объединиться. Новому кластеру оно уходит один раз,
        при расширении получают только присоединившиеся.
        """
        if not cluster.offer_sent:
            if not await self._repo.mark_offer_sent(cluster.id):
                return

        for request in recipients:
            await self._notifications.notify_cluster_offer(
                seeker_id=request.seeker_id,
                request_id=request.id,
                cluster_id=cluster.id,
                tag=cluster.shared_tag,
                member_count=cluster.member_count,
                savings=cluster.estimated_savings,
                language=request.language,
            )

    # =========================================================================
    # ИСТЕЧЕНИЕ И ИСПОЛНЕНИЕ
    # =========================================================================

    async def expire_clusters(self, ecosystem_id: str, now: datetime | None = None) -> list[str]:
        """Активные кластеры с истёкшим предложением переходят в expired."""
        expired = await self._repo.expire(ecosystem_id, now or datetime.now(timezone.utc))
        if expired:
            await log_info(f"Истекло кластеров в {ecosystem_id}: {len(expired)}", type_msg=TypeMsg.INFO)
        return expired

    async def check_fulfilment(self, cluster_id: str) -> bool:
        """Кластер исполнен, когда все его заявки подтверждены."""
        cluster = await self._repo.get_by_id(cluster_id)
        if cluster is None or cluster.status != ClusterStatus.ACTIVE:
            return False

        statuses = await self._requests.statuses(cluster.member_ids)
        if len(statuses) < len(cluster.member_ids):
            return False
        if any(status != RequestStatus.CONFIRMED for status in statuses.values()):
            return False

        fulfilled = await self._repo.mark_fulfilled(cluster_id)
        if fulfilled:
            await log_info(f"Кластер {cluster_id} исполнен", type_msg=TypeMsg.INFO)
        return fulfilled

    # =========================================================================
    # СВИП
    # =========================================================================

    async def sweep_ecosystem(self, ecosystem_id: str) -> list[DemandCluster]:
        """Свип одной экосистемы под блокировкой."""
        lock_key = f"clusters:sweep:{ecosystem_id}"
        token = str(uuid4())

        if not await self._redis.acquire_lock(lock_key, token, self._lock_ttl):
            await log_info(f"Свип {ecosystem_id} уже выполняется другим процессом", type_msg=TypeMsg.DEBUG)
            return []

        try:
            await self.expire_clusters(ecosystem_id)
            return await asyncio.wait_for(self.detect_clusters(ecosystem_id), timeout=self._sweep_timeout)
        except asyncio.TimeoutError:
            await log_warning(f"Свип {ecosystem_id} не уложился в {self._sweep_timeout}с")
            return []
        finally:
            await self._redis.release_lock(lock_key, token)

    async def sweep_all(self, ecosystem_ids: list[str]) -> list[DemandCluster]:
        """Параллельный свип всех экосистем."""
        results = await asyncio.gather(
            *(self.sweep_ecosystem(eco_id) for eco_id in ecosystem_ids),
            return_exceptions=True,
        )

        clusters: list[DemandCluster] = []
        for eco_id, result in zip(ecosystem_ids, results):
            if isinstance(result, BaseException):
                await log_error(f"Свип {eco_id} завершился ошибкой: {result}")
                continue
            clusters.extend(result)
        return clusters
