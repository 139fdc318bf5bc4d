# src/core/engine.py
"""
Сборка доменных сервисов поверх инфраструктуры.
Используется API и воркерами.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.clusters.service import ClusterService
from src.core.ecosystems.registry import EcosystemRegistry
from src.core.ecosystems.repository import EcosystemRepository
from src.core.expansion.scheduler import ExpansionScheduler
from src.core.gangs.service import GangService
from src.core.geo.client import GeolocationClient
from src.core.matching.service import MatchingEngine
from src.core.notifications.service import NotificationService
from src.core.providers.repository import ProviderRepository
from src.core.reputation.service import ReputationService
from src.core.requests.service import RequestService
from src.core.scope.resolver import ScopeResolver
from src.core.supply.service import SupplyIndexCalculator
from src.core.urgency.scorer import UrgencyScorer
from src.infra.database import DatabaseManager
from src.infra.event_bus import EventBus
from src.infra.redis_client import RedisClient


@dataclass
class Engine:
    """Набор связанных сервисов."""
    registry: EcosystemRegistry
    scheduler: ExpansionScheduler
    notifications: NotificationService
    matching: MatchingEngine
    requests: RequestService
    clusters: ClusterService
    gangs: GangService
    reputation: ReputationService
    geolocation: GeolocationClient

    async def close(self) -> None:
        await self.geolocation.close()


def build_engine(db: DatabaseManager, redis: RedisClient, event_bus: EventBus) -> Engine:
    """Создаёт и связывает сервисы."""
    registry = EcosystemRegistry(EcosystemRepository(db))
    scheduler = ExpansionScheduler(redis)
    notifications = NotificationService(event_bus)
    geolocation = GeolocationClient()

    matching = MatchingEngine(
        db=db,
        registry=registry,
        supply=SupplyIndexCalculator(ProviderRepository(db), registry),
        resolver=ScopeResolver(),
        scheduler=scheduler,
        notifications=notifications,
    )
    clusters = ClusterService(db, redis, notifications)
    requests = RequestService(
        db=db,
        event_bus=event_bus,
        registry=registry,
        scheduler=scheduler,
        notifications=notifications,
        geolocation=geolocation,
        urgency=UrgencyScorer(),
        clusters=clusters,
    )

    return Engine(
        registry=registry,
        scheduler=scheduler,
        notifications=notifications,
        matching=matching,
        requests=requests,
        clusters=clusters,
        gangs=GangService(db, requests),
        reputation=ReputationService(db),
        geolocation=geolocation,
    )
