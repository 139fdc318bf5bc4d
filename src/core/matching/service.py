# src/core/matching/service.py
"""
Движок матчинга.
Разрешает радиус заявки, подбирает и ранжирует исполнителей,
рассылает уведомления без повторов.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.common.constants import RequestStatus, ScopeRule, TypeMsg
from src.common.exceptions import NotFoundError
from src.common.logger import log_info, log_error, log_warning
from src.core.ecosystems.registry import EcosystemRegistry
from src.core.expansion.scheduler import ExpansionScheduler
from src.core.geo.distance import haversine_km
from src.core.notifications.service import NotificationService
from src.core.providers.models import Provider
from src.core.providers.repository import ProviderRepository
from src.core.requests.models import ServiceRequest
from src.core.requests.repository import RequestRepository
from src.core.scope.models import ScopeContext, ScopeDecision
from src.core.scope.resolver import ScopeResolver, never_shrink
from src.core.supply.service import SupplyIndexCalculator
from src.infra.database import DatabaseManager


@dataclass
class MatchCandidate:
    """Кандидат исполнителя для заявки."""
    provider_id: str
    score: float
    distance_km: float
    ecosystem_id: str
    registered_at: datetime
    average_rating: Optional[float] = None


@dataclass
class MatchingOutcome:
    """Итог обработки заявки."""
    request_id: str
    decision: Optional[ScopeDecision] = None
    matches: list[MatchCandidate] = field(default_factory=list)
    notified: list[str] = field(default_factory=list)
    expansion_scheduled: bool = False
    skipped: bool = False


# Статусы, в которых заявку ещё имеет смысл показывать исполнителям
_MATCHABLE = (RequestStatus.OPEN, RequestStatus.PENDING)


class MatchingEngine:
    """
    Матчинг заявок с исполнителями.

    Скоринг: TAG_MATCH_WEIGHT за каждый совпавший тег, CATEGORY_MATCH_WEIGHT
    за категорию, минус DISTANCE_PENALTY_PER_KM за километр.
    """

    def __init__(
        self,
        db: DatabaseManager,
        registry: EcosystemRegistry,
        supply: SupplyIndexCalculator,
        resolver: ScopeResolver,
        scheduler: ExpansionScheduler,
        notifications: NotificationService,
    ) -> None:
        from src.config import settings

        self._requests = RequestRepository(db)
        self._providers = ProviderRepository(db)
        self._registry = registry
        self._supply = supply
        self._resolver = resolver
        self._scheduler = scheduler
        self._notifications = notifications

        cfg = settings.matching
        self._tag_weight = cfg.TAG_MATCH_WEIGHT
        self._category_weight = cfg.CATEGORY_MATCH_WEIGHT
        self._distance_penalty = cfg.DISTANCE_PENALTY_PER_KM
        self._max_notify = cfg.MAX_PROVIDERS_TO_NOTIFY
        self._query_timeout = cfg.CANDIDATE_QUERY_TIMEOUT_SECONDS
        self._neighbor_distance = settings.ecosystems.NEIGHBOR_DISTANCE_KM

    # =========================================================================
    # РАДИУС
    # =========================================================================

    async def resolve_scope(self, request: ServiceRequest, stalled: bool = False) -> ScopeDecision:
        """
        Разрешает радиус и сохраняет производные поля заявки.
        Уже расширенный радиус не уменьшается.
        """
        default_radius = await self._registry.default_radius(request.ecosystem_id)

        supply_index: Optional[int] = None
        if request.has_location:
            supply_index = await self._supply.supply_index_or_none(
                request.specific_tags,
                request.categories,
                request.latitude,
                request.longitude,
                radius_km=default_radius,
                ecosystem_id=request.ecosystem_id,
            )

        ctx = ScopeContext(
            specific_tags=tuple(request.specific_tags),
            compensation=request.compensation,
            urgency_level=request.urgency_level,
            supply_index=supply_index,
            ecosystem_average=await self._ecosystem_average(request),
            default_radius_km=default_radius,
            stalled=stalled,
        )

        decision = never_shrink(
            self._resolver.resolve(ctx),
            request.radius_km,
            request.include_neighboring,
        )
        await self._requests.update_scope(request.id, decision, supply_index)

        await log_info(
            f"Заявка {request.id}: правило {decision.rule.value}, радиус {decision.radius_km} км, "
            f"соседи={decision.include_neighboring}",
            type_msg=TypeMsg.DEBUG,
        )
        return decision

    async def _ecosystem_average(self, request: ServiceRequest) -> Optional[float]:
        if request.primary_tag is None:
            return None
        try:
            return await self._requests.average_compensation(request.ecosystem_id, request.primary_tag)
        except Exception as e:
            await log_warning(f"Среднее вознаграждение для {request.primary_tag} недоступно: {e}")
            return None

    # =========================================================================
    # ПОДБОР
    # =========================================================================

    def _score(self, request: ServiceRequest, provider: Provider, distance_km: float) -> Optional[float]:
        """Балл исполнителя или None, если он не подходит."""
        tag_matches = set(request.specific_tags) & set(provider.specific_tags)
        category_matches = set(request.categories) & set(provider.categories)
        if not tag_matches and not category_matches:
            return None

        if any(provider.min_compensation_for(tag) > request.compensation for tag in tag_matches):
            return None

        return (
            self._tag_weight * len(tag_matches)
            + self._category_weight * len(category_matches)
            - self._distance_penalty * distance_km
        )

    async def find_matches(self, request: ServiceRequest, decision: ScopeDecision) -> list[MatchCandidate]:
        """
        Подходящие исполнители в порядке убывания приоритета.

        Порядок: балл, средняя оценка (без оценок = 0), дата регистрации, ID.
        """
        if not request.has_location:
            await log_warning(f"Заявка {request.id} без координат, подбор невозможен")
            return []

        ecosystem_ids = [request.ecosystem_id]
        if decision.include_neighboring:
            ecosystem_ids += await self._registry.neighbors(request.ecosystem_id, self._neighbor_distance)

        providers = await asyncio.wait_for(
            self._providers.list_candidates(ecosystem_ids, request.specific_tags, request.categories),
            timeout=self._query_timeout,
        )

        candidates: list[MatchCandidate] = []
        for provider in providers:
            if not provider.is_active:
                continue
            distance = haversine_km(request.latitude, request.longitude, provider.latitude, provider.longitude)
            if distance > decision.radius_km:
                continue
            score = self._score(request, provider, distance)
            if score is None:
                continue
            candidates.append(MatchCandidate(
                provider_id=provider.user_id,
                score=round(score, 4),
                distance_km=round(distance, 3),
                ecosystem_id=provider.ecosystem_id,
                average_rating=provider.average_rating,
                registered_at=provider.registered_at,
            ))

        candidates.sort(key=lambda c: (
            -c.score,
            -(c.average_rating or 0.0),
            c.registered_at,
            c.provider_id,
        ))
        return candidates

    # =========================================================================
    # РАССЫЛКА
    # =========================================================================

    async def dispatch(self, request: ServiceRequest, matches: list[MatchCandidate]) -> list[str]:
        """
        Уведомляет лучших из ещё не уведомлённых кандидатов.
        Каждый исполнитель уведомляется о заявке не более одного раза.
        Если уведомление не ушло, отметка снимается и исполнитель
        получит его при следующем запуске.

        Returns:
            ID исполнителей, уведомлённых этим вызовом
        """
        notified: list[str] = []
        tag = request.primary_tag or ", ".join(request.categories)

        already = set(await self._requests.notified_providers(request.id))
        fresh = [m for m in matches if m.provider_id not in already]

        for match in fresh[:self._max_notify]:
            if not await self._requests.claim_notification(request.id, match.provider_id):
                continue
            sent = await self._notifications.notify_provider_match(
                provider_id=match.provider_id,
                request_id=request.id,
                tag=tag,
                compensation=request.compensation,
                distance_km=match.distance_km,
            )
            if not sent:
                await self._requests.release_notification(request.id, match.provider_id)
                await log_warning(
                    f"Заявка {request.id}: уведомление исполнителю {match.provider_id} не отправлено, "
                    f"отметка снята"
                )
                continue
            notified.append(match.provider_id)

        if notified:
            await log_info(
                f"Заявка {request.id}: уведомлено исполнителей {len(notified)}",
                type_msg=TypeMsg.INFO,
            )
        return notified

    # =========================================================================
    # ОРКЕСТРАЦИЯ
    # =========================================================================

    async def process_request(self, request_id: str, stalled: bool = False) -> MatchingOutcome:
        """
        Полный цикл: радиус, подбор, рассылка, таймер расширения.

        Raises:
            NotFoundError: заявка не найдена
        """
        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise NotFoundError("Заявка", request_id)

        if request.status not in _MATCHABLE:
            await log_info(
                f"Заявка {request_id} в статусе {request.status.value}, матчинг пропущен",
                type_msg=TypeMsg.DEBUG,
            )
            return MatchingOutcome(request_id=request_id, skipped=True)

        decision = await self.resolve_scope(request, stalled=stalled)
        request = request.model_copy(update={
            "radius_km": decision.radius_km,
            "include_neighboring": decision.include_neighboring,
        })

        try:
            matches = await self.find_matches(request, decision)
        except asyncio.TimeoutError:
            await log_error(f"Поиск кандидатов для заявки {request_id} превысил таймаут")
            matches = []

        notified = await self.dispatch(request, matches)

        scheduled = False
        if (
            not stalled
            and decision.expansion_eligible
            and decision.rule in (ScopeRule.DEFAULT, ScopeRule.SUPPLY_UNAVAILABLE)
            and request.status == RequestStatus.OPEN
        ):
            await self._scheduler.schedule(request.id, request.created_at)
            scheduled = True

        return MatchingOutcome(
            request_id=request_id,
            decision=decision,
            matches=matches,
            notified=notified,
            expansion_scheduled=scheduled,
        )
