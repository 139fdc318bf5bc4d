# src/core/requests/service.py
"""
Сервис заявок.
Публикация и жизненный цикл: единственное место, где меняется статус заявки.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from src.common.constants import RequestStatus, TypeMsg
from src.common.exceptions import NotFoundError, ValidationError
from src.common.logger import log_info, log_error
from src.core.ecosystems.registry import EcosystemRegistry
from src.core.expansion.scheduler import ExpansionScheduler
from src.core.gangs.repository import GangRepository
from src.core.geo.client import GeolocationClient
from src.core.notifications.service import NotificationService
from src.core.reputation.service import ReputationService
from src.core.requests.models import ServiceRequest, ServiceRequestCreateDTO
from src.core.requests.repository import RequestRepository
from src.core.requests.state_machine import RequestStateMachine
from src.core.urgency.scorer import UrgencyScorer
from src.infra.database import DatabaseManager
from src.infra.event_bus import EventBus, DomainEvent, EventTypes

if TYPE_CHECKING:
    from src.core.clusters.service import ClusterService
    from src.core.gangs.models import LaborGang


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestService:
    """
    Сервис заявок.

    Побочные эффекты подтверждения (сделка, счётчики исполнителя и бригады)
    выполняются в той же транзакции, что и смена статуса. Уведомления,
    отмена таймера и проверка кластера выполняются после фиксации.
    """

    def __init__(
        self,
        db: DatabaseManager,
        event_bus: EventBus,
        registry: EcosystemRegistry,
        scheduler: ExpansionScheduler,
        notifications: NotificationService,
        geolocation: Optional[GeolocationClient] = None,
        urgency: Optional[UrgencyScorer] = None,
        clusters: Optional["ClusterService"] = None,
    ) -> None:
        self._db = db
        self._repo = RequestRepository(db)
        self._event_bus = event_bus
        self._registry = registry
        self._scheduler = scheduler
        self._notifications = notifications
        self._geolocation = geolocation
        self._urgency = urgency or UrgencyScorer()
        self._clusters = clusters

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_request(self, request_id: str) -> ServiceRequest:
        request = await self._repo.get_by_id(request_id)
        if request is None:
            raise NotFoundError("Заявка", request_id)
        return request

    # =========================================================================
    # ПУБЛИКАЦИЯ
    # =========================================================================

    async def publish(self, dto: ServiceRequestCreateDTO) -> ServiceRequest:
        """
        Публикует заявку.

        Проверяет вознаграждение и теги, определяет экосистему
        (при ошибке геолокации экосистема по умолчанию), оценивает срочность.

        Raises:
            ValidationError: вознаграждение <= 0 или нет ни тегов, ни категорий
        """
        if dto.compensation <= 0:
            raise ValidationError("non_positive_compensation", "Вознаграждение должно быть больше нуля")
        if not dto.specific_tags and not dto.categories:
            raise ValidationError("empty_tags", "Нужен хотя бы один тег или категория")

        latitude, longitude, address = await self._locate(dto)
        ecosystem_id = await self._registry.assign(latitude, longitude)

        if latitude is None or longitude is None:
            # Без координат заявка привязывается к центру своей экосистемы
            ecosystem = await self._registry.get(ecosystem_id)
            if ecosystem is not None:
                latitude, longitude = ecosystem.latitude, ecosystem.longitude

        keywords = dto.urgency_keywords or self._urgency.extract_keywords(dto.description)
        urgency = self._urgency.score(keywords)

        now = _utcnow()
        request = ServiceRequest(
            seeker_id=dto.seeker_id,
            ecosystem_id=ecosystem_id,
            specific_tags=dto.specific_tags,
            categories=dto.categories,
            description=dto.description,
            language=dto.language,
            latitude=latitude,
            longitude=longitude,
            address=address,
            compensation=dto.compensation,
            window_start=dto.window_start,
            window_end=dto.window_end,
            urgency_score=urgency.score,
            urgency_level=urgency.level,
            urgency_keywords=list(urgency.keywords),
            created_at=now,
            status_changed_at=now,
        )
        await self._repo.create(request)

        await self._event_bus.publish(DomainEvent(
            event_type=EventTypes.REQUEST_PUBLISHED,
            payload={"request_id": request.id, "ecosystem_id": ecosystem_id},
        ))

        await log_info(
            f"Заявка {request.id} опубликована: экосистема={ecosystem_id}, "
            f"теги={request.specific_tags}, срочность={urgency.level.value}",
            type_msg=TypeMsg.INFO,
        )
        return request

    async def _locate(
        self,
        dto: ServiceRequestCreateDTO,
    ) -> tuple[Optional[float], Optional[float], Optional[str]]:
        if dto.latitude is not None and dto.longitude is not None:
            return dto.latitude, dto.longitude, dto.address
        if not dto.address or self._geolocation is None:
            return None, None, dto.address

        location = await self._geolocation.geocode(dto.address)
        if location is None:
            return None, None, dto.address
        return location.latitude, location.longitude, location.address

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def register_interest(self, request_id: str, provider_id: str) -> ServiceRequest:
        """
        Исполнитель откликается на заявку. Открытая заявка переходит в pending.

        Raises:
            ValidationError: заявка уже не принимает отклики
        """
        async with self._db.transaction() as conn:
            request = await RequestRepository.get_for_update(conn, request_id)
            if request is None:
                raise NotFoundError("Заявка", request_id)
            if request.status not in (RequestStatus.OPEN, RequestStatus.PENDING):
                raise ValidationError(
                    "invalid_transition",
                    f"Заявка {request_id} в статусе {request.status.value} не принимает отклики",
                )

            previous = request.status
            if provider_id not in request.interested_provider_ids:
                request.interested_provider_ids.append(provider_id)
            if previous == RequestStatus.OPEN:
                request.status = RequestStatus.PENDING
                request.status_changed_at = _utcnow()

            await RequestRepository.save_lifecycle(conn, request)

        await self._after_transition(request, previous)
        return request

    async def transition(
        self,
        request_id: str,
        new_status: RequestStatus,
        provider_id: str | None = None,
        actor_id: str | None = None,
    ) -> ServiceRequest:
        """
        Меняет статус заявки.

        Raises:
            ValidationError: переход недопустим или не выполнены его условия
            NotFoundError: заявка не найдена
        """
        new_status = RequestStatus(new_status)

        async with self._db.transaction() as conn:
            request = await RequestRepository.get_for_update(conn, request_id)
            if request is None:
                raise NotFoundError("Заявка", request_id)

            previous = request.status
            if not RequestStateMachine.can_transition(previous, new_status):
                raise ValidationError(
                    "invalid_transition",
                    f"Переход {previous.value} -> {new_status.value} недопустим",
                )

            self._apply_guards(request, new_status, provider_id, actor_id)

            now = _utcnow()
            request.status = new_status
            request.status_changed_at = now
            if new_status == RequestStatus.COMPLETED:
                request.completed_at = now

            await RequestRepository.save_lifecycle(conn, request)

            if new_status == RequestStatus.CONFIRMED:
                await ReputationService.record_transaction(conn, request)
                if request.gang_id:
                    await GangRepository.increment_completed(conn, request.gang_id)

        await self._after_transition(request, previous)
        return request

    @staticmethod
    def _apply_guards(
        request: ServiceRequest,
        new_status: RequestStatus,
        provider_id: str | None,
        actor_id: str | None,
    ) -> None:
        if new_status == RequestStatus.PENDING and not request.interested_provider_ids:
            raise ValidationError("no_interested_provider", "Нет откликнувшихся исполнителей")

        if new_status == RequestStatus.ACCEPTED:
            interested = request.interested_provider_ids
            if not interested:
                raise ValidationError("no_interested_provider", "Нет откликнувшихся исполнителей")
            if provider_id is None:
                if len(interested) != 1:
                    raise ValidationError(
                        "provider_not_interested",
                        "Нужно указать одного исполнителя из откликнувшихся",
                    )
                provider_id = interested[0]
            if provider_id not in interested:
                raise ValidationError(
                    "provider_not_interested",
                    f"Исполнитель {provider_id} не откликался на заявку",
                )
            request.accepted_provider_id = provider_id
            request.interested_provider_ids = [provider_id]

        if new_status == RequestStatus.CONFIRMED and actor_id != request.seeker_id:
            raise ValidationError("not_seeker", "Подтвердить выполнение может только заказчик")

    async def accept_by_gang(self, request_id: str, gang: "LaborGang") -> ServiceRequest:
        """
        Лидер бригады становится единственным откликнувшимся и принявшим
        исполнителем. Открытая заявка проходит open -> pending -> accepted,
        каждый шаг сохраняется. Всё в одной транзакции.
        """
        async with self._db.transaction() as conn:
            request = await RequestRepository.get_for_update(conn, request_id)
            if request is None:
                raise NotFoundError("Заявка", request_id)

            previous = request.status
            if previous not in (RequestStatus.OPEN, RequestStatus.PENDING):
                raise ValidationError(
                    "invalid_transition",
                    f"Бригада не может принять заявку в статусе {previous.value}",
                )

            if previous == RequestStatus.OPEN:
                request.interested_provider_ids = [gang.leader_id]
                request.status = RequestStatus.PENDING
                request.status_changed_at = _utcnow()
                await RequestRepository.save_lifecycle(conn, request)

            if not RequestStateMachine.can_transition(request.status, RequestStatus.ACCEPTED):
                raise ValidationError(
                    "invalid_transition",
                    f"Переход {request.status.value} -> {RequestStatus.ACCEPTED.value} недопустим",
                )

            request.interested_provider_ids = [gang.leader_id]
            request.accepted_provider_id = gang.leader_id
            request.gang_id = gang.id
            request.status = RequestStatus.ACCEPTED
            request.status_changed_at = _utcnow()

            await RequestRepository.save_lifecycle(conn, request)

        await log_info(f"Заявка {request_id} принята бригадой {gang.id}", type_msg=TypeMsg.INFO)
        if previous == RequestStatus.OPEN:
            await self._after_transition(request, RequestStatus.OPEN, RequestStatus.PENDING)
            previous = RequestStatus.PENDING
        await self._after_transition(request, previous)
        return request

    async def _after_transition(
        self,
        request: ServiceRequest,
        previous: RequestStatus,
        current: RequestStatus | None = None,
    ) -> None:
        """Действия после фиксации смены статуса (current по умолчанию текущий статус заявки)."""
        current = current or request.status
        if previous == current:
            return

        if previous == RequestStatus.OPEN:
            await self._scheduler.cancel(request.id)

        await self._event_bus.publish(DomainEvent(
            event_type=EventTypes.REQUEST_STATUS_CHANGED,
            payload={
                "request_id": request.id,
                "from": previous.value,
                "to": current.value,
                "provider_id": request.accepted_provider_id,
            },
        ))

        await log_info(
            f"Заявка {request.id}: {previous.value} -> {current.value}",
            type_msg=TypeMsg.INFO,
        )

        if request.accepted_provider_id and current in (RequestStatus.ACCEPTED, RequestStatus.CANCELLED):
            await self._notifications.notify_status_changed(
                recipient_id=request.accepted_provider_id,
                request_id=request.id,
                status=current.value,
            )

        if current == RequestStatus.CONFIRMED:
            await self._notifications.notify_rating_prompt(request.seeker_id, request.id, request.language)
            if request.cluster_id and self._clusters is not None:
                try:
                    await self._clusters.check_fulfilment(request.cluster_id)
                except Exception as e:
                    await log_error(f"Ошибка проверки кластера {request.cluster_id}: {e}")

    # =========================================================================
    # ПРОСТОЙ
    # =========================================================================

    async def flag_stale_requests(self, now: datetime | None = None, stale_hours: int | None = None) -> int:
        """
        Однократно предупреждает заказчиков открытых заявок без откликов.

        Returns:
            Количество предупреждённых заявок
        """
        if stale_hours is None:
            from src.config import settings
            stale_hours = settings.lifecycle.STALE_REQUEST_HOURS

        cutoff = (now or _utcnow()) - timedelta(hours=stale_hours)
        stale = await self._repo.mark_stale(cutoff)

        for request in stale:
            await self._notifications.notify_stale_request(
                seeker_id=request.seeker_id,
                request_id=request.id,
                tag=request.primary_tag or ", ".join(request.categories),
                language=request.language,
            )

        if stale:
            await log_info(f"Предупреждено о простое заявок: {len(stale)}", type_msg=TypeMsg.INFO)
        return len(stale)
