# src/core/reputation/service.py
"""
Реестр репутации.
Оценки исполнителей и журнал подтверждённых сделок.
"""

from __future__ import annotations

from asyncpg import Connection

from src.common.constants import RequestStatus, TypeMsg
from src.common.exceptions import NotFoundError, ValidationError
from src.common.logger import log_info
from src.core.providers.models import ProviderReputation
from src.core.providers.repository import ProviderRepository
from src.core.reputation.models import Rating, Transaction
from src.core.reputation.repository import ReputationRepository
from src.core.requests.models import ServiceRequest
from src.core.requests.repository import RequestRepository
from src.infra.database import DatabaseManager


class ReputationService:
    """
    Единственный владелец агрегатов рейтинга исполнителя.
    Агрегаты меняются одним UPDATE ... SET x = x + $n, без чтения.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db
        self._repo = ReputationRepository(db)
        self._requests = RequestRepository(db)
        self._providers = ProviderRepository(db)

    async def submit_rating(
        self,
        request_id: str,
        value: int,
        seeker_id: str | None = None,
    ) -> Rating:
        """
        Принимает оценку подтверждённой заявки.

        Raises:
            ValidationError: оценка вне 1..5, заявка не подтверждена,
                оценку ставит не заказчик, оценка уже есть
            NotFoundError: заявка не найдена
        """
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise ValidationError("rating_out_of_range", f"Оценка должна быть целым от 1 до 5, получено {value!r}")

        async with self._db.transaction() as conn:
            request = await RequestRepository.get_for_update(conn, request_id)
            if request is None:
                raise NotFoundError("Заявка", request_id)
            if request.status != RequestStatus.CONFIRMED or request.accepted_provider_id is None:
                raise ValidationError("request_not_confirmed", f"Заявка {request_id} ещё не подтверждена")
            if seeker_id is not None and seeker_id != request.seeker_id:
                raise ValidationError("not_seeker", "Оценку ставит только заказчик")

            rating = Rating(
                request_id=request_id,
                seeker_id=request.seeker_id,
                provider_id=request.accepted_provider_id,
                value=value,
            )
            if not await ReputationRepository.insert_rating(conn, rating):
                raise ValidationError("duplicate_rating", f"Заявка {request_id} уже оценена")

            await ProviderRepository.apply_rating(conn, rating.provider_id, value)

        await log_info(
            f"Оценка {value} исполнителю {rating.provider_id} по заявке {request_id}",
            type_msg=TypeMsg.INFO,
        )
        return rating

    async def get_reputation(self, provider_id: str) -> ProviderReputation:
        """Средняя оценка, признак новичка и число выполненных заявок."""
        provider = await self._providers.get_by_id(provider_id)
        if provider is None:
            raise NotFoundError("Исполнитель", provider_id)
        return ProviderReputation.from_provider(provider)

    @staticmethod
    async def record_transaction(conn: Connection, request: ServiceRequest) -> Transaction:
        """Записывает сделку по подтверждённой заявке (внутри транзакции)."""
        transaction = Transaction(
            request_id=request.id,
            provider_id=request.accepted_provider_id,
            compensation=request.compensation,
            completed_at=request.completed_at or request.status_changed_at,
            is_cross_ecosystem=request.is_cross_ecosystem,
        )
        if await ReputationRepository.insert_transaction(conn, transaction):
            await ProviderRepository.increment_completed(conn, transaction.provider_id)
        return transaction
