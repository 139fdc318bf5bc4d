# src/worker/expansion.py
"""
Воркер отложенного расширения радиуса.
"""

from __future__ import annotations

from src.worker.base import PeriodicWorker
from src.common.constants import RequestStatus, TypeMsg
from src.common.exceptions import NotFoundError
from src.common.logger import log_info, log_error


class ExpansionWorker(PeriodicWorker):
    """
    Забирает сработавшие таймеры и перезапускает матчинг заявок,
    которые всё ещё открыты и без откликов.
    """

    @property
    def name(self) -> str:
        return "ExpansionWorker"

    @property
    def interval(self) -> float:
        from src.config import settings
        return settings.expansion.EXPANSION_POLL_INTERVAL

    async def tick(self) -> None:
        from src.config import settings

        due = await self.engine.scheduler.due(limit=settings.expansion.EXPANSION_BATCH_SIZE)
        for request_id in due:
            try:
                await self.fire(request_id)
            except Exception as e:
                await log_error(f"Ошибка таймера расширения заявки {request_id}: {e}", exc_info=True)

    async def fire(self, request_id: str) -> bool:
        """
        Срабатывание таймера одной заявки.
        При сбое матчинга таймер возвращается с задержкой EXPANSION_RETRY_DELAY.

        Returns:
            True если радиус был расширен
        """
        if not await self.engine.scheduler.claim(request_id):
            return False

        try:
            request = await self.engine.requests.get_request(request_id)
        except NotFoundError:
            return False
        except Exception as e:
            await self._retry(request_id, e)
            return False

        if request.status != RequestStatus.OPEN or request.interested_provider_ids:
            await log_info(
                f"Таймер заявки {request_id} сработал вхолостую: статус {request.status.value}",
                type_msg=TypeMsg.DEBUG,
            )
            return False

        try:
            outcome = await self.engine.matching.process_request(request_id, stalled=True)
        except Exception as e:
            await self._retry(request_id, e)
            return False

        await log_info(
            f"Заявка {request_id} расширена: правило "
            f"{outcome.decision.rule.value if outcome.decision else '-'}, уведомлено {len(outcome.notified)}",
            type_msg=TypeMsg.INFO,
        )
        return not outcome.skipped

    async def _retry(self, request_id: str, error: Exception) -> None:
        from src.config import settings

        delay = settings.expansion.EXPANSION_RETRY_DELAY
        await log_error(f"Расширение заявки {request_id} не удалось, повтор через {delay}с: {error}")
        await self.engine.scheduler.retry_later(request_id, delay)
