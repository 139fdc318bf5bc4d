# src/worker/matching.py
"""
Воркер матчинга опубликованных заявок.
"""

from __future__ import annotations

from typing import List

from src.worker.base import BaseWorker
from src.infra.event_bus import DomainEvent, EventTypes
from src.common.exceptions import NotFoundError
from src.common.logger import log_info, log_error
from src.common.constants import TypeMsg


class MatchingWorker(BaseWorker):
    """
    Подписывается на request.published и запускает полный цикл матчинга.
    """

    @property
    def name(self) -> str:
        return "MatchingWorker"

    @property
    def subscriptions(self) -> List[str]:
        return [EventTypes.REQUEST_PUBLISHED]

    async def handle_event(self, event: DomainEvent) -> None:
        request_id = event.payload.get("request_id")
        if not request_id:
            await log_error("Событие request.published без request_id", extra={"payload": event.payload})
            return

        try:
            outcome = await self.engine.matching.process_request(request_id)
        except NotFoundError:
            await log_error(f"Заявка {request_id} из события не найдена")
            return

        if outcome.skipped:
            return

        await log_info(
            f"Заявка {request_id}: кандидатов {len(outcome.matches)}, уведомлено {len(outcome.notified)}",
            type_msg=TypeMsg.INFO,
        )
