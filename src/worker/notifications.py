# src/worker/notifications.py
"""
Воркер доставки уведомлений.
"""

from __future__ import annotations

from typing import List, Optional

from src.worker.base import BaseWorker
from src.core.notifications.dispatcher import NotificationDispatcher
from src.infra.event_bus import DomainEvent, EventTypes
from src.common.logger import log_error


class NotificationWorker(BaseWorker):
    """
    Читает notification.send и передаёт уведомление внешнему диспетчеру.
    """

    def __init__(self, *args, dispatcher: Optional[NotificationDispatcher] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._dispatcher = dispatcher

    @property
    def name(self) -> str:
        return "NotificationWorker"

    @property
    def subscriptions(self) -> List[str]:
        return [EventTypes.NOTIFICATION_SEND]

    async def start(self) -> None:
        if self._dispatcher is None:
            self._dispatcher = NotificationDispatcher()
        await super().start()

    async def stop(self) -> None:
        await super().stop()
        if self._dispatcher is not None:
            await self._dispatcher.close()

    async def handle_event(self, event: DomainEvent) -> None:
        payload = event.payload
        recipient = payload.get("recipient_id")
        if not recipient:
            await log_error("Уведомление без получателя", extra={"payload": payload})
            return

        await self._dispatcher.dispatch(str(recipient), {
            "kind": payload.get("kind"),
            "text": payload.get("text"),
            "language": payload.get("language"),
            "request_id": payload.get("request_id"),
            "cluster_id": payload.get("cluster_id"),
        })
