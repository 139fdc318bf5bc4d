# src/core/notifications/service.py
"""
Сервис уведомлений.
Формирует намерения уведомить пользователя и публикует их в шину событий.
Доставкой занимается NotificationWorker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from src.common.constants import NotificationKind, TypeMsg
from src.common.logger import log_info, log_error
from src.common.localization import get_text
from src.infra.event_bus import EventBus, DomainEvent, EventTypes


@dataclass
class NotificationData:
    """Данные для уведомления."""
    recipient_id: str
    kind: NotificationKind
    language: str = "en"
    kwargs: dict[str, Any] = field(default_factory=dict)
    request_id: Optional[str] = None
    cluster_id: Optional[str] = None


class NotificationService:
    """
    Публикует события notification.send.
    Текст локализуется здесь, транспорт выбирает диспетчер.
    """

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus

    async def send_notification(self, data: NotificationData) -> bool:
        """
        Ставит уведомление в очередь.

        Returns:
            True если событие опубликовано
        """
        try:
            text = get_text(data.kind.name, data.language, **data.kwargs)

            published = await self._event_bus.publish(DomainEvent(
                event_type=EventTypes.NOTIFICATION_SEND,
                payload={
                    "recipient_id": data.recipient_id,
                    "kind": data.kind.value,
                    "language": data.language,
                    "text": text,
                    "request_id": data.request_id,
                    "cluster_id": data.cluster_id,
                    "params": data.kwargs,
                },
            ))
        except Exception as e:
            await log_error(f"Ошибка постановки уведомления {data.kind.value}: {e}")
            return False

        if published:
            await log_info(
                f"Уведомление в очереди: recipient={data.recipient_id}, kind={data.kind.value}",
                type_msg=TypeMsg.DEBUG,
            )
        return bool(published)

    async def notify_provider_match(
        self,
        provider_id: str,
        request_id: str,
        tag: str,
        compensation: float,
        distance_km: float,
        language: str = "en",
    ) -> bool:
        """Исполнителю: рядом новая подходящая заявка."""
        return await self.send_notification(NotificationData(
            recipient_id=provider_id,
            kind=NotificationKind.PROVIDER_MATCH,
            language=language,
            request_id=request_id,
            kwargs={
                "tag": tag,
                "compensation": f"{compensation:g}",
                "distance_km": f"{distance_km:.1f}",
            },
        ))

    async def notify_cluster_offer(
        self,
        seeker_id: str,
        request_id: str,
        cluster_id: str,
        tag: str,
        member_count: int,
        savings: float,
        language: str = "en",
    ) -> bool:
        """Заказчику: предложение объединить заявку с соседями."""
        return await self.send_notification(NotificationData(
            recipient_id=seeker_id,
            kind=NotificationKind.CLUSTER_OFFER,
            language=language,
            request_id=request_id,
            cluster_id=cluster_id,
            kwargs={
                "tag": tag,
                "member_count": member_count,
                "savings": f"{savings:.0f}",
            },
        ))

    async def notify_rating_prompt(self, seeker_id: str, request_id: str, language: str = "en") -> bool:
        """Заказчику: оцените исполнителя."""
        return await self.send_notification(NotificationData(
            recipient_id=seeker_id,
            kind=NotificationKind.RATING_PROMPT,
            language=language,
            request_id=request_id,
        ))

    async def notify_stale_request(
        self,
        seeker_id: str,
        request_id: str,
        tag: str,
        language: str = "en",
    ) -> bool:
        """Заказчику: на заявку никто не откликнулся."""
        return await self.send_notification(NotificationData(
            recipient_id=seeker_id,
            kind=NotificationKind.STALE_REQUEST,
            language=language,
            request_id=request_id,
            kwargs={"tag": tag},
        ))

    async def notify_status_changed(
        self,
        recipient_id: str,
        request_id: str,
        status: str,
        language: str = "en",
    ) -> bool:
        """Участнику заявки: статус изменился."""
        return await self.send_notification(NotificationData(
            recipient_id=recipient_id,
            kind=NotificationKind.STATUS_CHANGED,
            language=language,
            request_id=request_id,
            kwargs={"status": status},
        ))
