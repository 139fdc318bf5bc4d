# src/core/notifications/dispatcher.py
"""
Клиент внешнего диспетчера уведомлений (push / SMS).
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from src.common.constants import TypeMsg
from src.common.logger import log_info, log_warning, log_error


class NotificationDispatcher:
    """
    Отправляет уведомление POST-запросом {recipient, channel, payload}.

    Каждый канал пробуется несколько раз с экспоненциальной задержкой,
    затем диспетчер переходит к следующему каналу (push -> sms).
    """

    def __init__(
        self,
        url: str | None = None,
        channels: list[str] | None = None,
        retry_attempts: int | None = None,
        base_delay: float | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        from src.config import settings

        cfg = settings.notifications
        self._url = url or cfg.DISPATCHER_URL
        self._channels = list(channels or cfg.DELIVERY_CHANNELS)
        self._attempts = retry_attempts if retry_attempts is not None else cfg.DISPATCH_RETRY_ATTEMPTS
        self._base_delay = base_delay if base_delay is not None else cfg.DISPATCH_RETRY_BASE_DELAY
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else cfg.DISPATCH_TIMEOUT,
        )

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        await self._client.aclose()

    async def _send_once(self, recipient: str, channel: str, payload: dict[str, Any]) -> None:
        response = await self._client.post(
            self._url,
            json={"recipient": recipient, "channel": channel, "payload": payload},
        )
        response.raise_for_status()

    async def _send_with_retry(self, recipient: str, channel: str, payload: dict[str, Any]) -> bool:
        for attempt in range(1, self._attempts + 1):
            try:
                await self._send_once(recipient, channel, payload)
                return True
            except httpx.HTTPStatusError as e:
                # 4xx повторять бессмысленно
                if e.response.status_code < 500:
                    await log_warning(
                        f"Диспетчер отклонил {channel} для {recipient}: {e.response.status_code}"
                    )
                    return False
                error: Exception = e
            except httpx.HTTPError as e:
                error = e

            if attempt < self._attempts:
                await log_info(
                    f"Повтор отправки {channel} для {recipient} (попытка {attempt}/{self._attempts}): {error}",
                    type_msg=TypeMsg.DEBUG,
                )
                await asyncio.sleep(self._base_delay * 2 ** (attempt - 1))

        await log_warning(f"Канал {channel} недоступен для {recipient} после {self._attempts} попыток")
        return False

    async def dispatch(self, recipient: str, payload: dict[str, Any]) -> Optional[str]:
        """
        Доставляет уведомление первым доступным каналом.

        Returns:
            Канал, через который ушло уведомление, или None
        """
        for channel in self._channels:
            if await self._send_with_retry(recipient, channel, payload):
                await log_info(
                    f"Уведомление {payload.get('kind')} доставлено {recipient} через {channel}",
                    type_msg=TypeMsg.DEBUG,
                )
                return channel

        await log_error(
            f"Уведомление {payload.get('kind')} не доставлено {recipient}: все каналы недоступны",
            extra={"request_id": payload.get("request_id")},
        )
        return None
