# src/core/expansion/scheduler.py
"""
Отложенное расширение радиуса.

Таймеры хранятся в Redis sorted set: элемент = ID заявки,
вес = момент срабатывания (unix time). Срабатывает только тот,
кто первым забрал элемент через ZREM.
"""

from __future__ import annotations

import time
from datetime import datetime

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.infra.redis_client import RedisClient

EXPANSION_TIMERS_KEY = "expansion:timers"


class ExpansionScheduler:
    """Отменяемые отложенные действия по ID заявки."""

    def __init__(self, redis: RedisClient, delay_seconds: int | None = None) -> None:
        if delay_seconds is None:
            from src.config import settings
            delay_seconds = settings.expansion.EXPANSION_DELAY_SECONDS

        self._redis = redis
        self._delay = delay_seconds

    def fire_at(self, created_at: datetime) -> float:
        """Момент срабатывания для заявки, созданной в created_at."""
        return created_at.timestamp() + self._delay

    async def schedule(self, request_id: str, created_at: datetime) -> float:
        """Ставит (или переставляет) таймер. Возвращает момент срабатывания."""
        fire_at = self.fire_at(created_at)
        await self._redis.zadd(EXPANSION_TIMERS_KEY, request_id, fire_at)
        await log_info(
            f"Таймер расширения для заявки {request_id} через {self._delay}с",
            type_msg=TypeMsg.DEBUG,
        )
        return fire_at

    async def retry_later(self, request_id: str, delay_seconds: float, now: float | None = None) -> float:
        """Возвращает забранный таймер, если срабатывание не удалось."""
        fire_at = (now if now is not None else time.time()) + delay_seconds
        await self._redis.zadd(EXPANSION_TIMERS_KEY, request_id, fire_at)
        return fire_at

    async def cancel(self, request_id: str) -> bool:
        """Отменяет таймер. True, если он был."""
        return await self._redis.zrem(EXPANSION_TIMERS_KEY, request_id) > 0

    async def is_scheduled(self, request_id: str) -> bool:
        return await self._redis.zscore(EXPANSION_TIMERS_KEY, request_id) is not None

    async def due(self, now: float | None = None, limit: int = 100) -> list[str]:
        """ID заявок, чьи таймеры уже должны были сработать."""
        return await self._redis.zrangebyscore(
            EXPANSION_TIMERS_KEY,
            now if now is not None else time.time(),
            limit=limit,
        )

    async def claim(self, request_id: str) -> bool:
        """
        Забирает таймер. Из конкурирующих воркеров True получит один,
        отменённый таймер не достанется никому.
        """
        return await self._redis.zrem(EXPANSION_TIMERS_KEY, request_id) == 1
